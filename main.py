#!/usr/bin/env python3
"""
Next-Step Forecasting - Main Pipeline
=====================================

Loads a CSV/XLSX table, trains a lag-feature regression tree for one target
column and forecasts that column one step after the last row.

Phases:
    1. Summary - Dataset classification and data quality report
    2. Train - Feature assembly and tree training
    3. Predict - Forecast target(t+1)
    4. Chart - Plot the numeric series

Usage:
    # Run complete pipeline
    python main.py --data data/raw/dataset.csv

    # Forecast a specific column
    python main.py --data data/raw/dataset.csv --target sales

    # Run specific phase
    python main.py --data data/raw/dataset.xlsx --phase chart
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

from cartcast.cart import print_model_summary
from cartcast.charts import MatplotlibChartRenderer, SeriesVisibility
from cartcast.data_loader import load_config, load_data, validate_data, print_data_summary
from cartcast.dataset import TabularDataset
from cartcast.evaluation import print_evaluation_report
from cartcast.features import print_training_set_summary
from cartcast.forecaster import ForecastOrchestrator, print_prediction_result


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure logging for the pipeline."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def prepare_orchestrator(
    dataset: TabularDataset,
    config: Dict[str, Any],
    target: Optional[str] = None
) -> ForecastOrchestrator:
    """
    Build an orchestrator for the dataset and select the target.

    Args:
        dataset: Loaded dataset
        config: Configuration dictionary
        target: Column to forecast (default: first numeric column)

    Returns:
        Orchestrator with an active target
    """
    orchestrator = ForecastOrchestrator.from_config(config)
    if target is None:
        target = orchestrator.load_dataset(dataset)
        if target is None:
            raise ValueError("Dataset has no numeric column to forecast")
    else:
        orchestrator.select_target(dataset, target)
    return orchestrator


def run_summary(dataset: TabularDataset) -> Dict[str, Any]:
    print("\n" + "=" * 70)
    print("PHASE 1: DATASET SUMMARY")
    print("=" * 70)

    print_data_summary(dataset)
    is_valid, report = validate_data(dataset, strict=False)
    if not is_valid:
        print("⚠️  Data validation warnings detected. Proceeding anyway...")
        for issue in report['issues']:
            print(f"  - {issue}")
    return report


def run_training(orchestrator: ForecastOrchestrator, config: Dict[str, Any]) -> bool:
    """
    Execute Phase 2: feature assembly and tree training.

    Args:
        orchestrator: Orchestrator with an active target
        config: Configuration dictionary

    Returns:
        True if a model was trained
    """
    print("\n" + "=" * 70)
    print("PHASE 2: MODEL TRAINING")
    print("=" * 70)

    training_set = orchestrator.training_set
    print_training_set_summary(training_set)

    outcome = orchestrator.train()
    print(outcome.message)
    if not outcome.trained:
        return False

    print_model_summary(outcome.model, list(training_set.feature_names))
    print_evaluation_report(outcome.metrics, target=orchestrator.target)

    model_path = config.get('output', {}).get('model_path')
    if model_path:
        orchestrator.save_model(model_path)
        print(f"✓ Model saved to {model_path}")
    return True


def run_prediction(orchestrator: ForecastOrchestrator) -> Optional[float]:
    print("\n" + "=" * 70)
    print("PHASE 3: NEXT-STEP PREDICTION")
    print("=" * 70)

    outcome = orchestrator.predict_next()
    print_prediction_result(outcome)
    return outcome.value


def run_chart(dataset: TabularDataset, config: Dict[str, Any]) -> str:
    print("\n" + "=" * 70)
    print("PHASE 4: SERIES CHART")
    print("=" * 70)

    figures_dir = Path(config.get('output', {}).get('figures_path', 'reports/figures/'))
    figures_dir.mkdir(parents=True, exist_ok=True)
    save_path = str(figures_dir / "time_series.png")

    renderer = MatplotlibChartRenderer()
    renderer.render(dataset, SeriesVisibility.for_dataset(dataset), save_path=save_path)
    print(f"✓ Chart saved to {save_path}")
    return save_path


def run_pipeline(
    data_path: str,
    config_path: str = "config/config.yaml",
    phase: str = "all",
    target: Optional[str] = None,
    verbose: bool = False
) -> Dict[str, Any]:
    """
    Execute the pipeline, or a single phase of it.

    Args:
        data_path: Path to the input CSV/XLSX file
        config_path: Path to configuration file
        phase: 'summary', 'train', 'predict', 'chart' or 'all'
        target: Column to forecast (default: first numeric column)
        verbose: Log at DEBUG level regardless of the config

    Returns:
        Dictionary containing the results of the phases that ran
    """
    config = load_config(config_path)
    log_config = config.get('logging', {}) or {}
    level = 'DEBUG' if verbose else log_config.get('level', 'INFO')
    setup_logging(level, log_config.get('file'))

    print("\n" + "=" * 70)
    print("NEXT-STEP FORECASTING PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    dataset = load_data(data_path)
    results: Dict[str, Any] = {'config': config, 'n_rows': len(dataset)}

    if phase in ('summary', 'all'):
        results['summary'] = run_summary(dataset)

    if phase in ('train', 'predict', 'all'):
        orchestrator = prepare_orchestrator(dataset, config, target)
        results['target'] = orchestrator.target
        results['trained'] = run_training(orchestrator, config)
        if phase in ('predict', 'all') and results['trained']:
            results['prediction'] = run_prediction(orchestrator)

    if phase in ('chart', 'all'):
        results['chart_path'] = run_chart(dataset, config)

    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Input data: {len(dataset)} rows × {len(dataset.columns)} columns")
    if 'target' in results:
        print(f"  • Target: {results['target']}")
    if results.get('prediction') is not None:
        print(f"  • Prediction: {results['prediction']:.4f}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Next-step forecasting with a lag-feature regression tree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --data data/raw/dataset.csv
  python main.py --data data/raw/dataset.csv --target sales
  python main.py --data data/raw/dataset.xlsx --phase chart
        """
    )

    parser.add_argument(
        '--data', '-d',
        type=str,
        required=True,
        help='Path to the input CSV or XLSX file'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--target', '-t',
        type=str,
        default=None,
        help='Column to forecast (default: first numeric column)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=['summary', 'train', 'predict', 'chart', 'all'],
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    if not Path(args.data).exists():
        print(f"Error: Data file not found: {args.data}")
        print("\nExpected format: CSV/XLSX with a header row and numeric columns")
        return 1

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    try:
        run_pipeline(
            args.data, args.config,
            phase=args.phase, target=args.target, verbose=args.verbose
        )
        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
