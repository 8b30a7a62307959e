"""
Data Loader Module
==================

Handles configuration loading, CSV/XLSX ingestion and basic data quality checks.

Loaders are injected into the forecasting workflow through the
``DatasetLoader`` protocol; the feature assembler and tree engine never
import this module.

Functions:
    - load_config: Load YAML configuration file
    - load_data: Load a CSV or Excel file into a TabularDataset
    - validate_data: Check data quality constraints
    - get_data_summary: Generate basic statistics
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Protocol, Tuple

import pandas as pd
import yaml

from .dataset import TabularDataset

logger = logging.getLogger(__name__)

CSV_EXTENSIONS = (".csv",)
EXCEL_EXTENSIONS = (".xlsx", ".xls")


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


class DatasetLoader(Protocol):
    """Anything that turns a file into a TabularDataset."""

    def load(self, file_path: str) -> TabularDataset:
        ...


class CsvDatasetLoader:
    """
    Load comma-separated files.

    Every field is read as text so that cell coercion (numbers, timestamps,
    text, absent) happens in one place, at dataset construction.
    """

    def __init__(self, sep: str = ","):
        self.sep = sep

    def load(self, file_path: str) -> TabularDataset:
        df = pd.read_csv(
            file_path,
            sep=self.sep,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            skipinitialspace=True
        )
        df.columns = [str(c).strip() for c in df.columns]
        logger.info(f"Loaded CSV from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")
        return TabularDataset.from_frame(df)


class ExcelDatasetLoader:
    """Load the first (or a named) worksheet of an Excel workbook."""

    def __init__(self, sheet_name: Any = 0):
        self.sheet_name = sheet_name

    def load(self, file_path: str) -> TabularDataset:
        df = pd.read_excel(file_path, sheet_name=self.sheet_name)
        df.columns = [str(c).strip() for c in df.columns]
        logger.info(f"Loaded sheet from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")
        return TabularDataset.from_frame(df)


def get_loader(file_path: str) -> DatasetLoader:
    """
    Pick a loader from the file extension.

    Raises:
        ValueError: If the extension is not CSV or Excel
    """
    suffix = Path(file_path).suffix.lower()
    if suffix in CSV_EXTENSIONS:
        return CsvDatasetLoader()
    if suffix in EXCEL_EXTENSIONS:
        return ExcelDatasetLoader()
    raise ValueError(
        f"Unsupported file type: '{suffix}'. Please select CSV/XLSX."
    )


def load_data(
    file_path: str,
    loader: Optional[DatasetLoader] = None,
    expected_columns: Optional[int] = None
) -> TabularDataset:
    """
    Load a data file into a TabularDataset.

    Args:
        file_path: Path to the CSV or Excel file
        loader: Loader to use (default: chosen from the file extension)
        expected_columns: Expected number of columns (optional validation)

    Returns:
        TabularDataset with classified columns

    Raises:
        FileNotFoundError: If data file doesn't exist
        ValueError: If the file type is unsupported or the column count is wrong
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    if loader is None:
        loader = get_loader(str(file_path))

    dataset = loader.load(str(file_path))

    if expected_columns is not None and len(dataset.columns) != expected_columns:
        raise ValueError(
            f"Expected {expected_columns} columns, but found {len(dataset.columns)}. "
            f"Columns: {list(dataset.columns)}"
        )

    logger.info(
        f"Numeric columns: {list(dataset.numeric_columns)}; "
        f"timestamp column: {dataset.timestamp_column}"
    )
    return dataset


def validate_data(dataset: TabularDataset, strict: bool = False) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate data quality constraints for forecasting.

    Checks:
        - At least one numeric column
        - Absent values in numeric columns
        - Rows with an unusable timestamp (they are dropped before feature assembly)
        - Columns excluded from the numeric set

    Args:
        dataset: Dataset to validate
        strict: If True, raise errors on validation failure

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "total_rows": len(dataset),
        "total_columns": len(dataset.columns),
        "column_names": list(dataset.columns),
        "numeric_columns": list(dataset.numeric_columns),
        "timestamp_column": dataset.timestamp_column,
        "issues": []
    }

    # Check 1: Something to forecast
    if not dataset.numeric_columns:
        issue = "No numeric columns found"
        report["issues"].append(issue)
        logger.warning(issue)

    # Check 2: Absent values in numeric columns
    missing_by_column = {}
    for col in dataset.numeric_columns:
        n_missing = sum(1 for row in dataset.rows if not row[col].is_number)
        if n_missing:
            missing_by_column[col] = n_missing
    if missing_by_column:
        total_missing = sum(missing_by_column.values())
        issue = f"Missing or non-numeric values in numeric columns: {total_missing}"
        report["issues"].append(issue)
        report["missing_by_column"] = missing_by_column
        logger.warning(issue)

    # Check 3: Invalid timestamps
    if dataset.timestamp_column is not None:
        bad = sum(1 for row in dataset.rows if not row[dataset.timestamp_column].is_timestamp)
        if bad:
            issue = f"Rows without a valid timestamp: {bad}"
            report["issues"].append(issue)
            logger.warning(issue)

    # Check 4: Ignored columns
    ignored = [
        c for c in dataset.columns
        if c not in dataset.numeric_columns and c != dataset.timestamp_column
    ]
    if ignored:
        report["ignored_columns"] = ignored
        logger.info(f"Columns ignored for modelling: {ignored}")

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def get_data_summary(dataset: TabularDataset) -> Dict[str, Any]:
    """
    Generate summary statistics for the numeric columns.

    Args:
        dataset: Dataset to summarize

    Returns:
        Dictionary containing summary statistics
    """
    summary = {
        "n_rows": len(dataset),
        "columns": list(dataset.columns),
        "numeric_columns": list(dataset.numeric_columns),
        "timestamp_column": dataset.timestamp_column,
        "statistics": {}
    }

    for col in dataset.numeric_columns:
        values = pd.Series(dataset.column_values(col)).dropna()
        summary["statistics"][col] = {
            "count": int(values.count()),
            "mean": float(values.mean()),
            "std": float(values.std()) if len(values) > 1 else 0.0,
            "min": float(values.min()),
            "50%": float(values.quantile(0.50)),
            "max": float(values.max())
        }

    return summary


def print_data_summary(dataset: TabularDataset) -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        dataset: Dataset to summarize
    """
    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Shape: {len(dataset)} rows × {len(dataset.columns)} columns")
    print(f"Timestamp column: {dataset.timestamp_column or 'none'}")
    print("\nColumn Information:")
    print("-" * 40)

    for col in dataset.columns:
        if col == dataset.timestamp_column:
            role = "timestamp"
        elif col in dataset.numeric_columns:
            role = "numeric"
        else:
            role = "ignored"
        n_present = sum(1 for row in dataset.rows if not row[col].is_absent)
        null_pct = (1 - n_present / len(dataset)) * 100 if len(dataset) else 0.0
        print(f"  {col}: {role} | {n_present} non-null ({null_pct:.1f}% missing)")

    if dataset.numeric_columns:
        print("\nBasic Statistics:")
        print("-" * 40)
        frame = pd.DataFrame({c: dataset.column_values(c) for c in dataset.numeric_columns})
        print(frame.describe().round(4).to_string())
    print("=" * 60 + "\n")
