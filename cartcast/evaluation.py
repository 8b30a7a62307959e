"""
Fit Metrics Module
==================

In-sample error measures of a trained tree against its own training set.

These describe how closely the tree reproduces the data it was fitted on;
they are not a validation score.

Functions:
    - calculate_metrics: RMSE, MAE, R² and error extremes
    - evaluate_fit: Metrics of a model on a TrainingSet
    - print_evaluation_report: Console report
"""

import logging
from typing import Dict, Any

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score

from .cart import TreeModel, predict_batch
from .features import TrainingSet

logger = logging.getLogger(__name__)


def calculate_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, float]:
    """
    Calculate error metrics for a single target.

    Args:
        y_true: Ground truth values of shape (n_samples,)
        y_pred: Predicted values of shape (n_samples,)

    Returns:
        Dictionary with rmse, mae, r2, mean_error, max_error and n_samples
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)

    if y_true.shape != y_pred.shape:
        raise ValueError(f"Shape mismatch: y_true {y_true.shape} vs y_pred {y_pred.shape}")
    if len(y_true) == 0:
        raise ValueError("Cannot compute metrics on an empty set")

    errors = y_true - y_pred
    # r2_score is undefined for a constant target; report a perfect fit as 1.0
    if np.ptp(y_true) == 0:
        r2 = 1.0 if np.allclose(errors, 0) else 0.0
    else:
        r2 = r2_score(y_true, y_pred)

    return {
        'rmse': float(np.sqrt(mean_squared_error(y_true, y_pred))),
        'mae': float(mean_absolute_error(y_true, y_pred)),
        'r2': float(r2),
        'mean_error': float(np.mean(errors)),
        'max_error': float(np.max(np.abs(errors))),
        'n_samples': int(len(y_true))
    }


def evaluate_fit(model: TreeModel, training_set: TrainingSet) -> Dict[str, float]:
    """
    Score a model on the examples it was trained on.

    Args:
        model: Trained model
        training_set: The training set used to fit it

    Returns:
        Metrics dictionary from calculate_metrics
    """
    y_pred = predict_batch(model, training_set.X)
    metrics = calculate_metrics(training_set.y, y_pred)
    logger.info(
        f"In-sample fit for '{training_set.target}': RMSE={metrics['rmse']:.6f}, "
        f"MAE={metrics['mae']:.6f}, R²={metrics['r2']:.4f}"
    )
    return metrics


def print_evaluation_report(metrics: Dict[str, Any], target: str = "target") -> None:
    """
    Print a formatted fit report to console.

    Args:
        metrics: Metrics dictionary from calculate_metrics
        target: Name of the forecast column
    """
    print("\n" + "=" * 50)
    print(f"IN-SAMPLE FIT REPORT - {target}")
    print("=" * 50)
    print(f"  • RMSE: {metrics['rmse']:.6f}")
    print(f"  • MAE: {metrics['mae']:.6f}")
    print(f"  • R²: {metrics['r2']:.6f}")
    print(f"  • Mean error: {metrics['mean_error']:.6f}")
    print(f"  • Max |error|: {metrics['max_error']:.6f}")
    print(f"  • Samples: {metrics['n_samples']}")
    print("=" * 50 + "\n")
