"""
Feature Assembly Module
=======================

Turns a time-ordered TabularDataset into fixed-width feature vectors for
one-step-ahead forecasting of a chosen target column.

Vector layout at position t of the ordered rows (``exo`` = numeric columns
other than the target, in dataset order):

    1. exo(t) for each exogenous column
    2. for each lag l, ascending: target(t-l), then exo(t-l)
    3. optionally dow_sin, dow_cos, mon_sin, mon_cos from the timestamp at t

The label of the vector at t is target(t+1).

Functions:
    - build_training_set: Assemble training examples and the next vector
    - normalize_lags: Validate and order a lag set
    - cyclic_time_features: Sine/cosine weekday and month encodings
"""

import logging
import math
from dataclasses import dataclass
from numbers import Integral
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .dataset import Cell, TabularDataset

logger = logging.getLogger(__name__)

DEFAULT_LAGS: Tuple[int, ...] = (1, 2, 3)
CYCLIC_FEATURE_NAMES: Tuple[str, ...] = ("dow_sin", "dow_cos", "mon_sin", "mon_cos")


def normalize_lags(lags: Iterable[int]) -> Tuple[int, ...]:
    """
    Validate a lag set and return it as a sorted tuple of distinct integers.

    Raises:
        ValueError: If the set is empty or holds anything but positive integers
    """
    if lags is None:
        raise ValueError("Lag set must not be empty")
    lags = list(lags)
    if not lags:
        raise ValueError("Lag set must not be empty")
    for lag in lags:
        if isinstance(lag, bool) or not isinstance(lag, (Integral, np.integer)) or lag < 1:
            raise ValueError(f"Lags must be positive integers, got {lag!r}")
    return tuple(sorted({int(lag) for lag in lags}))


def sincos(value: float, period: float) -> Tuple[float, float]:
    angle = 2 * math.pi * value / period
    return math.sin(angle), math.cos(angle)


def cyclic_time_features(ts: Optional[pd.Timestamp]) -> Tuple[float, float, float, float]:
    """
    Encode weekday (Sunday = 0, period 7) and month (January = 0, period 12).

    Args:
        ts: Timestamp of the row, or None when it is unusable

    Returns:
        (dow_sin, dow_cos, mon_sin, mon_cos); all zeros when ts is None
    """
    if ts is None or pd.isna(ts):
        return 0.0, 0.0, 0.0, 0.0
    weekday = (ts.dayofweek + 1) % 7
    month = ts.month - 1
    dow_sin, dow_cos = sincos(weekday, 7)
    mon_sin, mon_cos = sincos(month, 12)
    return dow_sin, dow_cos, mon_sin, mon_cos


@dataclass(frozen=True)
class TrainingExample:
    features: np.ndarray
    label: float


@dataclass(frozen=True)
class TrainingSet:
    """
    Output of the feature assembler for one (dataset, target, lags, flag) choice.

    Attributes:
        X: Feature matrix of shape (n_examples, width), time ordered
        y: Labels (target at t+1) of shape (n_examples,)
        feature_names: Name of every slot, in layout order
        next_vector: Vector at the most recent row, or None if any slot is missing
        positions: Row position t (in the ordered rows) of each example
        target: Target column
        lags: Normalized lag set
        uses_cyclic_time: Whether the four cyclic slots are present
        n_rows: Number of rows after timestamp filtering
    """

    X: np.ndarray
    y: np.ndarray
    feature_names: Tuple[str, ...]
    next_vector: Optional[np.ndarray]
    positions: np.ndarray
    target: str
    lags: Tuple[int, ...]
    uses_cyclic_time: bool
    n_rows: int

    def __len__(self) -> int:
        return len(self.y)

    @property
    def width(self) -> int:
        return len(self.feature_names)

    @property
    def examples(self) -> List[TrainingExample]:
        return [TrainingExample(self.X[i], float(self.y[i])) for i in range(len(self.y))]

    @property
    def has_next_vector(self) -> bool:
        return self.next_vector is not None


class FeatureAssembler:
    """
    Lag and cyclic-time feature builder.

    Holds the assembly settings; the dataset and target are passed per call so
    one assembler can serve every target selection.
    """

    def __init__(
        self,
        lags: Iterable[int] = DEFAULT_LAGS,
        use_cyclic_time: bool = True
    ):
        """
        Initialize the assembler.

        Args:
            lags: Positive lag offsets (default {1, 2, 3})
            use_cyclic_time: Add weekday/month encodings when a timestamp column exists
        """
        self.lags = normalize_lags(lags)
        self.use_cyclic_time = bool(use_cyclic_time)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'FeatureAssembler':
        feature_config = config.get('features', {}) or {}
        return cls(
            lags=feature_config.get('lags', DEFAULT_LAGS),
            use_cyclic_time=feature_config.get('use_cyclic_time', True)
        )

    @property
    def max_lag(self) -> int:
        return max(self.lags)

    def uses_cyclic_time(self, dataset: TabularDataset) -> bool:
        return self.use_cyclic_time and dataset.has_timestamp

    @staticmethod
    def exogenous_columns(dataset: TabularDataset, target: str) -> List[str]:
        return [c for c in dataset.numeric_columns if c != target]

    def validate_target(self, dataset: TabularDataset, target: str) -> None:
        """
        Raises:
            ValueError: If target is missing from the dataset or not numeric
        """
        if target not in dataset.columns:
            raise ValueError(f"Target column '{target}' not found. Columns: {list(dataset.columns)}")
        if not dataset.is_numeric(target):
            raise ValueError(
                f"Target column '{target}' is not numeric. "
                f"Numeric columns: {list(dataset.numeric_columns)}"
            )

    def get_feature_names(self, dataset: TabularDataset, target: str) -> List[str]:
        """
        Generate the slot names for a target.

        Returns:
            Names in layout order, e.g. ['b(t)', 'a(t-1)', 'b(t-1)']
        """
        exo = self.exogenous_columns(dataset, target)
        names = [f"{col}(t)" for col in exo]
        for lag in self.lags:
            names.append(f"{target}(t-{lag})")
            names.extend(f"{col}(t-{lag})" for col in exo)
        if self.uses_cyclic_time(dataset):
            names.extend(CYCLIC_FEATURE_NAMES)
        return names

    def expected_width(self, dataset: TabularDataset, target: str) -> int:
        n_exo = len(self.exogenous_columns(dataset, target))
        cyclic = 4 if self.uses_cyclic_time(dataset) else 0
        return n_exo + len(self.lags) * (1 + n_exo) + cyclic

    @staticmethod
    def ordered_rows(dataset: TabularDataset) -> List[Mapping[str, Cell]]:
        """
        Rows in the order that defines lags and labels.

        With a timestamp column, rows lacking a valid timestamp are dropped and
        the rest are stably sorted by timestamp; otherwise source order is kept.
        """
        if not dataset.has_timestamp:
            return list(dataset.rows)
        ts_col = dataset.timestamp_column
        valid = [row for row in dataset.rows if row[ts_col].is_timestamp]
        dropped = len(dataset.rows) - len(valid)
        if dropped:
            logger.info(f"Dropped {dropped} rows without a valid '{ts_col}' timestamp")
        return sorted(valid, key=lambda row: row[ts_col].value)

    def assemble(self, dataset: TabularDataset, target: str) -> TrainingSet:
        """
        Build the training examples and next vector for a target.

        Args:
            dataset: Source dataset
            target: Numeric column to forecast

        Returns:
            TrainingSet with X, y, feature names and the optional next vector
        """
        self.validate_target(dataset, target)

        exo = self.exogenous_columns(dataset, target)
        cyclic = self.uses_cyclic_time(dataset)
        feature_names = self.get_feature_names(dataset, target)
        width = len(feature_names)

        rows = self.ordered_rows(dataset)
        n_rows = len(rows)

        series = {
            col: np.array([row[col].as_float() for row in rows], dtype=float)
            for col in [target] + exo
        }
        timestamps: List[Optional[pd.Timestamp]] = []
        if cyclic:
            ts_col = dataset.timestamp_column
            timestamps = [
                row[ts_col].value if row[ts_col].is_timestamp else None
                for row in rows
            ]

        def value_at(col: str, position: int) -> float:
            if position < 0 or position >= n_rows:
                return math.nan
            return series[col][position]

        def vector_at(t: int) -> np.ndarray:
            slots = [value_at(col, t) for col in exo]
            for lag in self.lags:
                slots.append(value_at(target, t - lag))
                slots.extend(value_at(col, t - lag) for col in exo)
            if cyclic:
                slots.extend(cyclic_time_features(timestamps[t]))
            return np.asarray(slots, dtype=float)

        X_list: List[np.ndarray] = []
        y_list: List[float] = []
        positions: List[int] = []

        # Rows [max_lag, N-2] so that target(t+1) exists
        for t in range(self.max_lag, n_rows - 1):
            vector = vector_at(t)
            if not np.all(np.isfinite(vector)):
                continue
            label = value_at(target, t + 1)
            if not math.isfinite(label):
                continue
            X_list.append(vector)
            y_list.append(label)
            positions.append(t)

        next_vector = None
        if n_rows > 0:
            candidate = vector_at(n_rows - 1)
            if np.all(np.isfinite(candidate)):
                next_vector = candidate

        X = np.vstack(X_list) if X_list else np.empty((0, width), dtype=float)
        y = np.asarray(y_list, dtype=float)

        logger.info(
            f"Assembled {len(y)} examples × {width} features for target '{target}' "
            f"from {n_rows} rows (lags={list(self.lags)}, cyclic={cyclic})"
        )
        if next_vector is None:
            logger.warning("Next feature vector is incomplete; not enough history for t+1")

        return TrainingSet(
            X=X,
            y=y,
            feature_names=tuple(feature_names),
            next_vector=next_vector,
            positions=np.asarray(positions, dtype=int),
            target=target,
            lags=self.lags,
            uses_cyclic_time=cyclic,
            n_rows=n_rows
        )


def build_training_set(
    dataset: TabularDataset,
    target: str,
    lags: Sequence[int] = DEFAULT_LAGS,
    use_cyclic_time: bool = True
) -> TrainingSet:
    """
    Assemble training examples and the next vector in one call.

    Args:
        dataset: Source dataset
        target: Numeric column to forecast
        lags: Positive lag offsets
        use_cyclic_time: Add weekday/month encodings when a timestamp exists

    Returns:
        TrainingSet

    Raises:
        ValueError: On an unknown or non-numeric target or an invalid lag set
    """
    assembler = FeatureAssembler(lags=lags, use_cyclic_time=use_cyclic_time)
    return assembler.assemble(dataset, target)


def print_training_set_summary(training_set: TrainingSet) -> None:
    """
    Print a summary of an assembled training set.

    Args:
        training_set: Result of build_training_set
    """
    print("\n" + "=" * 50)
    print("FEATURE ASSEMBLY SUMMARY")
    print("=" * 50)
    print(f"Target: {training_set.target}")
    print(f"Rows after filtering: {training_set.n_rows}")
    print(f"Training examples: {len(training_set)}")
    print(f"Features per example: {training_set.width}")
    print(f"Lags: {list(training_set.lags)}")
    print(f"Cyclic time features: {training_set.uses_cyclic_time}")
    print(f"Next vector available: {training_set.has_next_vector}")
    print("\nFeatures:")
    for idx, name in enumerate(training_set.feature_names):
        print(f"  [{idx:>2}] {name}")
    print("=" * 50 + "\n")
