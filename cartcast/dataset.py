"""
Tabular Dataset Module
======================

In-memory columnar table consumed by the feature assembler.

Every raw value is coerced exactly once into a ``Cell`` when the dataset is
constructed, and the numeric / timestamp column classification is computed
in the same step. A ``TabularDataset`` is frozen afterwards: reclassifying
requires building a new instance.

Classes:
    - CellKind: The four cell variants
    - Cell: A single coerced value
    - TabularDataset: Column names, rows of cells and derived classification
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from numbers import Integral, Real
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

TIMESTAMP_COLUMN_NAMES = ("datetime", "date", "time")

_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_DATE_HINT_PATTERN = re.compile(r"[-T:/]")


class CellKind(Enum):
    NUMBER = "number"
    TIMESTAMP = "timestamp"
    TEXT = "text"
    ABSENT = "absent"


@dataclass(frozen=True)
class Cell:
    """
    A single table value: a finite number, a timestamp, a text token or absent.

    Use the ``number``, ``timestamp``, ``text`` and ``absent`` constructors
    (or ``coerce_cell`` for raw input) rather than building instances directly.
    """

    kind: CellKind
    value: Any = None

    @classmethod
    def number(cls, value: float) -> 'Cell':
        return cls(CellKind.NUMBER, float(value))

    @classmethod
    def timestamp(cls, value: pd.Timestamp) -> 'Cell':
        return cls(CellKind.TIMESTAMP, value)

    @classmethod
    def text(cls, value: str) -> 'Cell':
        return cls(CellKind.TEXT, value)

    @classmethod
    def absent(cls) -> 'Cell':
        return ABSENT

    @property
    def is_number(self) -> bool:
        return self.kind is CellKind.NUMBER

    @property
    def is_timestamp(self) -> bool:
        return self.kind is CellKind.TIMESTAMP

    @property
    def is_absent(self) -> bool:
        return self.kind is CellKind.ABSENT

    def as_float(self) -> float:
        """Return the numeric value, or NaN for any non-number cell."""
        if self.kind is CellKind.NUMBER:
            return self.value
        return math.nan


ABSENT = Cell(CellKind.ABSENT)


def _normalize_timestamp(value: Any) -> Optional[pd.Timestamp]:
    ts = pd.Timestamp(value)
    if pd.isna(ts):
        return None
    # Stored as naive UTC
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def _coerce_text(raw: str) -> Cell:
    text = raw.strip()
    if not text:
        return ABSENT

    if _NUMBER_PATTERN.match(text):
        number = float(text)
        if math.isfinite(number):
            return Cell.number(number)

    if _DATE_HINT_PATTERN.search(text):
        parsed = pd.to_datetime(text, errors="coerce")
        if not pd.isna(parsed):
            ts = _normalize_timestamp(parsed)
            if ts is not None:
                return Cell.timestamp(ts)

    return Cell.text(text)


def coerce_cell(raw: Any) -> Cell:
    """
    Coerce a raw parsed value into a Cell.

    Args:
        raw: Value as produced by a parser (str, number, datetime, None, ...)

    Returns:
        The corresponding Cell variant
    """
    if isinstance(raw, Cell):
        return raw
    if raw is None or raw is pd.NaT:
        return ABSENT
    if isinstance(raw, (bool, np.bool_)):
        return Cell.text(str(bool(raw)))
    if isinstance(raw, str):
        return _coerce_text(raw)
    if isinstance(raw, (Integral, np.integer)):
        return Cell.number(float(raw))
    if isinstance(raw, (Real, np.floating)):
        number = float(raw)
        return Cell.number(number) if math.isfinite(number) else ABSENT
    if isinstance(raw, (pd.Timestamp, datetime, date, np.datetime64)):
        ts = _normalize_timestamp(raw)
        return Cell.timestamp(ts) if ts is not None else ABSENT
    return Cell.text(str(raw))


def _majority_floor(n_rows: int) -> int:
    return max(1, int(math.floor(n_rows * 0.5)))


@dataclass(frozen=True)
class TabularDataset:
    """
    Ordered rows of cells with a fixed numeric / timestamp classification.

    Attributes:
        columns: Column names in source order
        rows: One mapping per row from every column name to a Cell
        numeric_columns: Columns where at least half the rows hold numbers
        timestamp_column: Name of the timestamp column, if any
    """

    columns: Tuple[str, ...]
    rows: Tuple[Mapping[str, Cell], ...]
    numeric_columns: Tuple[str, ...] = field(default=())
    timestamp_column: Optional[str] = None

    @classmethod
    def from_records(
        cls,
        columns: Sequence[str],
        records: Iterable[Any]
    ) -> 'TabularDataset':
        """
        Build a dataset from raw records and classify its columns.

        Args:
            columns: Column names in order
            records: Rows given either as sequences aligned with ``columns``
                or as mappings keyed by column name; missing values become
                absent cells

        Returns:
            New TabularDataset instance
        """
        columns = tuple(str(c) for c in columns)
        if len(set(columns)) != len(columns):
            raise ValueError(f"Duplicate column names: {list(columns)}")

        rows: List[Dict[str, Cell]] = []
        for record in records:
            if isinstance(record, Mapping):
                row = {c: coerce_cell(record.get(c)) for c in columns}
            else:
                values = list(record)
                if len(values) > len(columns):
                    raise ValueError(
                        f"Row has {len(values)} values but only {len(columns)} columns"
                    )
                values.extend([None] * (len(columns) - len(values)))
                row = {c: coerce_cell(v) for c, v in zip(columns, values)}
            rows.append(row)

        timestamp_column = cls._detect_timestamp_column(columns, rows)
        numeric_columns = cls._detect_numeric_columns(columns, rows, timestamp_column)

        logger.debug(
            f"Classified {len(columns)} columns: numeric={list(numeric_columns)}, "
            f"timestamp={timestamp_column}"
        )

        return cls(
            columns=columns,
            rows=tuple(rows),
            numeric_columns=numeric_columns,
            timestamp_column=timestamp_column
        )

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> 'TabularDataset':
        """Build a dataset from a pandas DataFrame (values coerced cell by cell)."""
        records = df.astype(object).where(pd.notna(df), None).itertuples(index=False, name=None)
        return cls.from_records(df.columns.tolist(), records)

    @staticmethod
    def _detect_timestamp_column(
        columns: Tuple[str, ...],
        rows: List[Dict[str, Cell]]
    ) -> Optional[str]:
        floor = _majority_floor(len(rows))
        for col in columns:
            if col.lower() not in TIMESTAMP_COLUMN_NAMES:
                continue
            n_timestamps = sum(1 for r in rows if r[col].is_timestamp)
            if rows and n_timestamps >= floor:
                return col
        return None

    @staticmethod
    def _detect_numeric_columns(
        columns: Tuple[str, ...],
        rows: List[Dict[str, Cell]],
        timestamp_column: Optional[str]
    ) -> Tuple[str, ...]:
        if not rows:
            return ()
        floor = _majority_floor(len(rows))
        numeric = []
        for col in columns:
            if col == timestamp_column:
                continue
            if sum(1 for r in rows if r[col].is_number) >= floor:
                numeric.append(col)
        return tuple(numeric)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def has_timestamp(self) -> bool:
        return self.timestamp_column is not None

    def is_numeric(self, column: str) -> bool:
        return column in self.numeric_columns

    def column_values(self, column: str) -> np.ndarray:
        """Return a numeric column as a float array (NaN where not a number)."""
        if column not in self.columns:
            raise KeyError(f"Unknown column: {column}")
        return np.array([row[column].as_float() for row in self.rows], dtype=float)

    def to_frame(self) -> pd.DataFrame:
        """Render the dataset as a DataFrame (absent cells as None/NaN)."""
        data = {
            col: [None if row[col].is_absent else row[col].value for row in self.rows]
            for col in self.columns
        }
        return pd.DataFrame(data, columns=list(self.columns))
