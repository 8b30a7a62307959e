"""
Chart Rendering Module
======================

Line charts of a dataset's numeric series.

Rendering is a collaborator of the forecasting workflow: it is injected
through the ``ChartRenderer`` protocol and the core never imports it.
"""

import logging
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

import matplotlib.pyplot as plt
import pandas as pd

from .dataset import TabularDataset

logger = logging.getLogger(__name__)

PALETTE = (
    "#1f77b4", "#ff7f0e", "#2ca02c", "#d62728",
    "#9467bd", "#8c564b", "#e377c2", "#7f7f7f",
    "#bcbd22", "#17becf", "#393b79", "#637939",
    "#8c6d31", "#843c39", "#7b4173",
)


def color_for(index: int) -> str:
    return PALETTE[index % len(PALETTE)]


class SeriesVisibility:
    """Per-series on/off switches; every numeric series starts visible."""

    def __init__(self, series: Iterable[str]):
        self._visible: Dict[str, bool] = {s: True for s in series}

    @classmethod
    def for_dataset(cls, dataset: TabularDataset) -> 'SeriesVisibility':
        return cls(dataset.numeric_columns)

    def is_visible(self, series: str) -> bool:
        return self._visible.get(series, True)

    def toggle(self, series: str) -> bool:
        self._visible[series] = not self.is_visible(series)
        return self._visible[series]

    def visible_series(self) -> List[str]:
        return [s for s, on in self._visible.items() if on]


def build_chart_frame(dataset: TabularDataset) -> pd.DataFrame:
    """
    Plotting rows: an ``_x`` label plus one column per numeric series.

    The label is the ISO timestamp when the row has one, otherwise the
    1-based row number. Non-numeric cells become NaN so lines break there.
    """
    labels = []
    ts_col = dataset.timestamp_column
    for idx, row in enumerate(dataset.rows):
        cell = row[ts_col] if ts_col else None
        if cell is not None and cell.is_timestamp:
            labels.append(cell.value.isoformat())
        elif cell is not None and not cell.is_absent:
            labels.append(str(cell.value))
        else:
            labels.append(str(idx + 1))

    frame = pd.DataFrame({'_x': labels})
    for col in dataset.numeric_columns:
        frame[col] = dataset.column_values(col)
    return frame


class ChartRenderer(Protocol):
    def render(
        self,
        dataset: TabularDataset,
        visibility: Optional[SeriesVisibility] = None,
        save_path: Optional[str] = None
    ) -> object:
        ...


class MatplotlibChartRenderer:
    """Draw all visible series on one set of axes."""

    def __init__(self, figsize: Tuple[int, int] = (14, 6), max_ticks: int = 10):
        self.figsize = figsize
        self.max_ticks = max_ticks

    def render(
        self,
        dataset: TabularDataset,
        visibility: Optional[SeriesVisibility] = None,
        save_path: Optional[str] = None
    ) -> plt.Figure:
        """
        Plot the dataset's numeric series.

        Args:
            dataset: Dataset to plot
            visibility: Series switches (default: all visible)
            save_path: Path to save the figure (optional)

        Returns:
            Matplotlib Figure object
        """
        if visibility is None:
            visibility = SeriesVisibility.for_dataset(dataset)

        frame = build_chart_frame(dataset)
        fig, ax = plt.subplots(figsize=self.figsize)

        positions = range(len(frame))
        for idx, col in enumerate(dataset.numeric_columns):
            if not visibility.is_visible(col):
                continue
            ax.plot(positions, frame[col], color=color_for(idx), linewidth=1.2, label=col)

        if len(frame):
            step = max(1, len(frame) // self.max_ticks)
            ticks = list(range(0, len(frame), step))
            ax.set_xticks(ticks)
            ax.set_xticklabels([frame['_x'].iloc[i] for i in ticks], rotation=30, ha='right')

        ax.set_xlabel(dataset.timestamp_column or 'Row')
        ax.set_ylabel('Value')
        if ax.get_legend_handles_labels()[0]:
            ax.legend(loc='upper left', fontsize=8)
        ax.set_title('Time Series', fontsize=14, fontweight='bold')
        fig.tight_layout()

        if save_path:
            fig.savefig(save_path, dpi=150, bbox_inches='tight')
            logger.info(f"Time series chart saved to {save_path}")

        return fig
