"""
Report sinks for run metrics and chart series.

LoggingReportSink keeps everything it receives and writes it to the log.
FigureReportSink additionally renders each series as a PNG figure: scatter
for observed vs predicted, bars for importances, a line for the yearly means.

Author: Rangeland Biomass Team
"""

from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple, Union

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np

from shared_utils import ensure_directory, get_logger


class LoggingReportSink:
    """Records metrics and series and logs them."""

    def __init__(self):
        self.metrics: Dict[str, float] = {}
        self.series: Dict[str, List[Tuple[Any, Any]]] = {}
        self.labels: Dict[str, Dict[str, Any]] = {}
        self.logger = get_logger('report')

    def report_metric(self, name: str, value: float) -> None:
        self.metrics[name] = value
        self.logger.info(f"{name}: {value}")

    def report_series(self, name: str, points: Sequence[Tuple[Any, Any]], **labels: Any) -> None:
        self.series[name] = list(points)
        self.labels[name] = dict(labels)
        self.logger.info(f"{labels.get('title', name)}: {len(self.series[name])} points")
        for x, y in self.series[name]:
            self.logger.debug(f"  {x}: {y}")


class FigureReportSink(LoggingReportSink):
    """Records, logs and plots every series to <output_dir>/<name>.png."""

    def __init__(self, output_dir: Union[str, Path], dpi: int = 300):
        super().__init__()
        self.output_dir = Path(output_dir)
        self.dpi = dpi

    def report_series(self, name: str, points: Sequence[Tuple[Any, Any]], **labels: Any) -> None:
        super().report_series(name, points, **labels)
        if not self.series[name]:
            self.logger.warning(f"No data for figure '{name}', skipping")
            return

        kind = labels.get('kind', 'line')
        plotters = {'scatter': self._scatter, 'bar': self._bar, 'line': self._line}
        if kind not in plotters:
            raise ValueError(f"Unknown chart kind '{kind}'")

        fig, ax = plt.subplots(figsize=(8, 6))
        try:
            plotters[kind](ax, self.series[name])
            ax.set_xlabel(labels.get('xlabel', ''), fontsize=12)
            ax.set_ylabel(labels.get('ylabel', ''), fontsize=12)
            ax.set_title(labels.get('title', name), fontsize=14, fontweight='bold')
            ax.grid(alpha=0.3)

            output_path = ensure_directory(self.output_dir) / f"{name}.png"
            plt.tight_layout()
            plt.savefig(output_path, dpi=self.dpi, bbox_inches='tight')
        finally:
            plt.close(fig)

        self.logger.info(f"Saved figure {output_path}")

    @staticmethod
    def _scatter(ax, points):
        x, y = np.asarray(points, dtype=float).T
        ax.scatter(x, y, alpha=0.7, color='steelblue', edgecolor='black')
        lo, hi = min(x.min(), y.min()), max(x.max(), y.max())
        ax.plot([lo, hi], [lo, hi], color='red', linestyle='--', linewidth=1.5, label='1:1')
        ax.legend()

    @staticmethod
    def _bar(ax, points):
        names = [str(p[0]) for p in points]
        values = [float(p[1]) for p in points]
        ax.bar(names, values, color='steelblue', edgecolor='black')

    @staticmethod
    def _line(ax, points):
        defined = [(x, y) for x, y in points if y is not None]
        if defined:
            x, y = zip(*defined)
            ax.plot(x, y, marker='o', color='steelblue', linewidth=2)
        ax.set_xticks([p[0] for p in points])
