"""
Visualization Binning — Chart payloads from the analysis map.

Numeric columns get an equal-width histogram (left-closed bins, last bin
closed on both ends; a constant column collapses to one bin). Categorical
columns get their top values as bar data with a percentage of present
responses.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .descriptive_stats import CategoricalAnalysis, ColumnAnalysis, NumericAnalysis
from .schema import Dataset
from .thresholds import AnalysisThresholds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistogramBin:
    lower: float
    upper: float
    count: int

    @property
    def label(self) -> str:
        return f"{self.lower:.1f}-{self.upper:.1f}"

    def to_dict(self) -> Dict[str, Any]:
        return {"bin": self.label, "count": self.count, "range": [self.lower, self.upper]}


@dataclass(frozen=True)
class BarItem:
    label: str
    count: int
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "count": self.count, "percentage": self.percentage}


def histogram(values: Sequence[float], bins: int = 20) -> List[HistogramBin]:
    if not values:
        return []
    if bins < 1:
        raise ValueError("bins must be at least 1")

    lo, hi = min(values), max(values)
    width = (hi - lo) / bins
    if width == 0:
        return [HistogramBin(lo, hi, len(values))]

    counts = [0] * bins
    for v in values:
        idx = min(int((v - lo) // width), bins - 1)
        counts[idx] += 1
    return [
        HistogramBin(lo + i * width, lo + (i + 1) * width, counts[i])
        for i in range(bins)
    ]


def bar_items(analysis: CategoricalAnalysis) -> List[BarItem]:
    items = []
    for label, count in analysis.top_values:
        pct = round(count / analysis.count * 100, 1) if analysis.count else 0.0
        items.append(BarItem(label, count, pct))
    return items


@dataclass(frozen=True)
class ColumnVisualization:
    column: str
    chart: str  # histogram | bar
    data: Tuple[Any, ...]
    stats: ColumnAnalysis

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.chart,
            "data": [item.to_dict() for item in self.data],
            "stats": self.stats.to_dict(),
        }


class VisualizationBuilder:
    def __init__(self, thresholds: Optional[AnalysisThresholds] = None):
        self.thresholds = thresholds or AnalysisThresholds()

    def build(self, dataset: Dataset,
              analysis: Dict[str, ColumnAnalysis]) -> Dict[str, ColumnVisualization]:
        out: Dict[str, ColumnVisualization] = {}
        for name, stats in analysis.items():
            if isinstance(stats, NumericAnalysis):
                values = dataset.column(name).numeric_values()
                bins = histogram(values, self.thresholds.histogram_bins)
                out[name] = ColumnVisualization(name, "histogram", tuple(bins), stats)
            else:
                out[name] = ColumnVisualization(name, "bar", tuple(bar_items(stats)), stats)
        return out
