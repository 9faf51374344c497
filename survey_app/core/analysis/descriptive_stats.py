"""
Descriptive Statistics Engine — Per-column summary of a survey
================================================================
Computes one ColumnAnalysis per Column.

Numeric path:
  count, missing, mean, median, q1, q3, min, max,
  std (population, divides by n),
  skewness (adjusted Fisher–Pearson, needs n ≥ 3 and std > 0),
  kurtosis (sample excess kurtosis, needs n ≥ 4 and std > 0)

Categorical path:
  count, missing, unique, mode, mode count, top values, value counts
  (first-seen order breaks every tie)

Invariant: count + missing == total rows.
Moments that cannot be computed are stored as None with a note, never
as NaN or Infinity.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .errors import InsufficientData
from .schema import Column, ColumnKind, Dataset
from .thresholds import AnalysisThresholds

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# PURE STATISTIC HELPERS
# ═══════════════════════════════════════════════════════════════

def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Linear-interpolation percentile on an ascending sequence."""
    if not sorted_values:
        raise InsufficientData("percentile", required=1, available=0)
    index = (len(sorted_values) - 1) * p
    lower = math.floor(index)
    upper = math.ceil(index)
    if upper >= len(sorted_values):
        return sorted_values[-1]
    weight = index - lower
    return sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight


def mean(values: Sequence[float]) -> float:
    if not values:
        raise InsufficientData("mean", required=1, available=0)
    return sum(values) / len(values)


def population_std(values: Sequence[float]) -> float:
    if not values:
        raise InsufficientData("std", required=1, available=0)
    m = mean(values)
    return math.sqrt(sum((v - m) ** 2 for v in values) / len(values))


def skewness(values: Sequence[float]) -> float:
    """Adjusted Fisher–Pearson standardized third moment."""
    n = len(values)
    if n < 3:
        raise InsufficientData("skewness", required=3, available=n)
    std = population_std(values)
    if std == 0:
        raise InsufficientData("skewness", required=3, available=n, reason="zero variance")
    m = mean(values)
    total = sum(((v - m) / std) ** 3 for v in values)
    return (n / ((n - 1) * (n - 2))) * total


def kurtosis(values: Sequence[float]) -> float:
    """Sample excess kurtosis."""
    n = len(values)
    if n < 4:
        raise InsufficientData("kurtosis", required=4, available=n)
    std = population_std(values)
    if std == 0:
        raise InsufficientData("kurtosis", required=4, available=n, reason="zero variance")
    m = mean(values)
    total = sum(((v - m) / std) ** 4 for v in values)
    return (
        (n * (n + 1) / ((n - 1) * (n - 2) * (n - 3))) * total
        - (3 * (n - 1) ** 2 / ((n - 2) * (n - 3)))
    )


def value_counts(values: Sequence[str]) -> Dict[str, int]:
    """Frequency mapping in first-seen order."""
    counts: Dict[str, int] = {}
    for v in values:
        counts[v] = counts.get(v, 0) + 1
    return counts


def ranked_counts(counts: Dict[str, int]) -> List[Tuple[str, int]]:
    """Descending by count; sorted() is stable so ties keep first-seen order."""
    return sorted(counts.items(), key=lambda kv: -kv[1])


# ═══════════════════════════════════════════════════════════════
# ANALYSIS RESULTS
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NumericAnalysis:
    column: str
    count: int
    missing: int
    mean: Optional[float] = None
    median: Optional[float] = None
    q1: Optional[float] = None
    q3: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    std: Optional[float] = None
    skewness: Optional[float] = None
    kurtosis: Optional[float] = None
    notes: Tuple[str, ...] = ()
    kind: ColumnKind = field(default=ColumnKind.NUMERIC, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "count": self.count,
            "missing": self.missing,
            "mean": self.mean,
            "median": self.median,
            "q1": self.q1,
            "q3": self.q3,
            "min": self.min,
            "max": self.max,
            "std": self.std,
            "skewness": self.skewness,
            "kurtosis": self.kurtosis,
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class CategoricalAnalysis:
    column: str
    count: int
    missing: int
    unique_count: int = 0
    mode: Optional[str] = None
    mode_count: int = 0
    top_values: Tuple[Tuple[str, int], ...] = ()
    value_counts: Dict[str, int] = field(default_factory=dict)
    kind: ColumnKind = field(default=ColumnKind.CATEGORICAL, init=False)

    @property
    def mode_share_pct(self) -> float:
        return (self.mode_count / self.count) * 100 if self.count else 0.0

    @property
    def uniqueness_ratio(self) -> float:
        return self.unique_count / self.count if self.count else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "count": self.count,
            "missing": self.missing,
            "unique": self.unique_count,
            "mode": self.mode,
            "modeCount": self.mode_count,
            "topValues": [[label, count] for label, count in self.top_values],
            "valueCounts": dict(self.value_counts),
        }


ColumnAnalysis = Union[NumericAnalysis, CategoricalAnalysis]


# ═══════════════════════════════════════════════════════════════
# ENGINE
# ═══════════════════════════════════════════════════════════════

class DescriptiveStatisticsEngine:
    """
    Builds the per-column analysis map for a dataset.
    Pure functions of the column values — no I/O, no shared state.
    """

    def __init__(self, thresholds: Optional[AnalysisThresholds] = None):
        self.thresholds = thresholds or AnalysisThresholds()

    def analyze(self, dataset: Dataset) -> Dict[str, ColumnAnalysis]:
        analysis: Dict[str, ColumnAnalysis] = {}
        for column in dataset.columns:
            analysis[column.name] = self.analyze_column(column)
        return analysis

    def analyze_column(self, column: Column) -> ColumnAnalysis:
        if column.kind == ColumnKind.NUMERIC:
            return self._analyze_numeric(column)
        return self._analyze_categorical(column)

    # ──────────────────────────────────────────────────────────
    # NUMERIC
    # ──────────────────────────────────────────────────────────

    def _analyze_numeric(self, column: Column) -> NumericAnalysis:
        values = sorted(column.numeric_values())
        n = len(values)
        missing = column.total_rows - n

        if n == 0:
            logger.warning(f"Numeric column '{column.name}' has no parseable values")
            return NumericAnalysis(
                column=column.name, count=0, missing=missing,
                notes=("no numeric values",),
            )

        notes: List[str] = []
        skew = self._moment(skewness, values, column.name, notes)
        kurt = self._moment(kurtosis, values, column.name, notes)

        return NumericAnalysis(
            column=column.name,
            count=n,
            missing=missing,
            mean=mean(values),
            median=percentile(values, 0.5),
            q1=percentile(values, 0.25),
            q3=percentile(values, 0.75),
            min=values[0],
            max=values[-1],
            std=population_std(values),
            skewness=skew,
            kurtosis=kurt,
            notes=tuple(notes),
        )

    @staticmethod
    def _moment(fn, values: List[float], column: str, notes: List[str]) -> Optional[float]:
        try:
            return fn(values)
        except InsufficientData as e:
            logger.warning(f"Column '{column}': {e.message}")
            notes.append(e.message)
            return None

    # ──────────────────────────────────────────────────────────
    # CATEGORICAL
    # ──────────────────────────────────────────────────────────

    def _analyze_categorical(self, column: Column) -> CategoricalAnalysis:
        present = column.present_values()
        counts = value_counts(present)
        ranked = ranked_counts(counts)
        mode, mode_count = ranked[0] if ranked else (None, 0)

        return CategoricalAnalysis(
            column=column.name,
            count=len(present),
            missing=column.total_rows - len(present),
            unique_count=len(counts),
            mode=mode,
            mode_count=mode_count,
            top_values=tuple(ranked[:self.thresholds.top_values_limit]),
            value_counts=counts,
        )
