"""
Weighted Parameter Estimator — Grouped survey estimates with margins of error
===============================================================================
Turns caller-supplied EstimationRequests into per-group estimates.

Aggregations (computed over the present values of the estimating column
inside each group, each value paired with the weight of its own row):

  MEAN        weighted mean Σwx/Σw
              MoE = z·sqrt(weighted variance / effective n),
              effective n = (Σw)² / Σw²
  SUM         unweighted sum of values
              MoE = sqrt(n)·std/sqrt(n), i.e. the population std
  MEDIAN      unweighted median
              MoE = 1.57·std/sqrt(n)
  PROPORTION  share of values equal to the group's first present value
              MoE = z·sqrt(p(1-p)/n)
  COUNT       n present values
              MoE = sqrt(n)

CI = [max(0, estimate − MoE), estimate + MoE]. The upper bound has no
matching cap.

SUM's margin, SUM ignoring weights, and PROPORTION's "first value"
target are kept for parity with the survey tool this engine replaces.
They are not textbook estimators; consumers should not treat them as such.

Every request produces one EstimationOutcome, in request order, holding
either the result or the typed error that stopped it. That includes
unknown aggregation names and weight columns holding negative values:
both fail their own request only.
"""

import csv
import io
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .descriptive_stats import percentile, population_std
from .errors import InsufficientData, SurveyAnalysisError, UnsupportedAggregation
from .schema import Column, ColumnKind, Dataset, is_present, parse_number
from .thresholds import AnalysisThresholds

logger = logging.getLogger(__name__)

NO_GROUPING = "None"
OVERALL_GROUP = "Overall"

EXPORT_HEADERS = [
    "Parameter", "Group", "Aggregation", "Estimate", "MarginOfError",
    "CI-Lower", "CI-Upper", "SampleSize", "WeightedN",
]


class Aggregation(str, Enum):
    MEAN = "mean"
    SUM = "sum"
    MEDIAN = "median"
    PROPORTION = "proportion"
    COUNT = "count"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def numeric_only(self) -> bool:
        return self in (Aggregation.MEAN, Aggregation.SUM, Aggregation.MEDIAN)

    @classmethod
    def parse(cls, value: Union[str, 'Aggregation']) -> 'Aggregation':
        """Accepts the enum value ("mean") or the display label ("Mean")."""
        if isinstance(value, Aggregation):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedAggregation(str(value), known=[a.label for a in cls]) from None

    @classmethod
    def try_parse(cls, value: Union[str, 'Aggregation']) -> Optional['Aggregation']:
        try:
            return cls.parse(value)
        except UnsupportedAggregation:
            return None


# ═══════════════════════════════════════════════════════════════
# REQUEST / RESULT TYPES
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EstimationRequest:
    estimating_column: str
    aggregation: Union[Aggregation, str]
    grouping_column: Optional[str] = None
    weight_column: Optional[str] = None

    def __post_init__(self):
        # unknown names are kept as text and fail in estimate(), on their own outcome
        parsed = Aggregation.try_parse(self.aggregation)
        object.__setattr__(
            self, "aggregation",
            parsed if parsed is not None else str(self.aggregation).strip(),
        )
        if self.grouping_column in ("", NO_GROUPING):
            object.__setattr__(self, "grouping_column", None)
        if self.weight_column == "":
            object.__setattr__(self, "weight_column", None)

    @property
    def grouping_label(self) -> str:
        return self.grouping_column or NO_GROUPING

    @property
    def aggregation_label(self) -> str:
        if isinstance(self.aggregation, Aggregation):
            return self.aggregation.label
        return self.aggregation

    def to_dict(self) -> Dict[str, Any]:
        return {
            "estimatingParameter": self.estimating_column,
            "baseParameter": self.grouping_label,
            "aggregationType": self.aggregation_label,
            "weightVariable": self.weight_column,
        }


@dataclass(frozen=True)
class GroupEstimate:
    group: str
    estimate: Optional[float]
    margin_of_error: Optional[float]
    confidence_interval: Optional[Tuple[float, float]]
    sample_size: int
    weighted_n: float

    @classmethod
    def build(cls, group: str, estimate: Optional[float], moe: Optional[float],
              sample_size: int, weighted_n: float) -> 'GroupEstimate':
        ci = None
        if estimate is not None and moe is not None:
            ci = (max(0.0, estimate - moe), estimate + moe)
        return cls(group, estimate, moe, ci, sample_size, weighted_n)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group": self.group,
            "estimate": self.estimate,
            "marginOfError": self.margin_of_error,
            "confidenceInterval": list(self.confidence_interval) if self.confidence_interval else None,
            "sampleSize": self.sample_size,
            "weightedN": self.weighted_n,
        }


@dataclass(frozen=True)
class EstimationResult:
    request: EstimationRequest
    groups: Tuple[GroupEstimate, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        d = self.request.to_dict()
        d["groups"] = [g.to_dict() for g in self.groups]
        return d


@dataclass(frozen=True)
class EstimationOutcome:
    """One slot per request: status "ok" with a result, or "error" with the failure."""
    request: EstimationRequest
    result: Optional[EstimationResult] = None
    error: Optional[SurveyAnalysisError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def status(self) -> str:
        return "ok" if self.ok else "error"

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"status": self.status, "request": self.request.to_dict()}
        if self.ok:
            d["result"] = self.result.to_dict()
        else:
            d["error"] = self.error.to_dict()
        return d


# ═══════════════════════════════════════════════════════════════
# AGGREGATION MATH
# ═══════════════════════════════════════════════════════════════

def weighted_mean(values: Sequence[float], weights: Sequence[float]) -> float:
    total_weight = sum(weights)
    if not values or total_weight <= 0:
        raise InsufficientData("weighted mean", required=1, available=len(values),
                               reason="weights must sum to a positive number")
    return sum(v * w for v, w in zip(values, weights)) / total_weight


def weighted_margin_of_error(values: Sequence[float], weights: Sequence[float],
                             z_value: float = 1.96) -> float:
    wmean = weighted_mean(values, weights)
    total_weight = sum(weights)
    variance = sum(w * (v - wmean) ** 2 for v, w in zip(values, weights)) / total_weight
    effective_n = total_weight ** 2 / sum(w * w for w in weights)
    return z_value * math.sqrt(variance / effective_n)


def row_weight(weight_column: Optional[Column], row: int) -> float:
    """
    Weight for one row: the parsed value, or 1 when absent, unparseable or zero.
    Negative weights are rejected up front by check_weights().
    """
    if weight_column is None:
        return 1.0
    number = parse_number(weight_column.value_at(row))
    return number if number else 1.0


def check_weights(weight_column: Column) -> None:
    """Raise InsufficientData when any row carries a negative weight."""
    negative = [
        row for row in range(weight_column.total_rows)
        if (parse_number(weight_column.value_at(row)) or 0.0) < 0
    ]
    if negative:
        raise InsufficientData(
            "weighted estimate",
            required=weight_column.total_rows,
            available=weight_column.total_rows - len(negative),
            reason=(
                f"weight column '{weight_column.name}' has {len(negative)} negative "
                f"value(s), first at data row {negative[0] + 1}"
            ),
        )


# ═══════════════════════════════════════════════════════════════
# ESTIMATOR
# ═══════════════════════════════════════════════════════════════

class WeightedParameterEstimator:
    """Computes grouped, optionally weighted estimates for a dataset."""

    def __init__(self, thresholds: Optional[AnalysisThresholds] = None):
        self.thresholds = thresholds or AnalysisThresholds()

    def estimate_all(self, dataset: Dataset,
                     requests: Sequence[EstimationRequest]) -> List[EstimationOutcome]:
        outcomes: List[EstimationOutcome] = []
        for request in requests:
            try:
                result = self.estimate(dataset, request)
                outcomes.append(EstimationOutcome(request=request, result=result))
            except SurveyAnalysisError as e:
                logger.warning(
                    f"Estimation failed for '{request.estimating_column}' "
                    f"({request.aggregation_label}): [{e.code}] {e.message}"
                )
                outcomes.append(EstimationOutcome(request=request, error=e))

        failed = sum(1 for o in outcomes if not o.ok)
        logger.info(f"Estimation batch: {len(outcomes) - failed} ok, {failed} failed")
        return outcomes

    def estimate(self, dataset: Dataset, request: EstimationRequest) -> EstimationResult:
        column = dataset.column(request.estimating_column, role="estimating")
        grouping = (
            dataset.column(request.grouping_column, role="grouping")
            if request.grouping_column else None
        )
        weights = (
            dataset.column(request.weight_column, role="weight")
            if request.weight_column else None
        )

        aggregation = Aggregation.parse(request.aggregation)
        if aggregation.numeric_only and column.kind != ColumnKind.NUMERIC:
            raise UnsupportedAggregation(aggregation.label, column.kind.value, column.name)
        if weights is not None:
            check_weights(weights)

        groups: List[GroupEstimate] = []
        for label, rows in self._groups(dataset, grouping):
            estimate = self._estimate_group(aggregation, column, weights, label, rows)
            logger.debug(
                f"{column.name} [{aggregation.label}] group={label!r}: "
                f"estimate={estimate.estimate} moe={estimate.margin_of_error}"
            )
            groups.append(estimate)

        return EstimationResult(request=request, groups=tuple(groups))

    @staticmethod
    def _groups(dataset: Dataset, grouping: Optional[Column]) -> List[Tuple[str, List[int]]]:
        if grouping is None:
            return [(OVERALL_GROUP, list(range(dataset.total_rows)))]
        index: Dict[str, List[int]] = {}
        for row, value in enumerate(grouping.raw_values):
            if is_present(value):
                index.setdefault(value, []).append(row)
        return list(index.items())

    def _estimate_group(self, aggregation: Aggregation, column: Column,
                        weight_column: Optional[Column], label: str,
                        rows: List[int]) -> GroupEstimate:
        weighted_n = sum(row_weight(weight_column, r) for r in rows)
        present_rows = [r for r in rows if is_present(column.value_at(r))]
        z = self.thresholds.z_value

        if aggregation == Aggregation.COUNT:
            n = len(present_rows)
            return GroupEstimate.build(label, float(n), math.sqrt(n), n, weighted_n)

        if aggregation == Aggregation.PROPORTION:
            values = [column.value_at(r) for r in present_rows]
            n = len(values)
            if n == 0:
                return GroupEstimate.build(label, None, None, 0, weighted_n)
            target = values[0]
            p = sum(1 for v in values if v == target) / n
            moe = z * math.sqrt(p * (1 - p) / n)
            return GroupEstimate.build(label, p, moe, n, weighted_n)

        pairs = [
            (column.number_at(r), row_weight(weight_column, r))
            for r in present_rows
        ]
        pairs = [(v, w) for v, w in pairs if v is not None]
        values = [v for v, _ in pairs]
        n = len(values)
        if n == 0:
            return GroupEstimate.build(label, None, None, 0, weighted_n)

        if aggregation == Aggregation.MEAN:
            group_weights = [w for _, w in pairs]
            estimate = weighted_mean(values, group_weights)
            moe = weighted_margin_of_error(values, group_weights, z)
        elif aggregation == Aggregation.SUM:
            estimate = sum(values)
            moe = math.sqrt(n) * population_std(values) / math.sqrt(n)
        else:
            estimate = percentile(sorted(values), 0.5)
            moe = self.thresholds.median_se_factor * population_std(values) / math.sqrt(n)

        return GroupEstimate.build(label, estimate, moe, n, weighted_n)


# ═══════════════════════════════════════════════════════════════
# AGGREGATION GUIDANCE
# ═══════════════════════════════════════════════════════════════

def allowed_aggregations(kind: ColumnKind) -> List[Aggregation]:
    if kind == ColumnKind.NUMERIC:
        return [Aggregation.MEAN, Aggregation.SUM, Aggregation.MEDIAN, Aggregation.COUNT]
    return [Aggregation.PROPORTION, Aggregation.COUNT]


def recommend_aggregation(column: Column) -> Aggregation:
    if column.kind != ColumnKind.NUMERIC:
        return Aggregation.PROPORTION
    name = column.name.lower()
    if "rating" in name or "score" in name:
        return Aggregation.MEAN
    if "total" in name or "amount" in name:
        return Aggregation.SUM
    return Aggregation.MEAN


def weight_candidates(dataset: Dataset) -> List[str]:
    return [c.name for c in dataset.numeric_columns()]


# ═══════════════════════════════════════════════════════════════
# CSV EXPORT
# ═══════════════════════════════════════════════════════════════

def _fmt(value: Optional[float], decimals: int) -> str:
    return "" if value is None else f"{value:.{decimals}f}"


def export_estimates_csv(results: Sequence[Union[EstimationResult, EstimationOutcome]]) -> str:
    """
    Render estimation results as CSV. Failed outcomes are skipped;
    estimate/MoE/CI use 4 decimals, weighted N uses 0.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)

    for item in results:
        if isinstance(item, EstimationOutcome):
            if not item.ok:
                continue
            item = item.result
        request = item.request
        for g in item.groups:
            lower, upper = g.confidence_interval or (None, None)
            writer.writerow([
                request.estimating_column,
                g.group,
                request.aggregation_label,
                _fmt(g.estimate, 4),
                _fmt(g.margin_of_error, 4),
                _fmt(lower, 4),
                _fmt(upper, 4),
                g.sample_size,
                _fmt(g.weighted_n, 0),
            ])
    return buffer.getvalue()
