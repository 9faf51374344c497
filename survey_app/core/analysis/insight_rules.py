"""
Insight Rules Engine — Deterministic findings over computed statistics
========================================================================
There is no model here. Every insight is a threshold check over the
analysis map, rendered through a fixed text template, so each rule can be
tested on its own.

Rules (ids are stable and appear on every emitted Insight):
  DQ-001  dataset missing rate > missing_rate_warning_pct     HIGH   warning
  DA-001  |skewness| > skewness_abs_threshold (numeric)       MEDIUM trend
  OD-001  kurtosis > kurtosis_threshold (numeric)             MEDIUM anomaly
  RP-001  mode share > mode_share_pct_threshold (categorical) MEDIUM pattern
  DS-001  unique/count > uniqueness_ratio_threshold           LOW    info
  AR-001  caller supplied an analysis goal                    HIGH   recommendation

Output order: dataset rules, then numeric columns (in dataset order),
then categorical columns, then the goal recommendation.

Quality score:
  round(w_c·completeness + w_k·consistency + w_v·validity)
  completeness = 100·(1 − missing cells / total cells)
  consistency and validity are inputs (AnalysisThresholds), not measured.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from .descriptive_stats import CategoricalAnalysis, ColumnAnalysis, NumericAnalysis
from .schema import Dataset
from .thresholds import AnalysisThresholds

logger = logging.getLogger(__name__)

SUMMARY_RECOMMENDATIONS = [
    "Review variables with high missing rates for imputation strategies",
    "Consider log transformation for highly skewed numeric variables",
    "Validate categorical variables with extreme concentration patterns",
]


class Significance(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class InsightKind(str, Enum):
    WARNING = "warning"
    TREND = "trend"
    ANOMALY = "anomaly"
    PATTERN = "pattern"
    INFO = "info"
    RECOMMENDATION = "recommendation"


@dataclass(frozen=True)
class Insight:
    category: str
    finding: str
    significance: Significance
    kind: InsightKind
    rule_id: Optional[str] = None
    column: Optional[str] = None
    metric_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "finding": self.finding,
            "significance": self.significance.value,
            "type": self.kind.value,
            "ruleId": self.rule_id,
            "column": self.column,
            "metricValue": self.metric_value,
        }


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may look at."""
    dataset: Dataset
    analysis: Dict[str, ColumnAnalysis]
    thresholds: AnalysisThresholds
    analysis_goal: Optional[str] = None

    def numeric(self) -> Iterable[NumericAnalysis]:
        return [a for a in self.analysis.values() if isinstance(a, NumericAnalysis)]

    def categorical(self) -> Iterable[CategoricalAnalysis]:
        return [a for a in self.analysis.values() if isinstance(a, CategoricalAnalysis)]


Rule = Callable[[RuleContext], List[Insight]]


# ═══════════════════════════════════════════════════════════════
# RULES
# ═══════════════════════════════════════════════════════════════

def missing_rate_pct(ctx: RuleContext) -> float:
    cells = ctx.dataset.total_rows * len(ctx.analysis)
    if cells == 0:
        return 0.0
    missing = sum(a.missing for a in ctx.analysis.values())
    return missing / cells * 100


def rule_missing_rate(ctx: RuleContext) -> List[Insight]:
    rate = missing_rate_pct(ctx)
    if rate <= ctx.thresholds.missing_rate_warning_pct:
        return []
    return [Insight(
        category="Data Quality Alert",
        finding=(
            f"High missing data rate of {rate:.1f}% detected. "
            f"Consider imputation strategies for robust analysis."
        ),
        significance=Significance.HIGH, kind=InsightKind.WARNING,
        rule_id="DQ-001", metric_value=rate,
    )]


def rule_skewness(ctx: RuleContext) -> List[Insight]:
    out = []
    for a in ctx.numeric():
        if a.skewness is None or abs(a.skewness) <= ctx.thresholds.skewness_abs_threshold:
            continue
        direction = "positive" if a.skewness > 0 else "negative"
        out.append(Insight(
            category="Distribution Analysis",
            finding=(
                f"{a.column} shows {direction} skewness ({a.skewness:.2f}). "
                f"Consider transformation for normality."
            ),
            significance=Significance.MEDIUM, kind=InsightKind.TREND,
            rule_id="DA-001", column=a.column, metric_value=a.skewness,
        ))
    return out


def rule_kurtosis(ctx: RuleContext) -> List[Insight]:
    out = []
    for a in ctx.numeric():
        if a.kurtosis is None or a.kurtosis <= ctx.thresholds.kurtosis_threshold:
            continue
        out.append(Insight(
            category="Outlier Detection",
            finding=(
                f"{a.column} exhibits high kurtosis ({a.kurtosis:.2f}), "
                f"indicating potential outliers affecting the distribution."
            ),
            significance=Significance.MEDIUM, kind=InsightKind.ANOMALY,
            rule_id="OD-001", column=a.column, metric_value=a.kurtosis,
        ))
    return out


def rule_mode_concentration(ctx: RuleContext) -> List[Insight]:
    out = []
    for a in ctx.categorical():
        if not a.count or a.mode_share_pct <= ctx.thresholds.mode_share_pct_threshold:
            continue
        out.append(Insight(
            category="Response Pattern",
            finding=(
                f'{a.column} shows high concentration in "{a.mode}" '
                f"({a.mode_share_pct:.1f}%), indicating potential response bias."
            ),
            significance=Significance.MEDIUM, kind=InsightKind.PATTERN,
            rule_id="RP-001", column=a.column, metric_value=a.mode_share_pct,
        ))
    return out


def rule_identifier_like(ctx: RuleContext) -> List[Insight]:
    out = []
    for a in ctx.categorical():
        if not a.count or a.uniqueness_ratio <= ctx.thresholds.uniqueness_ratio_threshold:
            continue
        out.append(Insight(
            category="Data Structure",
            finding=(
                f"{a.column} has very high uniqueness ({a.uniqueness_ratio * 100:.1f}%), "
                f"suggesting it may be an identifier rather than analytical variable."
            ),
            significance=Significance.LOW, kind=InsightKind.INFO,
            rule_id="DS-001", column=a.column, metric_value=a.uniqueness_ratio,
        ))
    return out


def rule_analysis_goal(ctx: RuleContext) -> List[Insight]:
    goal = (ctx.analysis_goal or "").strip()
    if not goal:
        return []
    return [Insight(
        category="Analysis Recommendation",
        finding=(
            f'Based on your goal: "{goal}", focus on variables with strong '
            f"relationships and consider segmentation analysis for deeper insights."
        ),
        significance=Significance.HIGH, kind=InsightKind.RECOMMENDATION,
        rule_id="AR-001",
    )]


def _numeric_column_rules(ctx: RuleContext) -> List[Insight]:
    # skewness and kurtosis findings for one column stay adjacent
    out = []
    for a in ctx.numeric():
        single = RuleContext(ctx.dataset, {a.column: a}, ctx.thresholds)
        out.extend(rule_skewness(single))
        out.extend(rule_kurtosis(single))
    return out


def _categorical_column_rules(ctx: RuleContext) -> List[Insight]:
    out = []
    for a in ctx.categorical():
        single = RuleContext(ctx.dataset, {a.column: a}, ctx.thresholds)
        out.extend(rule_mode_concentration(single))
        out.extend(rule_identifier_like(single))
    return out


DEFAULT_RULES: List[Rule] = [
    rule_missing_rate,
    _numeric_column_rules,
    _categorical_column_rules,
    rule_analysis_goal,
]


# ═══════════════════════════════════════════════════════════════
# ENGINE
# ═══════════════════════════════════════════════════════════════

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class ExecutiveSummary:
    overview: str
    key_findings: List[str] = field(default_factory=list)
    data_quality: str = ""
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overview": self.overview,
            "keyFindings": list(self.key_findings),
            "dataQuality": self.data_quality,
            "recommendations": list(self.recommendations),
        }


class InsightRuleEngine:
    """Evaluates the rule table and derives the quality score and summary."""

    def __init__(self, thresholds: Optional[AnalysisThresholds] = None,
                 rules: Optional[List[Rule]] = None):
        self.thresholds = thresholds or AnalysisThresholds()
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def evaluate(self, dataset: Dataset, analysis: Dict[str, ColumnAnalysis],
                 analysis_goal: Optional[str] = None) -> List[Insight]:
        ctx = RuleContext(dataset, analysis, self.thresholds, analysis_goal)
        insights: List[Insight] = []
        for rule in self.rules:
            insights.extend(rule(ctx))
        logger.debug(f"Rule evaluation produced {len(insights)} insight(s)")
        return insights

    def quality_score(self, dataset: Dataset) -> int:
        t = self.thresholds
        total = dataset.total_cells
        completeness = 100.0 * (1 - dataset.missing_cells / total) if total else 100.0
        score = (
            t.completeness_weight * completeness
            + t.consistency_weight * t.consistency_score
            + t.validity_weight * t.validity_score
        )
        return max(0, min(100, round_half_up(score)))

    def executive_summary(self, dataset: Dataset, analysis: Dict[str, ColumnAnalysis],
                          insights: List[Insight]) -> ExecutiveSummary:
        numeric = sum(1 for a in analysis.values() if isinstance(a, NumericAnalysis))
        categorical = sum(1 for a in analysis.values() if isinstance(a, CategoricalAnalysis))
        high = sum(1 for i in insights if i.significance == Significance.HIGH)
        return ExecutiveSummary(
            overview=(
                f"Survey analysis of {dataset.total_rows} respondents across "
                f"{dataset.total_columns} variables ({numeric} numeric, {categorical} categorical)."
            ),
            key_findings=[i.finding for i in insights[:3]],
            data_quality=f"{high} high-priority data quality issues identified",
            recommendations=list(SUMMARY_RECOMMENDATIONS),
        )
