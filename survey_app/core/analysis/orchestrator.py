"""
Survey Analyzer — Single entry point for the analysis core
============================================================
Wires the components in data-flow order:

  CSV text ─▶ parse_csv ─▶ build_dataset ─▶ DescriptiveStatisticsEngine
                                   │                   │
                                   │                   ├─▶ VisualizationBuilder
                                   │                   └─▶ InsightRuleEngine
                                   └─▶ WeightedParameterEstimator (requests)

Each call is a pure function of its inputs: no state is kept between
calls and every returned object is immutable.

Usage:
  analyzer = SurveyAnalyzer()
  report = analyzer.analyze(csv_text, analysis_goal="Understand satisfaction")
  outcomes = analyzer.estimate(report.dataset, [EstimationRequest("age", "mean", "city")])
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from .csv_parser import parse_csv
from .descriptive_stats import ColumnAnalysis, DescriptiveStatisticsEngine, mean
from .estimator import EstimationOutcome, EstimationRequest, WeightedParameterEstimator
from .insight_rules import ExecutiveSummary, Insight, InsightRuleEngine
from .schema import ColumnKind, Dataset, build_dataset
from .thresholds import AnalysisThresholds
from .visualization import ColumnVisualization, VisualizationBuilder

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# RESULT BUNDLES
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class VariablePreview:
    name: str
    kind: ColumnKind
    missing: int
    unique_values: int
    mean: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "type": self.kind.value,
            "missing": self.missing,
            "uniqueValues": self.unique_values,
        }
        if self.kind == ColumnKind.NUMERIC:
            d.update({"mean": self.mean, "min": self.min, "max": self.max})
        return d


@dataclass(frozen=True)
class DatasetPreview:
    total_rows: int
    total_columns: int
    missing_values: int
    variables: List[VariablePreview] = field(default_factory=list)
    sample_data: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRows": self.total_rows,
            "totalColumns": self.total_columns,
            "missingValues": self.missing_values,
            "variables": [v.to_dict() for v in self.variables],
            "sampleData": [dict(r) for r in self.sample_data],
        }


@dataclass(frozen=True)
class AnalysisReport:
    dataset: Dataset
    statistical_analysis: Dict[str, ColumnAnalysis]
    visualizations: Dict[str, ColumnVisualization]
    insights: List[Insight]
    quality_score: int
    executive_summary: ExecutiveSummary
    parameter_estimates: List[EstimationOutcome] = field(default_factory=list)
    timing: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statisticalAnalysis": {k: v.to_dict() for k, v in self.statistical_analysis.items()},
            "parameterEstimates": [o.to_dict() for o in self.parameter_estimates],
            "insights": [i.to_dict() for i in self.insights],
            "visualizations": {k: v.to_dict() for k, v in self.visualizations.items()},
            "qualityScore": self.quality_score,
            "executiveSummary": self.executive_summary.to_dict(),
            "timing": dict(self.timing),
        }


# ═══════════════════════════════════════════════════════════════
# ANALYZER
# ═══════════════════════════════════════════════════════════════

class SurveyAnalyzer:
    """Runs the full survey pipeline with one explicit set of thresholds."""

    def __init__(self, thresholds: Optional[AnalysisThresholds] = None):
        self.thresholds = thresholds or AnalysisThresholds()
        self.stats = DescriptiveStatisticsEngine(self.thresholds)
        self.visuals = VisualizationBuilder(self.thresholds)
        self.rules = InsightRuleEngine(self.thresholds)
        self.estimator = WeightedParameterEstimator(self.thresholds)

    def load(self, csv_text: str,
             type_overrides: Optional[Dict[str, Any]] = None) -> Dataset:
        """Parse and classify. Any ParseError rejects the whole dataset."""
        table = parse_csv(csv_text)
        return build_dataset(table, self.thresholds, type_overrides)

    def preview(self, source: Union[str, Dataset],
                type_overrides: Optional[Dict[str, Any]] = None) -> DatasetPreview:
        dataset = self._dataset(source, type_overrides)
        variables = []
        for c in dataset.columns:
            quick: Dict[str, Optional[float]] = {}
            if c.is_numeric:
                values = c.numeric_values()
                quick = {
                    "mean": mean(values) if values else 0.0,
                    "min": min(values) if values else 0.0,
                    "max": max(values) if values else 0.0,
                }
            variables.append(VariablePreview(
                name=c.name, kind=c.kind,
                missing=c.missing_count, unique_values=c.unique_count(),
                **quick,
            ))

        return DatasetPreview(
            total_rows=dataset.total_rows,
            total_columns=dataset.total_columns,
            missing_values=dataset.missing_cells,
            variables=variables,
            sample_data=list(dataset.rows[:self.thresholds.preview_rows]),
        )

    def analyze(self, source: Union[str, Dataset],
                analysis_goal: Optional[str] = None,
                requests: Optional[Sequence[EstimationRequest]] = None,
                type_overrides: Optional[Dict[str, Any]] = None) -> AnalysisReport:
        timing: Dict[str, float] = {}
        t0 = time.perf_counter()
        dataset = self._dataset(source, type_overrides)
        timing["load_ms"] = round((time.perf_counter() - t0) * 1000, 2)

        t1 = time.perf_counter()
        analysis = self.stats.analyze(dataset)
        visualizations = self.visuals.build(dataset, analysis)
        insights = self.rules.evaluate(dataset, analysis, analysis_goal)
        score = self.rules.quality_score(dataset)
        summary = self.rules.executive_summary(dataset, analysis, insights)
        timing["analysis_ms"] = round((time.perf_counter() - t1) * 1000, 2)

        estimates: List[EstimationOutcome] = []
        if requests:
            t2 = time.perf_counter()
            estimates = self.estimator.estimate_all(dataset, requests)
            timing["estimation_ms"] = round((time.perf_counter() - t2) * 1000, 2)

        logger.info(
            f"Analysis complete: {dataset.total_rows} rows, {dataset.total_columns} columns, "
            f"{len(insights)} insights, quality score {score}"
        )
        return AnalysisReport(
            dataset=dataset,
            statistical_analysis=analysis,
            visualizations=visualizations,
            insights=insights,
            quality_score=score,
            executive_summary=summary,
            parameter_estimates=estimates,
            timing=timing,
        )

    def estimate(self, source: Union[str, Dataset],
                 requests: Sequence[EstimationRequest],
                 type_overrides: Optional[Dict[str, Any]] = None) -> List[EstimationOutcome]:
        dataset = self._dataset(source, type_overrides)
        return self.estimator.estimate_all(dataset, requests)

    def _dataset(self, source: Union[str, Dataset],
                 type_overrides: Optional[Dict[str, Any]]) -> Dataset:
        if isinstance(source, Dataset):
            return source
        return self.load(source, type_overrides)
