"""
Survey Analysis — Core Module
==============================
Statistical engine behind the survey processor: schema inference,
descriptive statistics, weighted parameter estimation, chart binning and
rule-based insights.

Components:
  ┌──────────────────────────────────────────────────────────┐
  │ SurveyAnalyzer              — Single entry point          │
  │ parse_csv                   — CSV text → headers + rows   │
  │ build_dataset / infer_kind  — Column typing               │
  │ DescriptiveStatisticsEngine — Per-column summaries        │
  │ WeightedParameterEstimator  — Grouped weighted estimates  │
  │ VisualizationBuilder        — Histograms & bar data       │
  │ InsightRuleEngine           — Threshold rules & quality   │
  │ AnalysisThresholds          — Every tunable cut-off       │
  └──────────────────────────────────────────────────────────┘

Usage:
  from survey_app.core.analysis import SurveyAnalyzer, EstimationRequest
  analyzer = SurveyAnalyzer()
  report = analyzer.analyze(csv_text, requests=[EstimationRequest("age", "mean")])
"""

from .errors import (
    SurveyAnalysisError,
    ParseError,
    UnknownColumn,
    UnsupportedAggregation,
    InsufficientData,
)
from .thresholds import AnalysisThresholds
from .csv_parser import ParsedTable, parse_csv
from .schema import Column, ColumnKind, Dataset, build_dataset, infer_kind, parse_number
from .descriptive_stats import (
    CategoricalAnalysis,
    DescriptiveStatisticsEngine,
    NumericAnalysis,
)
from .estimator import (
    Aggregation,
    EstimationOutcome,
    EstimationRequest,
    EstimationResult,
    GroupEstimate,
    WeightedParameterEstimator,
    allowed_aggregations,
    export_estimates_csv,
    recommend_aggregation,
    weight_candidates,
)
from .visualization import VisualizationBuilder, histogram
from .insight_rules import Insight, InsightKind, InsightRuleEngine, Significance
from .orchestrator import AnalysisReport, DatasetPreview, SurveyAnalyzer

__all__ = [
    "SurveyAnalyzer", "AnalysisReport", "DatasetPreview",
    "AnalysisThresholds",
    "parse_csv", "ParsedTable",
    "Column", "ColumnKind", "Dataset", "build_dataset", "infer_kind", "parse_number",
    "DescriptiveStatisticsEngine", "NumericAnalysis", "CategoricalAnalysis",
    "WeightedParameterEstimator", "Aggregation", "EstimationRequest",
    "EstimationResult", "EstimationOutcome", "GroupEstimate",
    "allowed_aggregations", "recommend_aggregation", "weight_candidates",
    "export_estimates_csv",
    "VisualizationBuilder", "histogram",
    "InsightRuleEngine", "Insight", "InsightKind", "Significance",
    "SurveyAnalysisError", "ParseError", "UnknownColumn",
    "UnsupportedAggregation", "InsufficientData",
]
