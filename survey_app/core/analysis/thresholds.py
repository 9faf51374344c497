"""
Analysis Thresholds — One place for every heuristic constant
=============================================================
The survey engine classifies columns, flags findings and scores quality
with a handful of cut-offs. They all live here and are passed explicitly
into each component, so a caller can tighten or relax any of them per run.

Usage:
  thresholds = AnalysisThresholds().override({"numeric_fraction_threshold": 0.5})
  kind = infer_kind(values, thresholds)
"""

import logging
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Dict

logger = logging.getLogger(__name__)


@dataclass
class AnalysisThresholds:
    """All configurable thresholds used across the engine."""

    # ── Schema inference ──
    numeric_fraction_threshold: float = 0.8

    # ── Descriptive statistics / visualization ──
    histogram_bins: int = 20
    top_values_limit: int = 5
    preview_rows: int = 10

    # ── Insight rules ──
    missing_rate_warning_pct: float = 15.0
    skewness_abs_threshold: float = 2.0
    kurtosis_threshold: float = 3.0
    mode_share_pct_threshold: float = 80.0
    uniqueness_ratio_threshold: float = 0.9

    # ── Quality score ──
    # consistency and validity are not measured from the data; callers that
    # have real measurements should pass them in.
    consistency_score: float = 95.0
    validity_score: float = 90.0
    completeness_weight: float = 0.4
    consistency_weight: float = 0.3
    validity_weight: float = 0.3

    # ── Estimation ──
    z_value: float = 1.96
    median_se_factor: float = 1.57

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items()}

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self, key, default)

    def override(self, overrides: Dict[str, Any]) -> 'AnalysisThresholds':
        """Return a new AnalysisThresholds with overrides applied."""
        new = deepcopy(self)
        for k, v in (overrides or {}).items():
            if hasattr(new, k):
                setattr(new, k, v)
            else:
                logger.debug(f"Ignoring unknown threshold override: {k}")
        return new

    @classmethod
    def from_settings(cls, settings: Any) -> 'AnalysisThresholds':
        """Build thresholds with the environment-backed settings applied."""
        return cls().override({
            "numeric_fraction_threshold": settings.NUMERIC_FRACTION_THRESHOLD,
            "histogram_bins": settings.HISTOGRAM_BINS,
        })
