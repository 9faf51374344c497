"""
Survey Analysis — API Endpoints
=================================
Thin FastAPI layer over SurveyAnalyzer. No statistics live here.

Endpoints:
  POST /preview           — Column typing, missing counts, first rows
  POST /analyze           — Full analysis (stats, charts, insights, score, summary)
  POST /estimates         — Weighted parameter estimates, one outcome per request
  POST /estimates/export  — Same estimates rendered as CSV
  GET  /health            — Component health check

Request and response bodies use camelCase keys throughout (csvText,
typeOverrides, analysisGoal, parameters, thresholds.histogramBins, ...).
Invalid threshold overrides are rejected by pydantic with 422.

Integration (in main.py):
  from survey_app.api.router import api_router
  app.include_router(api_router, prefix="/api/v1")
"""

import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

from survey_app.config import settings
from survey_app.core.analysis import (
    AnalysisThresholds,
    EstimationRequest,
    SurveyAnalysisError,
    SurveyAnalyzer,
    export_estimates_csv,
)

logger = logging.getLogger(__name__)
router = APIRouter()

VERSION = "1.0.0"


# ═══════════════════════════════════════════════════════════════
# REQUEST / RESPONSE SCHEMAS
# ═══════════════════════════════════════════════════════════════

class ParameterSpec(BaseModel):
    estimating_parameter: str = Field(..., alias="estimatingParameter")
    base_parameter: Optional[str] = Field(default="None", alias="baseParameter",
                                          description="Grouping column, or 'None' for ungrouped")
    aggregation_type: str = Field(..., alias="aggregationType",
                                  description="Mean|Sum|Median|Proportion|Count")
    weight_variable: Optional[str] = Field(default=None, alias="weightVariable")


class ThresholdOverrides(BaseModel):
    """Client-tunable subset of AnalysisThresholds; unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid")

    numeric_fraction_threshold: Optional[float] = Field(
        default=None, alias="numericFractionThreshold", ge=0, le=1)
    histogram_bins: Optional[int] = Field(default=None, alias="histogramBins", ge=1, le=500)
    top_values_limit: Optional[int] = Field(default=None, alias="topValuesLimit", ge=1)
    preview_rows: Optional[int] = Field(default=None, alias="previewRows", ge=0)
    missing_rate_warning_pct: Optional[float] = Field(
        default=None, alias="missingRateWarningPct", ge=0, le=100)
    skewness_abs_threshold: Optional[float] = Field(
        default=None, alias="skewnessAbsThreshold", ge=0)
    kurtosis_threshold: Optional[float] = Field(default=None, alias="kurtosisThreshold")
    mode_share_pct_threshold: Optional[float] = Field(
        default=None, alias="modeSharePctThreshold", ge=0, le=100)
    uniqueness_ratio_threshold: Optional[float] = Field(
        default=None, alias="uniquenessRatioThreshold", ge=0, le=1)
    consistency_score: Optional[float] = Field(
        default=None, alias="consistencyScore", ge=0, le=100)
    validity_score: Optional[float] = Field(default=None, alias="validityScore", ge=0, le=100)
    completeness_weight: Optional[float] = Field(default=None, alias="completenessWeight", ge=0)
    consistency_weight: Optional[float] = Field(default=None, alias="consistencyWeight", ge=0)
    validity_weight: Optional[float] = Field(default=None, alias="validityWeight", ge=0)
    z_value: Optional[float] = Field(default=None, alias="zValue", gt=0)
    median_se_factor: Optional[float] = Field(default=None, alias="medianSeFactor", gt=0)


class PreviewRequest(BaseModel):
    csv_text: str = Field(..., alias="csvText", description="Raw CSV text, first row = headers")
    type_overrides: Optional[Dict[str, str]] = Field(
        default=None, alias="typeOverrides",
        description="Column name → 'numeric' | 'categorical'",
    )


class AnalyzeRequest(PreviewRequest):
    analysis_goal: Optional[str] = Field(default=None, alias="analysisGoal", max_length=2000)
    parameters: Optional[List[ParameterSpec]] = None
    thresholds: Optional[ThresholdOverrides] = None


class EstimatesRequest(PreviewRequest):
    parameters: List[ParameterSpec] = Field(..., min_length=1)


class AnalyzeResponse(BaseModel):
    statisticalAnalysis: Dict[str, Any] = {}
    parameterEstimates: List[Dict[str, Any]] = []
    insights: List[Dict[str, Any]] = []
    visualizations: Dict[str, Any] = {}
    qualityScore: int = 0
    executiveSummary: Dict[str, Any] = {}
    timing: Dict[str, float] = {}


class EstimatesResponse(BaseModel):
    parameterEstimates: List[Dict[str, Any]] = []
    counts: Dict[str, int] = {}


class HealthResponse(BaseModel):
    status: str
    components: Dict[str, str]
    version: str
    uptimeSeconds: Optional[float] = None


# ═══════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════

_start_time = time.time()


def _analyzer(overrides: Optional[ThresholdOverrides] = None) -> SurveyAnalyzer:
    thresholds = AnalysisThresholds.from_settings(settings)
    if overrides is not None:
        thresholds = thresholds.override(overrides.model_dump(exclude_none=True))
    return SurveyAnalyzer(thresholds)


def _check_size(csv_text: str):
    size_mb = len(csv_text.encode("utf-8")) / (1024 * 1024)
    if size_mb > settings.MAX_UPLOAD_MB:
        raise HTTPException(
            status_code=413,
            detail={
                "error": "payload_too_large",
                "message": f"CSV is {size_mb:.1f} MB; limit is {settings.MAX_UPLOAD_MB} MB",
            },
        )


def _to_requests(specs: Optional[List[ParameterSpec]]) -> List[EstimationRequest]:
    return [
        EstimationRequest(
            estimating_column=s.estimating_parameter,
            aggregation=s.aggregation_type,
            grouping_column=s.base_parameter,
            weight_column=s.weight_variable,
        )
        for s in (specs or [])
    ]


def _unprocessable(e: SurveyAnalysisError) -> HTTPException:
    return HTTPException(status_code=422, detail=e.to_dict())


# ═══════════════════════════════════════════════════════════════
# ENDPOINTS
# ═══════════════════════════════════════════════════════════════

@router.post("/preview")
async def preview_dataset(request: PreviewRequest) -> Dict[str, Any]:
    """Column typing and missing counts for an uploaded CSV, plus the first rows."""
    _check_size(request.csv_text)
    try:
        return _analyzer().preview(request.csv_text, request.type_overrides).to_dict()
    except SurveyAnalysisError as e:
        logger.info(f"Preview rejected: [{e.code}] {e.message}")
        raise _unprocessable(e)
    except Exception as e:
        logger.error(f"Survey preview error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail={"error": "internal_error", "message": str(e)})


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_survey(request: AnalyzeRequest):
    """
    Full pipeline: Parse → Schema → Descriptive Stats → Visualizations →
    Insight Rules → Quality Score → Executive Summary (+ Estimates if requested)
    """
    _check_size(request.csv_text)
    try:
        analyzer = _analyzer(request.thresholds)
        report = analyzer.analyze(
            request.csv_text,
            analysis_goal=request.analysis_goal,
            requests=_to_requests(request.parameters),
            type_overrides=request.type_overrides,
        )
        return AnalyzeResponse(**report.to_dict())
    except SurveyAnalysisError as e:
        logger.info(f"Analysis rejected: [{e.code}] {e.message}")
        raise _unprocessable(e)
    except Exception as e:
        logger.error(f"Survey analysis error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail={"error": "internal_error", "message": str(e)})


def _run_estimates(request: EstimatesRequest):
    _check_size(request.csv_text)
    try:
        analyzer = _analyzer()
        return analyzer.estimate(
            request.csv_text, _to_requests(request.parameters), request.type_overrides,
        )
    except SurveyAnalysisError as e:
        logger.info(f"Estimation rejected: [{e.code}] {e.message}")
        raise _unprocessable(e)
    except Exception as e:
        logger.error(f"Survey estimation error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail={"error": "internal_error", "message": str(e)})


@router.post("/estimates", response_model=EstimatesResponse)
async def compute_estimates(request: EstimatesRequest):
    """One outcome per parameter, in request order; failures carry their error."""
    outcomes = _run_estimates(request)
    ok = sum(1 for o in outcomes if o.ok)
    return EstimatesResponse(
        parameterEstimates=[o.to_dict() for o in outcomes],
        counts={"total": len(outcomes), "ok": ok, "failed": len(outcomes) - ok},
    )


@router.post("/estimates/export")
async def export_estimates(request: EstimatesRequest):
    """Estimates as CSV (successful outcomes only)."""
    outcomes = _run_estimates(request)
    return Response(
        content=export_estimates_csv(outcomes),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="parameter_estimates.csv"'},
    )


@router.get("/health", response_model=HealthResponse)
async def health():
    components = {}
    try:
        analyzer = _analyzer()
        report = analyzer.analyze("id,label\n1,a\n2,b\n")
        components["parser"] = "ok"
        components["statistics"] = "ok" if report.statistical_analysis else "degraded"
        components["insights"] = "ok"
        components["estimator"] = "ok"
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        components["engine"] = f"error: {e}"

    status = "healthy" if all(v == "ok" for v in components.values()) else "degraded"
    return HealthResponse(
        status=status,
        components=components,
        version=VERSION,
        uptimeSeconds=round(time.time() - _start_time, 1),
    )
