"""
Survey Processor Engine — FastAPI Server (Port 8001)
======================================================
Survey CSV analysis: schema inference, descriptive statistics,
weighted parameter estimates with margins of error, chart data and
rule-based insights.

Run:
  uvicorn main:app --host 0.0.0.0 --port 8001 --reload
  # or
  python main.py
"""

import logging
import os
from contextlib import asynccontextmanager

# Load .env file BEFORE anything reads os.getenv()
from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from survey_app.config import settings  # noqa: E402

# ── Logging ──
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(name)-30s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("survey_engine")


# ── Lifespan: warm up ──
@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        from survey_app.core.analysis import AnalysisThresholds, SurveyAnalyzer
        thresholds = AnalysisThresholds.from_settings(settings)
        SurveyAnalyzer(thresholds).analyze("warmup,label\n1,a\n2,b\n")
        logger.info(
            f"Engine warmed up: numeric threshold {thresholds.numeric_fraction_threshold}, "
            f"{thresholds.histogram_bins} histogram bins"
        )
    except Exception as e:
        logger.warning(f"Engine warmup partial: {e}")

    yield
    logger.info("Shutting down Survey Processor Engine")


# ── Create FastAPI app ──
app = FastAPI(
    title="Survey Processor Engine",
    description=(
        "Survey CSV analysis: numeric/categorical schema inference, "
        "descriptive statistics with skewness and kurtosis, weighted grouped "
        "estimates with confidence intervals, histogram/bar chart data, "
        "rule-based insights and a data quality score."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Mount all API routes ──
from survey_app.api.router import api_router  # noqa: E402
app.include_router(api_router, prefix="/api/v1")


# ── Root ──
@app.get("/", tags=["Root"])
async def root():
    return {
        "service": "Survey Processor Engine",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "survey": "/api/v1/survey/ (5 endpoints)",
        },
        "health": "/api/v1/survey/health",
    }


# ── Direct run ──
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=os.getenv("RELOAD", "true").lower() == "true",
        log_level="info",
    )
