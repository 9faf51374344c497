"""
API Router — Combines all endpoint groups.

Survey (5 endpoints):  /api/v1/survey/{preview,analyze,estimates,estimates/export,health}
"""

from fastapi import APIRouter

from survey_app.api.v1.survey import router as survey_router

api_router = APIRouter()

api_router.include_router(
    survey_router,
    prefix="/survey",
    tags=["Survey Analysis"],
)
