"""API routes."""

from fastapi import APIRouter

from crete.api import analyses, feedback

api_router = APIRouter()

api_router.include_router(analyses.router, prefix="/analyses", tags=["Analyses"])
api_router.include_router(feedback.router, prefix="/feedback", tags=["Feedback"])
