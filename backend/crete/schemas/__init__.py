"""Pydantic schemas for API request/response models."""

from crete.schemas.analysis import (
    TrimWindowIn,
    AnalysisResponse,
    AnalysisDetailResponse,
    TraceSummary,
    FeedbackCreate,
    FeedbackResponse,
)

__all__ = [
    "TrimWindowIn",
    "AnalysisResponse",
    "AnalysisDetailResponse",
    "TraceSummary",
    "FeedbackCreate",
    "FeedbackResponse",
]
