"""Trick analysis schemas."""

from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, model_validator


class TrimWindowIn(BaseModel):
    """Schema for changing the trim window of an analysis."""
    trim_start: float = Field(..., ge=0, description="Start of analyzed segment (seconds)")
    trim_end: float = Field(..., gt=0, description="End of analyzed segment (seconds)")

    @model_validator(mode="after")
    def check_order(self) -> "TrimWindowIn":
        if self.trim_end <= self.trim_start:
            raise ValueError("trim_end must be greater than trim_start")
        return self


class AnalysisResponse(BaseModel):
    """Schema for analysis status response."""
    id: str
    user_id: str
    video_filename: str
    video_duration_seconds: Optional[float] = None
    trim_start: float
    trim_end: float
    trick_hint: Optional[str] = None

    processing_status: str
    processing_progress: int
    processing_error: Optional[str] = None
    processing_started_at: Optional[datetime] = None
    processing_completed_at: Optional[datetime] = None

    frames_sampled: int
    frames_with_pose: int

    # Narrated verdict
    trick_name: Optional[str] = None
    confidence: Optional[float] = None
    board_physics: Optional[str] = None
    score: Optional[float] = None
    is_landed: Optional[bool] = None
    height_meters: Optional[float] = None
    feedback_text: Optional[str] = None
    improvement_tip: Optional[str] = None

    created_at: datetime

    class Config:
        from_attributes = True


class TraceSummary(BaseModel):
    """Headline numbers of a motion trace."""
    frames_sampled: int
    frames_with_pose: int
    pose_coverage: float
    peak_board_height: Optional[float] = None
    max_abs_shoulder_rotation: Optional[float] = None


class AnalysisDetailResponse(AnalysisResponse):
    """Analysis plus motion-trace summary."""
    trace_summary: Optional[TraceSummary] = None


class FeedbackCreate(BaseModel):
    """Schema for leaving feedback on an analysis."""
    user_id: str = Field(..., min_length=1, max_length=128)
    analysis_id: Optional[str] = None
    text: str = Field(..., min_length=1, max_length=2000)


class FeedbackResponse(BaseModel):
    id: str
    user_id: str
    analysis_id: Optional[str] = None
    text: str
    created_at: datetime

    class Config:
        from_attributes = True


def trace_summary_from(data: Optional[Dict[str, Any]]) -> Optional[TraceSummary]:
    if not data or "summary" not in data:
        return None
    return TraceSummary(**data["summary"])
