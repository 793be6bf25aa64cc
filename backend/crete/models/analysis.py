"""Trick analysis model."""

import uuid
import json
from datetime import datetime
from typing import List, Optional
from sqlalchemy import String, Integer, Float, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from crete.models.base import Base, TimestampMixin


class ProcessingStatus:
    """Analysis processing status."""
    PENDING = "pending"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    NARRATING = "narrating"
    NARRATION_FAILED = "narration_failed"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def with_trace(cls) -> List[str]:
        return [cls.EXTRACTED, cls.NARRATING, cls.NARRATION_FAILED, cls.COMPLETED]


class TrickAnalysis(Base, TimestampMixin):
    """
    One uploaded clip, its motion trace, and the narrated verdict.

    ``run_generation`` increases whenever the trim changes or the analysis
    is discarded; a worker holding an older generation stops and writes
    nothing.
    """

    __tablename__ = "trick_analyses"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    # Video metadata
    video_filename: Mapped[str] = mapped_column(String(500), nullable=False)
    video_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    video_mime_type: Mapped[str] = mapped_column(String(100), nullable=False, default="video/mp4")
    video_duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Trim window + hint
    trim_start: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    trim_end: Mapped[float] = mapped_column(Float, nullable=False)
    trick_hint: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Processing status
    run_generation: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    processing_status: Mapped[str] = mapped_column(
        String(50),
        default=ProcessingStatus.PENDING,
        nullable=False,
        index=True
    )
    processing_progress: Mapped[int] = mapped_column(Integer, default=0)
    processing_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processing_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    processing_completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    # Motion trace
    frames_sampled: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    frames_with_pose: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    trace_csv: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    _trace_data: Mapped[Optional[str]] = mapped_column("trace_data", Text, nullable=True)

    # Narrated verdict
    trick_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    board_physics: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    is_landed: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    height_meters: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    feedback_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    improvement_tip: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def trace_data(self) -> Optional[dict]:
        if self._trace_data:
            return json.loads(self._trace_data)
        return None

    @trace_data.setter
    def trace_data(self, value: Optional[dict]):
        if value is not None:
            self._trace_data = json.dumps(value)
        else:
            self._trace_data = None

    @property
    def has_trace(self) -> bool:
        return self._trace_data is not None

    def clear_results(self) -> None:
        """Drop the trace and verdict; a new extraction replaces them wholesale."""
        self.frames_sampled = 0
        self.frames_with_pose = 0
        self.trace_csv = None
        self._trace_data = None
        self.trick_name = None
        self.confidence = None
        self.board_physics = None
        self.score = None
        self.is_landed = None
        self.height_meters = None
        self.feedback_text = None
        self.improvement_tip = None
        self.processing_error = None
        self.processing_progress = 0

    def apply_narration(self, result: dict) -> None:
        self.trick_name = result["trickName"]
        self.confidence = result["confidence"]
        self.board_physics = result.get("board_physics")
        self.score = result["score"]
        self.is_landed = result["isLanded"]
        self.height_meters = result.get("heightMeters")
        self.feedback_text = result.get("feedbackText")
        self.improvement_tip = result.get("improvementTip")

    def __repr__(self) -> str:
        return (
            f"<TrickAnalysis(id={self.id}, status={self.processing_status}, "
            f"trick={self.trick_name}, score={self.score})>"
        )
