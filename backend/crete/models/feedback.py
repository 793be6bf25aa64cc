"""Coach feedback model."""

import uuid
from typing import Optional
from sqlalchemy import String, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from crete.models.base import Base, TimestampMixin


class CoachFeedback(Base, TimestampMixin):
    """Free-text feedback a skater left on an analysis; fed back into narration."""

    __tablename__ = "coach_feedback"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    analysis_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("trick_analyses.id", ondelete="SET NULL"),
        nullable=True
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<CoachFeedback(id={self.id}, user={self.user_id})>"
