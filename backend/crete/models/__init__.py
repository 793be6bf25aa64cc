"""Database models."""

from crete.models.base import Base
from crete.models.analysis import TrickAnalysis, ProcessingStatus
from crete.models.feedback import CoachFeedback

__all__ = [
    "Base",
    "TrickAnalysis",
    "ProcessingStatus",
    "CoachFeedback",
]
