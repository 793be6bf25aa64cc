"""Skater feedback API endpoints."""

from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crete.api.analyses import get_analysis_or_404
from crete.database import get_db
from crete.models.feedback import CoachFeedback
from crete.schemas.analysis import FeedbackCreate, FeedbackResponse

router = APIRouter()


@router.post("", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
async def create_feedback(payload: FeedbackCreate, db: AsyncSession = Depends(get_db)):
    """Store skater feedback; it is included in later narration requests."""
    if payload.analysis_id:
        await get_analysis_or_404(payload.analysis_id, db)

    feedback = CoachFeedback(
        user_id=payload.user_id,
        analysis_id=payload.analysis_id,
        text=payload.text.strip(),
    )
    db.add(feedback)
    await db.commit()
    await db.refresh(feedback)
    return feedback


@router.get("/{user_id}", response_model=List[FeedbackResponse])
async def list_feedback(
    user_id: str,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """Most recent feedback for a skater, newest first."""
    result = await db.execute(
        select(CoachFeedback)
        .where(CoachFeedback.user_id == user_id)
        .order_by(CoachFeedback.created_at.desc())
        .limit(limit)
    )
    return result.scalars().all()
