"""Trick analysis API endpoints."""

import asyncio
import mimetypes
import os
import uuid
from pathlib import Path
from typing import Optional

import cv2
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, Query, Response, status
from fastapi.responses import PlainTextResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crete.config import get_settings
from crete.database import get_db
from crete.cv.errors import InvalidTrimWindow
from crete.cv.frame_sampler import OpenCVVideoClip, TrimWindow
from crete.cv.motion_trace import MotionTrace
from crete.cv.trace_player import render_overlay_frame
from crete.models.analysis import TrickAnalysis, ProcessingStatus
from crete.schemas.analysis import (
    AnalysisResponse,
    AnalysisDetailResponse,
    TrimWindowIn,
    trace_summary_from,
)

router = APIRouter()
settings = get_settings()


ALLOWED_EXTENSIONS = {".mp4", ".mov", ".webm", ".m4v", ".avi"}
MAX_FILE_SIZE = settings.max_video_size_mb * 1024 * 1024  # Convert to bytes


def validate_video_file(filename: str, file_size: int) -> None:
    """Validate video file extension and size."""
    ext = Path(filename).suffix.lower()

    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid file type. Allowed: {sorted(ALLOWED_EXTENSIONS)}"
        )

    if file_size > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Maximum: {settings.max_video_size_mb}MB"
        )


def validate_trim(trim_start: float, trim_end: float, duration: float) -> TrimWindow:
    """Build a TrimWindow that fits the clip, or raise 400."""
    try:
        trim = TrimWindow(start=trim_start, end=trim_end)
        trim.validate_for(duration)
    except InvalidTrimWindow as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return trim


def probe_duration(video_path: str) -> float:
    with OpenCVVideoClip(video_path) as clip:
        if not clip.is_ready():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Video could not be decoded"
            )
        return clip.duration


async def get_analysis_or_404(analysis_id: str, db: AsyncSession) -> TrickAnalysis:
    result = await db.execute(select(TrickAnalysis).where(TrickAnalysis.id == analysis_id))
    analysis = result.scalar_one_or_none()

    if not analysis:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Analysis not found"
        )
    return analysis


def queue_extraction(analysis: TrickAnalysis) -> None:
    from crete.worker import extract_motion_trace_task
    extract_motion_trace_task.delay(analysis.id, analysis.run_generation)


@router.post("/upload", response_model=AnalysisResponse, status_code=status.HTTP_201_CREATED)
async def upload_video(
    file: UploadFile = File(...),
    user_id: str = Form(...),
    trim_start: float = Form(0.0),
    trim_end: Optional[float] = Form(None),
    trick_hint: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db)
):
    """
    Upload a trick clip for analysis.

    Extraction is queued immediately. Omitting ``trim_end`` analyzes to the
    end of the clip.
    """
    contents = await file.read()
    validate_video_file(file.filename, len(contents))

    upload_dir = Path(settings.upload_dir) / user_id
    upload_dir.mkdir(parents=True, exist_ok=True)

    file_ext = Path(file.filename).suffix.lower()
    file_path = upload_dir / f"{uuid.uuid4()}{file_ext}"

    with open(file_path, "wb") as f:
        f.write(contents)

    try:
        duration = await asyncio.to_thread(probe_duration, str(file_path))
        trim = validate_trim(trim_start, trim_end if trim_end is not None else duration, duration)
    except HTTPException:
        os.remove(file_path)
        raise

    mime_type = file.content_type or mimetypes.guess_type(file.filename)[0] or "video/mp4"

    analysis = TrickAnalysis(
        user_id=user_id,
        video_filename=file.filename,
        video_path=str(file_path),
        video_mime_type=mime_type,
        video_duration_seconds=duration,
        trim_start=trim.start,
        trim_end=trim.end,
        trick_hint=trick_hint,
        run_generation=1,
        processing_status=ProcessingStatus.PENDING,
        processing_progress=0,
        frames_sampled=0,
        frames_with_pose=0,
    )

    db.add(analysis)
    await db.commit()
    await db.refresh(analysis)

    queue_extraction(analysis)

    return analysis


@router.get("/{analysis_id}", response_model=AnalysisDetailResponse)
async def get_analysis(analysis_id: str, db: AsyncSession = Depends(get_db)):
    """Get processing status and verdict for an analysis."""
    analysis = await get_analysis_or_404(analysis_id, db)
    response = AnalysisDetailResponse.model_validate(analysis)
    response.trace_summary = trace_summary_from(analysis.trace_data)
    return response


@router.get("/{analysis_id}/trace", response_class=PlainTextResponse)
async def get_trace_csv(analysis_id: str, db: AsyncSession = Depends(get_db)):
    """Tabular kinematics export of the motion trace."""
    analysis = await get_analysis_or_404(analysis_id, db)
    if not analysis.trace_csv:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Motion trace not extracted yet"
        )
    return PlainTextResponse(analysis.trace_csv, media_type="text/csv")


@router.get("/{analysis_id}/overlay")
async def get_overlay_frame(
    analysis_id: str,
    t: float = Query(..., ge=0, description="Playback time in seconds"),
    db: AsyncSession = Depends(get_db)
):
    """JPEG of the clip at ``t`` with the skeleton and board marker drawn on it."""
    analysis = await get_analysis_or_404(analysis_id, db)
    if not analysis.has_trace:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Motion trace not extracted yet"
        )

    trace = MotionTrace.from_dict(analysis.trace_data, settings.board_center_offset)
    try:
        frame = await asyncio.to_thread(render_overlay_frame, analysis.video_path, trace, t)
    except (FileNotFoundError, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    ok, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, 85])
    if not ok:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to encode overlay frame"
        )
    return Response(content=buffer.tobytes(), media_type="image/jpeg")


@router.post("/{analysis_id}/narrate", response_model=AnalysisResponse, status_code=status.HTTP_202_ACCEPTED)
async def retry_narration(analysis_id: str, db: AsyncSession = Depends(get_db)):
    """Re-request the verdict using the stored trace (no re-extraction)."""
    analysis = await get_analysis_or_404(analysis_id, db)
    if not analysis.has_trace or analysis.processing_status not in ProcessingStatus.with_trace():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Motion trace not extracted yet"
        )

    from crete.worker import narrate_analysis_task
    narrate_analysis_task.delay(analysis.id, analysis.run_generation)
    return analysis


@router.patch("/{analysis_id}/trim", response_model=AnalysisResponse)
async def update_trim(
    analysis_id: str,
    payload: TrimWindowIn,
    db: AsyncSession = Depends(get_db)
):
    """
    Change the trim window.

    Any extraction still running for the old window is abandoned; its
    results are never written. A fresh extraction is queued.
    """
    analysis = await get_analysis_or_404(analysis_id, db)
    duration = analysis.video_duration_seconds or payload.trim_end
    trim = validate_trim(payload.trim_start, payload.trim_end, duration)

    analysis.trim_start = trim.start
    analysis.trim_end = trim.end
    analysis.run_generation += 1
    analysis.clear_results()
    analysis.processing_status = ProcessingStatus.PENDING
    analysis.processing_completed_at = None
    await db.commit()
    await db.refresh(analysis)

    queue_extraction(analysis)

    return analysis


@router.delete("/{analysis_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_analysis(analysis_id: str, db: AsyncSession = Depends(get_db)):
    """Discard an analysis and its video; a run in flight stops writing."""
    analysis = await get_analysis_or_404(analysis_id, db)

    if os.path.exists(analysis.video_path):
        os.remove(analysis.video_path)

    await db.delete(analysis)
    await db.commit()
