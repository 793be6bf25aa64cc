"""Celery worker for async trick analysis."""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from celery import Celery
from sqlalchemy.orm import Session

from crete.config import get_settings
from crete.cv.analysis_controller import AnalysisController
from crete.cv.analysis_state import AnalysisPhase, AnalysisState
from crete.cv.errors import ClipNotReady, PipelineError
from crete.cv.frame_sampler import OpenCVVideoClip
from crete.cv.motion_trace import MotionTrace
from crete.database import SyncSessionLocal
from crete.models.analysis import TrickAnalysis, ProcessingStatus
from crete.models.feedback import CoachFeedback
from crete.services.narration import NarrationFailure, NarrationService, result_to_dict

settings = get_settings()
logger = logging.getLogger(__name__)

FEEDBACK_HISTORY_LIMIT = 10

# Create Celery app
celery_app = Celery(
    "crete",
    broker=settings.redis_url,
    backend=settings.redis_url
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # 30 min max per task
    worker_prefetch_multiplier=1,  # One pose model per worker process at a time
)


def current_generation(db: Session, analysis_id: str) -> Optional[int]:
    """Read the stored run generation (None if the analysis was deleted)."""
    return db.query(TrickAnalysis.run_generation).filter(
        TrickAnalysis.id == analysis_id
    ).scalar()


def update_progress(db: Session, analysis_id: str, progress: int, status: str = None):
    """Update processing progress in database."""
    analysis = db.query(TrickAnalysis).filter(TrickAnalysis.id == analysis_id).first()
    if analysis:
        analysis.processing_progress = progress
        if status:
            analysis.processing_status = status
        db.commit()


def load_feedback_history(db: Session, user_id: str, limit: int = FEEDBACK_HISTORY_LIMIT) -> List[str]:
    rows = db.query(CoachFeedback).filter(
        CoachFeedback.user_id == user_id
    ).order_by(CoachFeedback.created_at.desc()).limit(limit).all()
    return [row.text for row in reversed(rows)]


def make_progress_listener(db: Session, analysis_id: str, generation: int, controller: AnalysisController,
                           step: int = 5):
    """
    State listener that persists progress and cancels the run once the
    stored generation moves on.
    """
    last_reported = {"percent": -step}

    def on_change(state: AnalysisState) -> None:
        if state.phase is not AnalysisPhase.EXTRACTING:
            return
        if state.progress - last_reported["percent"] < step and state.progress < 100:
            return
        last_reported["percent"] = state.progress

        if current_generation(db, analysis_id) != generation:
            logger.info(f"Analysis {analysis_id} generation {generation} superseded; cancelling")
            controller.cancel()
            return
        update_progress(db, analysis_id, state.progress)

    return on_change


@celery_app.task(bind=True, name="extract_motion_trace")
def extract_motion_trace_task(self, analysis_id: str, generation: int):
    """
    Build the motion trace for an uploaded clip.

    Steps:
    1. Open the clip and apply the stored trim window
    2. Sample at the configured FPS, estimate pose, derive kinematics
    3. Store the tabular export and frame records
    4. Queue narration
    """
    logger.info(f"Starting extraction for analysis {analysis_id} (generation {generation})")

    db = SyncSessionLocal()

    try:
        analysis = db.query(TrickAnalysis).filter(TrickAnalysis.id == analysis_id).first()
        if not analysis:
            logger.error(f"Analysis {analysis_id} not found")
            return {"error": "Analysis not found"}
        if analysis.run_generation != generation:
            logger.info(f"Skipping stale extraction for {analysis_id}")
            return {"analysis_id": analysis_id, "skipped": True}

        analysis.clear_results()
        analysis.processing_status = ProcessingStatus.EXTRACTING
        analysis.processing_started_at = datetime.utcnow()
        db.commit()

        controller = AnalysisController()
        controller.on_change = make_progress_listener(db, analysis_id, generation, controller)

        with OpenCVVideoClip(analysis.video_path, frame_width=settings.processing_frame_width) as clip:
            if not clip.is_ready():
                raise ClipNotReady(f"Video could not be opened: {analysis.video_filename}")

            async def run() -> Optional[MotionTrace]:
                controller.load_clip(clip)
                controller.set_trim(analysis.trim_start, min(analysis.trim_end, clip.duration))
                return await controller.extract(clip)

            analysis.video_duration_seconds = clip.duration
            trace = asyncio.run(run())

        if trace is None or current_generation(db, analysis_id) != generation:
            logger.info(f"Extraction for {analysis_id} abandoned; nothing stored")
            return {"analysis_id": analysis_id, "skipped": True}

        db.refresh(analysis)
        trace_data = trace.to_dict()
        trace_data["summary"] = trace.summary()
        analysis.trace_data = trace_data
        analysis.trace_csv = trace.to_csv()
        analysis.frames_sampled = len(trace)
        analysis.frames_with_pose = trace.frames_with_pose
        analysis.processing_progress = 100
        analysis.processing_status = ProcessingStatus.EXTRACTED
        db.commit()

        logger.info(
            f"Extraction complete for {analysis_id}: {len(trace)} frames, "
            f"{trace.frames_with_pose} with pose"
        )

        narrate_analysis_task.delay(analysis_id, generation)

        return {
            "analysis_id": analysis_id,
            "frames_sampled": len(trace),
            "frames_with_pose": trace.frames_with_pose,
        }

    except PipelineError as e:
        logger.error(f"Extraction failed for {analysis_id}: {e}")
        db.rollback()
        analysis = db.query(TrickAnalysis).filter(TrickAnalysis.id == analysis_id).first()
        if analysis and analysis.run_generation == generation:
            analysis.processing_status = ProcessingStatus.FAILED
            analysis.processing_error = f"Tracking unavailable: {e}"
            db.commit()
        return {"analysis_id": analysis_id, "error": str(e)}

    except Exception as e:
        logger.exception(f"Error processing analysis {analysis_id}: {e}")

        # Reload so a re-trim committed meanwhile is seen; a stale run writes nothing
        db.rollback()
        analysis = db.query(TrickAnalysis).filter(TrickAnalysis.id == analysis_id).first()
        if analysis and analysis.run_generation == generation:
            analysis.processing_status = ProcessingStatus.FAILED
            analysis.processing_error = str(e)
            db.commit()

        raise

    finally:
        db.close()


@celery_app.task(bind=True, name="narrate_analysis")
def narrate_analysis_task(self, analysis_id: str, generation: Optional[int] = None):
    """
    Request the narrated verdict for a stored motion trace.

    A narration failure keeps the trace so the user can retry narration
    alone.
    """
    db = SyncSessionLocal()

    try:
        analysis = db.query(TrickAnalysis).filter(TrickAnalysis.id == analysis_id).first()
        if not analysis or not analysis.has_trace:
            logger.error(f"Analysis {analysis_id} has no motion trace to narrate")
            return {"error": "No motion trace"}
        generation = analysis.run_generation if generation is None else generation
        if analysis.run_generation != generation:
            return {"analysis_id": analysis_id, "skipped": True}

        analysis.processing_status = ProcessingStatus.NARRATING
        analysis.processing_error = None
        db.commit()

        trace = MotionTrace.from_dict(analysis.trace_data, settings.board_center_offset)
        history = load_feedback_history(db, analysis.user_id)

        with open(analysis.video_path, "rb") as f:
            video_bytes = f.read()

        try:
            result = NarrationService().analyze(
                video_bytes,
                analysis.video_mime_type,
                trace.trim,
                analysis.trace_csv or trace.to_csv(),
                analysis.trick_hint,
                history,
            )
        except NarrationFailure as e:
            logger.warning(f"Narration failed for {analysis_id}: {e}")
            db.refresh(analysis)
            if analysis.run_generation == generation:
                analysis.processing_status = ProcessingStatus.NARRATION_FAILED
                analysis.processing_error = "Analysis failed, please retry"
                db.commit()
            return {"analysis_id": analysis_id, "error": str(e)}

        db.refresh(analysis)
        if analysis.run_generation != generation:
            return {"analysis_id": analysis_id, "skipped": True}

        analysis.apply_narration(result_to_dict(result, settings.landed_score_threshold))
        analysis.processing_status = ProcessingStatus.COMPLETED
        analysis.processing_completed_at = datetime.utcnow()
        db.commit()

        return {
            "analysis_id": analysis_id,
            "trick_name": analysis.trick_name,
            "score": analysis.score,
            "is_landed": analysis.is_landed,
        }

    finally:
        db.close()
