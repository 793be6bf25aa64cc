"""
Owner of one video analysis: state, extraction runs, narration hand-off.

Each extraction run gets a fresh run id from a monotonically increasing
counter and its own pose estimator. Every resume point inside the run
compares its captured id with the current one; a mismatch means the run
was superseded (re-trim, new clip, discard) and everything it would still
do is dropped.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from crete.config import get_settings
from crete.cv.analysis_state import (
    AnalysisPhase, AnalysisState, ClipLoaded, ExtractionFailed, ExtractionFinished,
    ExtractionStarted, NarrationFailed, NarrationStarted, NarrationSucceeded,
    PlaybackToggled, ProgressReported, RunDiscarded, TrimChanged, reduce,
)
from crete.cv.errors import PipelineError, RunCancelled
from crete.cv.frame_sampler import FrameSampler, TrimWindow, VideoClip
from crete.cv.motion_trace import LandmarkEstimator, MotionTrace, MotionTraceBuilder
from crete.services.narration import NarrationFailure, NarrationService, result_to_dict

logger = logging.getLogger(__name__)


def default_estimator_factory() -> LandmarkEstimator:
    from crete.cv.pose_estimator import PoseLandmarkEstimator

    return PoseLandmarkEstimator()


class AnalysisController:
    """
    Single controller for one analysis view.

    Not thread-safe; all calls happen on one event loop.
    """

    def __init__(
        self,
        estimator_factory: Callable[[], LandmarkEstimator] = default_estimator_factory,
        narration: Optional[NarrationService] = None,
        sample_fps: Optional[float] = None,
        seek_timeout: Optional[float] = None,
        board_offset: Optional[float] = None,
        on_change: Optional[Callable[[AnalysisState], None]] = None,
    ):
        settings = get_settings()
        self.estimator_factory = estimator_factory
        self.narration = narration
        self.sample_fps = sample_fps or settings.sample_fps
        self.seek_timeout = settings.seek_timeout_seconds if seek_timeout is None else seek_timeout
        self.board_offset = settings.board_center_offset if board_offset is None else board_offset
        self.landed_threshold = settings.landed_score_threshold
        self.on_change = on_change

        self._state = AnalysisState()
        self._generation = 0
        self._active_estimator: Optional[LandmarkEstimator] = None

    @property
    def state(self) -> AnalysisState:
        return self._state

    @property
    def current_run_id(self) -> int:
        return self._generation

    def dispatch(self, action) -> AnalysisState:
        self._state = reduce(self._state, action)
        if self.on_change:
            self.on_change(self._state)
        return self._state

    # Clip and trim

    def load_clip(self, clip: VideoClip) -> AnalysisState:
        """Register a newly selected clip, abandoning any previous run."""
        self.discard()
        return self.dispatch(ClipLoaded(duration=clip.duration))

    def set_trim(self, start: float, end: float) -> AnalysisState:
        """Change the trim window; a run in flight for the old window is abandoned."""
        self._bump_generation()
        return self.dispatch(TrimChanged(start=start, end=end))

    def trim_window(self) -> TrimWindow:
        return TrimWindow(start=self._state.trim_start, end=self._state.trim_end)

    # Extraction

    def _bump_generation(self) -> int:
        self._generation += 1
        return self._generation

    def cancel(self) -> None:
        """Abandon the current run; late results from it are ignored."""
        if self._state.phase is AnalysisPhase.EXTRACTING:
            logger.info(f"Cancelling extraction run {self._generation}")
        self._bump_generation()
        self.dispatch(RunDiscarded(next_run_id=self._generation, keep_clip=True))

    def discard(self) -> None:
        """Drop clip, trace, and result entirely."""
        self._bump_generation()
        self.dispatch(RunDiscarded(next_run_id=self._generation))

    async def extract(self, clip: VideoClip) -> Optional[MotionTrace]:
        """
        Build the motion trace for the current trim window.

        Returns the trace, or None if the run was superseded before it
        finished. Whole-run failures are recorded in state and re-raised.
        """
        run_id = self._bump_generation()
        trim = self.trim_window()
        self.dispatch(ExtractionStarted(run_id=run_id))
        logger.info(
            f"Extraction run {run_id}: [{trim.start:.2f}s, {trim.end:.2f}s] at {self.sample_fps:.0f} FPS"
        )

        def is_current() -> bool:
            return self._generation == run_id

        def report(percent: int) -> None:
            if is_current():
                self.dispatch(ProgressReported(run_id=run_id, percent=percent))

        estimator = None
        try:
            estimator = self.estimator_factory()
            self._active_estimator = estimator
            builder = MotionTraceBuilder(
                sampler=FrameSampler(fps=self.sample_fps, seek_timeout=self.seek_timeout),
                estimator=estimator,
                board_offset=self.board_offset,
                progress_callback=report,
            )
            trace = await builder.build(clip, trim, is_current=is_current, run_id=run_id)
        except RunCancelled:
            logger.info(f"Extraction run {run_id} abandoned")
            return None
        except PipelineError as e:
            logger.error(f"Extraction run {run_id} failed: {e}")
            if is_current():
                self.dispatch(ExtractionFailed(run_id=run_id, message=str(e)))
            raise
        except Exception as e:
            logger.exception(f"Extraction run {run_id} failed unexpectedly: {e}")
            if is_current():
                self.dispatch(ExtractionFailed(run_id=run_id, message=str(e) or type(e).__name__))
            raise
        finally:
            # The estimator is released only here, after its last request returned
            if estimator is not None:
                close = getattr(estimator, "close", None)
                if close is not None:
                    close()
                if self._active_estimator is estimator:
                    self._active_estimator = None

        if not is_current():
            return None
        self.dispatch(ExtractionFinished(run_id=run_id, trace=trace))
        return trace

    # Narration

    async def narrate(
        self,
        video_bytes: Optional[bytes],
        mime_type: str = "video/mp4",
        trick_hint: Optional[str] = None,
        feedback_history: Optional[List[str]] = None,
    ) -> Optional[dict]:
        """
        Ask the narration service for a verdict on the current trace.

        On failure the trace is kept and ``NarrationFailure`` is re-raised,
        so the caller can retry without re-extracting.
        """
        trace = self._state.trace
        if trace is None:
            raise NarrationFailure("No motion trace available; run extraction first")
        if self.narration is None:
            raise NarrationFailure("Narration service is not configured")

        run_id = self._generation
        self.dispatch(NarrationStarted())
        try:
            result = await asyncio.to_thread(
                self.narration.analyze,
                video_bytes,
                mime_type,
                trace.trim,
                trace.to_csv(),
                trick_hint,
                feedback_history,
            )
        except NarrationFailure as e:
            if self._generation == run_id:
                self.dispatch(NarrationFailed(message="Analysis failed, please retry"))
            logger.warning(f"Narration failed: {e}")
            raise

        if self._generation != run_id:
            return None
        data = result_to_dict(result, self.landed_threshold)
        self.dispatch(NarrationSucceeded(result=data))
        return data

    # Playback

    def set_playing(self, playing: bool) -> AnalysisState:
        return self.dispatch(PlaybackToggled(playing=playing))

    def close(self) -> None:
        """
        Tear down: abandon any run in flight.

        An estimator still serving a request is not closed here; the run
        notices it is stale at its next resume point and releases the
        estimator itself.
        """
        self._bump_generation()
        if self._active_estimator is not None:
            logger.info("Closing with an extraction in flight; the run releases its estimator")
        self.dispatch(RunDiscarded(next_run_id=self._generation))
