"""
Explicit state for one video analysis and the pure reducer that moves it.

Every transition is a function ``reduce(state, action) -> state``; nothing
else mutates an ``AnalysisState``. Actions that carry a ``run_id`` are
dropped when the id does not match the current run, which is how late
results from an abandoned extraction are ignored.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Union

from crete.cv.errors import InvalidTrimWindow
from crete.cv.motion_trace import MotionTrace


class AnalysisPhase(Enum):
    IDLE = "idle"                # no clip
    READY = "ready"              # clip loaded, trim editable
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"      # trace built, narration not (yet) available
    NARRATING = "narrating"
    COMPLETE = "complete"


@dataclass(frozen=True)
class AnalysisState:
    phase: AnalysisPhase = AnalysisPhase.IDLE
    duration: float = 0.0
    trim_start: float = 0.0
    trim_end: float = 0.0
    progress: int = 0
    run_id: int = 0
    trace: Optional[MotionTrace] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    playing: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "duration": self.duration,
            "trim_start": self.trim_start,
            "trim_end": self.trim_end,
            "progress": self.progress,
            "run_id": self.run_id,
            "has_trace": self.trace is not None,
            "result": self.result,
            "error": self.error,
            "playing": self.playing,
        }


# Actions

@dataclass(frozen=True)
class ClipLoaded:
    duration: float


@dataclass(frozen=True)
class TrimChanged:
    start: float
    end: float


@dataclass(frozen=True)
class ExtractionStarted:
    run_id: int


@dataclass(frozen=True)
class ProgressReported:
    run_id: int
    percent: int


@dataclass(frozen=True)
class ExtractionFinished:
    run_id: int
    trace: MotionTrace


@dataclass(frozen=True)
class ExtractionFailed:
    run_id: int
    message: str


@dataclass(frozen=True)
class RunDiscarded:
    """User dropped the clip or result; any in-flight run becomes stale."""
    next_run_id: int
    keep_clip: bool = False


@dataclass(frozen=True)
class NarrationStarted:
    pass


@dataclass(frozen=True)
class NarrationSucceeded:
    result: Dict[str, Any]


@dataclass(frozen=True)
class NarrationFailed:
    message: str


@dataclass(frozen=True)
class PlaybackToggled:
    playing: bool


Action = Union[
    ClipLoaded, TrimChanged, ExtractionStarted, ProgressReported,
    ExtractionFinished, ExtractionFailed, RunDiscarded, NarrationStarted,
    NarrationSucceeded, NarrationFailed, PlaybackToggled,
]


def validate_trim(start: float, end: float, duration: float) -> None:
    if not (0 <= start < end <= duration):
        raise InvalidTrimWindow(
            f"Trim window [{start}, {end}] invalid for clip of {duration}s"
        )


def reduce(state: AnalysisState, action: Action) -> AnalysisState:
    """Apply one action. Raises ``InvalidTrimWindow`` for a bad trim."""
    if isinstance(action, ClipLoaded):
        # Trim end follows duration only while the caller has not set it
        trim_end = state.trim_end if state.trim_end > 0 else action.duration
        trim_end = min(trim_end, action.duration)
        trim_start = state.trim_start if state.trim_start < trim_end else 0.0
        return replace(
            state,
            phase=AnalysisPhase.READY,
            duration=action.duration,
            trim_start=trim_start,
            trim_end=trim_end,
            error=None,
        )

    if isinstance(action, TrimChanged):
        validate_trim(action.start, action.end, state.duration)
        # A new trim invalidates any trace built for the old one
        return replace(
            state,
            phase=AnalysisPhase.READY,
            trim_start=action.start,
            trim_end=action.end,
            trace=None,
            result=None,
            progress=0,
            playing=False,
        )

    if isinstance(action, ExtractionStarted):
        return replace(
            state,
            phase=AnalysisPhase.EXTRACTING,
            run_id=action.run_id,
            progress=0,
            trace=None,
            result=None,
            error=None,
            playing=False,
        )

    if isinstance(action, ProgressReported):
        if action.run_id != state.run_id or state.phase is not AnalysisPhase.EXTRACTING:
            return state
        return replace(state, progress=action.percent)

    if isinstance(action, ExtractionFinished):
        if action.run_id != state.run_id or state.phase is not AnalysisPhase.EXTRACTING:
            return state
        return replace(state, phase=AnalysisPhase.EXTRACTED, trace=action.trace, progress=100)

    if isinstance(action, ExtractionFailed):
        if action.run_id != state.run_id:
            return state
        return replace(state, phase=AnalysisPhase.READY, error=action.message, progress=0)

    if isinstance(action, RunDiscarded):
        if action.keep_clip:
            return replace(
                state,
                phase=AnalysisPhase.READY,
                run_id=action.next_run_id,
                progress=0,
                trace=None,
                result=None,
                error=None,
                playing=False,
            )
        return AnalysisState(run_id=action.next_run_id)

    if isinstance(action, NarrationStarted):
        if state.trace is None:
            return state
        return replace(state, phase=AnalysisPhase.NARRATING, error=None)

    if isinstance(action, NarrationSucceeded):
        if state.phase is not AnalysisPhase.NARRATING:
            return state
        return replace(state, phase=AnalysisPhase.COMPLETE, result=action.result)

    if isinstance(action, NarrationFailed):
        if state.phase is not AnalysisPhase.NARRATING:
            return state
        # Trace is kept so narration can be re-requested without re-extracting
        return replace(state, phase=AnalysisPhase.EXTRACTED, error=action.message)

    if isinstance(action, PlaybackToggled):
        if state.trace is None:
            return replace(state, playing=False)
        return replace(state, playing=action.playing)

    raise TypeError(f"Unknown action: {action!r}")
