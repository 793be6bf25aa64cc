"""
Computer Vision pipeline for skate trick analysis.

PIPELINE COMPONENTS:
1. FrameSampler: Seeks a trimmed clip at a fixed rate and yields frames
2. PoseLandmarkEstimator: MediaPipe Pose landmarks, one request at a time
3. derive: Board center, board angle/height, shoulder rotation per frame
4. MotionTraceBuilder: Sequential sample -> estimate -> derive loop
5. TracePlayer / OverlayRenderer: Loops playback in the trim window and
   draws the nearest trace record
6. AnalysisController: Run-generation guard, estimator lifecycle, narration

The pose estimator is imported lazily (``crete.cv.pose_estimator``) so the
rest of the pipeline can be used without the MediaPipe model on disk.

Usage:
    from crete.cv import AnalysisController, OpenCVVideoClip

    controller = AnalysisController()
    with OpenCVVideoClip("kickflip.mp4", frame_width=640) as clip:
        controller.load_clip(clip)
        controller.set_trim(0.5, 2.0)
        trace = await controller.extract(clip)
    print(trace.to_csv())
"""

from crete.cv.errors import (
    PipelineError, InvalidTrimWindow, ClipNotReady, SeekTimeout,
    EstimatorUnavailable, EstimatorBusy, EstimateTimeout, RunCancelled,
)
from crete.cv.landmarks import Landmark, PoseLandmark, PoseLandmarks, SKELETON_CONNECTIONS
from crete.cv.frame_sampler import (
    FrameSampler, OpenCVVideoClip, SampledFrame, TrimWindow, VideoClip,
    frame_count, sample_timestamps,
)
from crete.cv.kinematics import BoardCenter, KinematicSample, derive
from crete.cv.motion_trace import (
    CSV_HEADER, FrameRecord, MotionTrace, MotionTraceBuilder, progress_percent,
)
from crete.cv.trace_player import (
    OverlayRenderer, PlaybackClock, TracePlayer, loop_correct, nearest_record,
    render_overlay_frame,
)
from crete.cv.analysis_state import AnalysisPhase, AnalysisState, reduce
from crete.cv.analysis_controller import AnalysisController

__all__ = [
    # Errors
    "PipelineError",
    "InvalidTrimWindow",
    "ClipNotReady",
    "SeekTimeout",
    "EstimatorUnavailable",
    "EstimatorBusy",
    "EstimateTimeout",
    "RunCancelled",

    # Landmarks
    "Landmark",
    "PoseLandmark",
    "PoseLandmarks",
    "SKELETON_CONNECTIONS",

    # Sampling
    "FrameSampler",
    "OpenCVVideoClip",
    "SampledFrame",
    "TrimWindow",
    "VideoClip",
    "frame_count",
    "sample_timestamps",

    # Kinematics
    "BoardCenter",
    "KinematicSample",
    "derive",

    # Motion trace
    "CSV_HEADER",
    "FrameRecord",
    "MotionTrace",
    "MotionTraceBuilder",
    "progress_percent",

    # Playback
    "OverlayRenderer",
    "PlaybackClock",
    "TracePlayer",
    "loop_correct",
    "nearest_record",
    "render_overlay_frame",

    # State + controller
    "AnalysisPhase",
    "AnalysisState",
    "reduce",
    "AnalysisController",
]
