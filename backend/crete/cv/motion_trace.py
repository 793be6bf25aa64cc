"""
Motion trace assembly.

One extraction run walks the sampled frames strictly in order:

    sample -> estimate landmarks -> derive kinematics -> append

and produces an immutable ``MotionTrace``: per-frame records for the
overlay plus a tabular export of the numeric channels for narration.
No frame is estimated before the previous frame's result is in.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from crete.config import BOARD_CENTER_OFFSET
from crete.cv.errors import RunCancelled
from crete.cv.frame_sampler import FrameSampler, TrimWindow, VideoClip
from crete.cv.kinematics import BoardCenter, KinematicSample, derive
from crete.cv.landmarks import PoseLandmarks

logger = logging.getLogger(__name__)

CSV_HEADER = "Timestamp,LeftAnkleY,RightAnkleY,BoardAngle,BoardHeight,ShoulderRotation"


class LandmarkEstimator(Protocol):
    """Anything that can turn one frame into landmarks (or None)."""

    async def estimate(self, frame: np.ndarray, timestamp: float) -> Optional[PoseLandmarks]: ...


@dataclass(frozen=True)
class FrameRecord:
    """What the overlay needs for one sampled frame."""
    time: float
    landmarks: Optional[PoseLandmarks] = None
    board_center: Optional[BoardCenter] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "landmarks": self.landmarks.to_list() if self.landmarks is not None else None,
            "board_center": self.board_center.to_dict() if self.board_center is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FrameRecord":
        landmarks = data.get("landmarks")
        center = data.get("board_center")
        return cls(
            time=data["time"],
            landmarks=PoseLandmarks.from_list(landmarks) if landmarks is not None else None,
            board_center=BoardCenter.from_dict(center) if center is not None else None,
        )


def format_row(sample: KinematicSample) -> str:
    """One export row: time 2dp, ankle Y and height 3dp, angles 1dp."""
    return ",".join([
        f"{sample.time:.2f}",
        f"{sample.left_ankle_y:.3f}",
        f"{sample.right_ankle_y:.3f}",
        f"{sample.board_angle_degrees:.1f}",
        f"{sample.board_height:.3f}",
        f"{sample.shoulder_rotation_degrees:.1f}",
    ])


@dataclass(frozen=True)
class MotionTrace:
    """
    Time-ordered frame records plus the matching kinematic rows.

    Built wholesale by one extraction run and never mutated afterwards.
    """
    trim: TrimWindow
    fps: float
    records: Tuple[FrameRecord, ...] = ()
    samples: Tuple[KinematicSample, ...] = ()

    def __len__(self) -> int:
        return len(self.records)

    @property
    def times(self) -> List[float]:
        return [r.time for r in self.records]

    @property
    def frames_with_pose(self) -> int:
        return sum(1 for r in self.records if r.landmarks is not None)

    @property
    def pose_coverage(self) -> float:
        """Fraction of sampled frames that had a detected pose."""
        return self.frames_with_pose / len(self.records) if self.records else 0.0

    @property
    def peak_board_height(self) -> Optional[float]:
        heights = [s.board_height for s in self.samples if s.has_board]
        return max(heights) if heights else None

    @property
    def max_abs_shoulder_rotation(self) -> Optional[float]:
        angles = [
            abs(s.shoulder_rotation_degrees)
            for r, s in zip(self.records, self.samples)
            if r.landmarks is not None
        ]
        return max(angles) if angles else None

    def csv_rows(self) -> List[str]:
        return [CSV_HEADER] + [format_row(s) for s in self.samples]

    def to_csv(self) -> str:
        """Tabular export: header row then one row per sampled frame."""
        return "\n".join(self.csv_rows())

    def summary(self) -> Dict[str, Any]:
        return {
            "frames_sampled": len(self.records),
            "frames_with_pose": self.frames_with_pose,
            "pose_coverage": round(self.pose_coverage, 3),
            "peak_board_height": self.peak_board_height,
            "max_abs_shoulder_rotation": self.max_abs_shoulder_rotation,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trim": self.trim.to_dict(),
            "fps": self.fps,
            "records": [r.to_dict() for r in self.records],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], board_offset: float = BOARD_CENTER_OFFSET) -> "MotionTrace":
        """Rebuild a stored trace; kinematic rows are re-derived from landmarks."""
        records = tuple(FrameRecord.from_dict(r) for r in data.get("records", []))
        return cls(
            trim=TrimWindow(**data["trim"]),
            fps=data["fps"],
            records=records,
            samples=tuple(derive(r.landmarks, r.time, board_offset) for r in records),
        )


def progress_percent(timestamp: float, trim: TrimWindow) -> int:
    """Elapsed share of the trim window as a whole percentage (half rounds up), capped at 100."""
    fraction = (timestamp - trim.start) / trim.length
    return math.floor(min(100.0, fraction * 100) + 0.5)


@dataclass
class _TraceAccumulator:
    records: List[FrameRecord] = field(default_factory=list)
    samples: List[KinematicSample] = field(default_factory=list)


class MotionTraceBuilder:
    """
    Runs sampler, estimator, and kinematics sequentially for one clip.

    ``is_current`` is checked after every suspension (seek and estimate);
    once it returns False the build raises ``RunCancelled`` and the partial
    trace is dropped.
    """

    def __init__(
        self,
        sampler: FrameSampler,
        estimator: LandmarkEstimator,
        board_offset: float = BOARD_CENTER_OFFSET,
        progress_callback: Optional[Callable[[int], None]] = None,
    ):
        self.sampler = sampler
        self.estimator = estimator
        self.board_offset = board_offset
        self.progress_callback = progress_callback

    async def build(
        self,
        clip: VideoClip,
        trim: TrimWindow,
        is_current: Optional[Callable[[], bool]] = None,
        run_id: int = 0,
    ) -> MotionTrace:
        acc = _TraceAccumulator()
        missed = 0

        async for frame in self.sampler.sample(clip, trim, is_current=is_current, run_id=run_id):
            landmarks = await self.estimator.estimate(frame.image, frame.timestamp)
            if is_current is not None and not is_current():
                raise RunCancelled(run_id)

            if landmarks is None:
                missed += 1
                logger.debug(f"No pose at {frame.timestamp:.3f}s")

            sample = derive(landmarks, frame.timestamp, self.board_offset)
            acc.samples.append(sample)
            acc.records.append(FrameRecord(
                time=frame.timestamp,
                landmarks=landmarks,
                board_center=sample.board_center,
            ))

            if self.progress_callback:
                self.progress_callback(progress_percent(frame.timestamp, trim))

        logger.info(
            f"Motion trace built: {len(acc.records)} frames, "
            f"{len(acc.records) - missed} with pose"
        )

        return MotionTrace(
            trim=trim,
            fps=self.sampler.fps,
            records=tuple(acc.records),
            samples=tuple(acc.samples),
        )


def build_from_landmarks(
    trim: TrimWindow,
    fps: float,
    frames: Sequence[Tuple[float, Optional[PoseLandmarks]]],
    board_offset: float = BOARD_CENTER_OFFSET,
) -> MotionTrace:
    """Assemble a trace from already-estimated ``(time, landmarks)`` pairs."""
    samples = tuple(derive(lm, t, board_offset) for t, lm in frames)
    records = tuple(
        FrameRecord(time=s.time, landmarks=lm, board_center=s.board_center)
        for s, (_, lm) in zip(samples, frames)
    )
    return MotionTrace(trim=trim, fps=fps, records=records, samples=samples)
