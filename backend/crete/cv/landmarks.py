"""
Body landmark types shared by the estimator, kinematics, and overlay.

A detected pose is always a full 33-slot array in MediaPipe Pose order.
Frames without a pose carry ``None`` instead of a partially filled array.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Optional, Sequence, Tuple


class PoseLandmark(IntEnum):
    """MediaPipe Pose landmark indices."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


NUM_LANDMARKS = 33

# Skeleton edges drawn by the overlay (torso, arms, legs, feet).
SKELETON_CONNECTIONS: Tuple[Tuple[int, int], ...] = (
    (PoseLandmark.LEFT_SHOULDER, PoseLandmark.RIGHT_SHOULDER),
    (PoseLandmark.LEFT_SHOULDER, PoseLandmark.LEFT_ELBOW),
    (PoseLandmark.LEFT_ELBOW, PoseLandmark.LEFT_WRIST),
    (PoseLandmark.RIGHT_SHOULDER, PoseLandmark.RIGHT_ELBOW),
    (PoseLandmark.RIGHT_ELBOW, PoseLandmark.RIGHT_WRIST),
    (PoseLandmark.LEFT_SHOULDER, PoseLandmark.LEFT_HIP),
    (PoseLandmark.RIGHT_SHOULDER, PoseLandmark.RIGHT_HIP),
    (PoseLandmark.LEFT_HIP, PoseLandmark.RIGHT_HIP),
    (PoseLandmark.LEFT_HIP, PoseLandmark.LEFT_KNEE),
    (PoseLandmark.LEFT_KNEE, PoseLandmark.LEFT_ANKLE),
    (PoseLandmark.RIGHT_HIP, PoseLandmark.RIGHT_KNEE),
    (PoseLandmark.RIGHT_KNEE, PoseLandmark.RIGHT_ANKLE),
    (PoseLandmark.LEFT_ANKLE, PoseLandmark.LEFT_HEEL),
    (PoseLandmark.LEFT_HEEL, PoseLandmark.LEFT_FOOT_INDEX),
    (PoseLandmark.LEFT_ANKLE, PoseLandmark.LEFT_FOOT_INDEX),
    (PoseLandmark.RIGHT_ANKLE, PoseLandmark.RIGHT_HEEL),
    (PoseLandmark.RIGHT_HEEL, PoseLandmark.RIGHT_FOOT_INDEX),
    (PoseLandmark.RIGHT_ANKLE, PoseLandmark.RIGHT_FOOT_INDEX),
)


@dataclass(frozen=True)
class Landmark:
    """Single landmark in normalized image coordinates."""
    x: float  # 0-1, left to right
    y: float  # 0-1, top to bottom
    visibility: float = 1.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "visibility": self.visibility}

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "Landmark":
        return cls(x=data["x"], y=data["y"], visibility=data.get("visibility", 1.0))


@dataclass(frozen=True)
class PoseLandmarks:
    """
    All landmarks detected for one frame.

    Slots may be ``None`` only when built from a source that does not
    report every joint; the MediaPipe adapter always fills all 33.
    """
    points: Tuple[Optional[Landmark], ...]

    @classmethod
    def from_points(cls, points: Sequence[Optional[Landmark]]) -> "PoseLandmarks":
        return cls(points=tuple(points))

    def get(self, index: int) -> Optional[Landmark]:
        """Safely get landmark by index."""
        if 0 <= index < len(self.points):
            return self.points[index]
        return None

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self):
        return iter(self.points)

    def to_list(self) -> List[Optional[Dict[str, float]]]:
        return [p.to_dict() if p is not None else None for p in self.points]

    @classmethod
    def from_list(cls, data: Sequence[Optional[Dict[str, float]]]) -> "PoseLandmarks":
        return cls(points=tuple(
            Landmark.from_dict(item) if item is not None else None
            for item in data
        ))
