"""
Board and body kinematics derived from pose landmarks.

No board detector is used. The deck position is approximated from the
ankles: the board center sits a fixed offset below the ankle midpoint.

Channel naming follows the viewer's side of the frame: the "left ankle"
channel reads landmark 28 and the "right ankle" channel landmark 27.
Shoulder rotation uses landmarks 11 (left) and 12 (right).

All coordinates are normalized with the origin at the top-left, so larger
``y`` is lower on screen and ``1 - y`` grows as the board rises.
"""

from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from crete.config import BOARD_CENTER_OFFSET
from crete.cv.landmarks import Landmark, PoseLandmark, PoseLandmarks

LEFT_ANKLE_INDEX = PoseLandmark.RIGHT_ANKLE  # 28
RIGHT_ANKLE_INDEX = PoseLandmark.LEFT_ANKLE  # 27
LEFT_SHOULDER_INDEX = PoseLandmark.LEFT_SHOULDER  # 11
RIGHT_SHOULDER_INDEX = PoseLandmark.RIGHT_SHOULDER  # 12


@dataclass(frozen=True)
class BoardCenter:
    """Estimated deck position in normalized coordinates."""
    x: float
    y: float

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "BoardCenter":
        return cls(x=data["x"], y=data["y"])


@dataclass(frozen=True)
class KinematicSample:
    """
    Derived quantities for one sampled frame.

    When either ankle is missing, ``board_center`` is None and the board
    fields are 0. Those zeros carry no meaning: check ``has_board`` before
    treating them as signal.
    """
    time: float
    left_ankle_y: float = 0.0
    right_ankle_y: float = 0.0
    board_center: Optional[BoardCenter] = None
    board_height: float = 0.0
    board_angle_degrees: float = 0.0
    shoulder_rotation_degrees: float = 0.0

    @property
    def has_board(self) -> bool:
        return self.board_center is not None


def segment_angle_degrees(left: Landmark, right: Landmark) -> float:
    """Angle of the left->right segment from horizontal, in degrees."""
    return float(np.degrees(np.arctan2(right.y - left.y, right.x - left.x)))


def derive(
    landmarks: Optional[PoseLandmarks],
    time: float,
    board_offset: float = BOARD_CENTER_OFFSET,
) -> KinematicSample:
    """
    Derive a ``KinematicSample`` from one frame's landmarks.

    Pure and stateless. ``None`` landmarks yield a zeroed sample.
    """
    if landmarks is None:
        return KinematicSample(time=time)

    left_ankle = landmarks.get(LEFT_ANKLE_INDEX)
    right_ankle = landmarks.get(RIGHT_ANKLE_INDEX)
    left_shoulder = landmarks.get(LEFT_SHOULDER_INDEX)
    right_shoulder = landmarks.get(RIGHT_SHOULDER_INDEX)

    shoulder_rotation = 0.0
    if left_shoulder is not None and right_shoulder is not None:
        shoulder_rotation = segment_angle_degrees(left_shoulder, right_shoulder)

    left_y = left_ankle.y if left_ankle is not None else 0.0
    right_y = right_ankle.y if right_ankle is not None else 0.0

    if left_ankle is None or right_ankle is None:
        return KinematicSample(
            time=time,
            left_ankle_y=left_y,
            right_ankle_y=right_y,
            shoulder_rotation_degrees=shoulder_rotation,
        )

    center = BoardCenter(
        x=(left_ankle.x + right_ankle.x) / 2,
        y=(left_ankle.y + right_ankle.y) / 2 + board_offset,
    )

    return KinematicSample(
        time=time,
        left_ankle_y=left_y,
        right_ankle_y=right_y,
        board_center=center,
        board_height=1 - center.y,
        board_angle_degrees=segment_angle_degrees(left_ankle, right_ankle),
        shoulder_rotation_degrees=shoulder_rotation,
    )
