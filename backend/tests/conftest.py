"""Shared fakes for the pipeline tests: clip, estimator, clock, poses."""

import asyncio
import json
from typing import Callable, Dict, List, Optional, Tuple

import cv2
import numpy as np
import pytest

from crete.cv.landmarks import Landmark, NUM_LANDMARKS, PoseLandmarks
from crete.cv.kinematics import (
    LEFT_ANKLE_INDEX, RIGHT_ANKLE_INDEX, LEFT_SHOULDER_INDEX, RIGHT_SHOULDER_INDEX,
)


def make_pose(
    left_ankle: Optional[Tuple[float, float]] = (0.4, 0.6),
    right_ankle: Optional[Tuple[float, float]] = (0.6, 0.6),
    left_shoulder: Optional[Tuple[float, float]] = (0.45, 0.3),
    right_shoulder: Optional[Tuple[float, float]] = (0.55, 0.3),
) -> PoseLandmarks:
    """A pose with every joint at the center except the ones given."""
    points: List[Optional[Landmark]] = [Landmark(0.5, 0.5, 0.9) for _ in range(NUM_LANDMARKS)]
    for index, xy in (
        (LEFT_ANKLE_INDEX, left_ankle),
        (RIGHT_ANKLE_INDEX, right_ankle),
        (LEFT_SHOULDER_INDEX, left_shoulder),
        (RIGHT_SHOULDER_INDEX, right_shoulder),
    ):
        points[index] = Landmark(xy[0], xy[1], 0.9) if xy is not None else None
    return PoseLandmarks.from_points(points)


class FakeClip:
    """In-memory VideoClip; records seeks and flags overlapping ones."""

    def __init__(self, duration: float = 2.0, width: int = 64, height: int = 48,
                 ready: bool = True, seek_delay: float = 0.0):
        self._duration = duration
        self._width = width
        self._height = height
        self.ready = ready
        self.seek_delay = seek_delay
        self.position = 0.0
        self.seeks: List[float] = []
        self.overlapping_seeks = 0
        self._pending = False

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    def is_ready(self) -> bool:
        return self.ready

    async def seek(self, t: float) -> None:
        if self._pending:
            self.overlapping_seeks += 1
        self._pending = True
        try:
            await asyncio.sleep(self.seek_delay)
            self.position = t
            self.seeks.append(t)
        finally:
            self._pending = False

    def read_frame(self) -> np.ndarray:
        return np.zeros((self._height, self._width, 3), dtype=np.uint8)


class FakeEstimator:
    """
    Landmark estimator driven by a function of the frame timestamp.

    ``on_call(n)`` runs after the n-th request (1-based) is admitted.
    ``estimate_delay`` seconds pass inside each request.
    """

    def __init__(self, pose_for: Optional[Callable[[float], Optional[PoseLandmarks]]] = None,
                 on_call: Optional[Callable[[int], None]] = None, estimate_delay: float = 0.0):
        self.pose_for = pose_for or (lambda t: make_pose())
        self.on_call = on_call
        self.estimate_delay = estimate_delay
        self.calls: List[float] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False
        self.closed_while_in_flight = False

    async def estimate(self, frame: np.ndarray, timestamp: float) -> Optional[PoseLandmarks]:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.calls.append(timestamp)
            await asyncio.sleep(self.estimate_delay)
            if self.on_call:
                self.on_call(len(self.calls))
            return self.pose_for(timestamp)
        finally:
            self.in_flight -= 1

    def close(self):
        if self.in_flight:
            self.closed_while_in_flight = True
        self.closed = True


class FakeClock:
    """PlaybackClock whose time is set directly by the test."""

    def __init__(self, t: float = 0.0):
        self.t = t
        self.seeks: List[float] = []

    def current_time(self) -> float:
        return self.t

    def seek(self, t: float) -> None:
        self.seeks.append(t)
        self.t = t


@pytest.fixture
def fake_clip():
    return FakeClip()


@pytest.fixture
def synthetic_video(tmp_path):
    """2 s, 10 FPS, 64x48 MJPG clip whose brightness encodes the frame index."""
    path = str(tmp_path / "clip.avi")
    writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
    for i in range(20):
        writer.write(np.full((48, 64, 3), i * 10, dtype=np.uint8))
    writer.release()
    return path


class FakeResponse:
    def __init__(self, text: str):
        self.text = text


class FakeModel:
    """Stands in for a generative model; replays queued outcomes in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.prompts: List[str] = []
        self.contents: List[list] = []

    def generate_content(self, content, generation_config=None):
        self.contents.append(content)
        self.prompts.append(content[-1])
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)


def verdict(score: float) -> str:
    """A well-formed narration reply with the given score."""
    return json.dumps({
        "trickName": "Kickflip",
        "confidence": 0.8,
        "board_physics": "roll",
        "score": score,
        "heightMeters": 0.4,
        "feedbackText": "Clean flip.",
        "improvementTip": "Bend your knees on landing.",
    })
