"""Tests for the landmarker wrapper: timestamps, request admission, and release."""

import asyncio
import threading
import time
from types import SimpleNamespace

import numpy as np
import pytest

from crete.cv import pose_estimator
from crete.cv.errors import EstimateTimeout, EstimatorBusy, EstimatorUnavailable
from crete.cv.landmarks import NUM_LANDMARKS
from crete.cv.pose_estimator import PoseLandmarkEstimator, get_model_path, landmarks_from_result


def pose_result(visibility=0.9):
    point = SimpleNamespace(x=0.5, y=0.4, visibility=visibility)
    return SimpleNamespace(pose_landmarks=[[point] * NUM_LANDMARKS])


class FakeLandmarker:
    """Records VIDEO-mode timestamps; blocks inside detection until ``gate`` is set."""

    def __init__(self, result=None, gate=None):
        self.result = result or pose_result()
        self.gate = gate
        self.started = threading.Event()
        self.timestamps = []
        self.closed = False

    def detect_for_video(self, image, timestamp_ms):
        self.timestamps.append(timestamp_ms)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        return self.result

    def close(self):
        self.closed = True


def frame():
    return np.zeros((48, 64, 3), dtype=np.uint8)


def wait_until(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.005)
    return True


async def wait_started(landmarker):
    while not landmarker.started.is_set():
        await asyncio.sleep(0.001)


class TestLandmarksFromResult:

    def test_empty_result_is_no_pose(self):
        assert landmarks_from_result(SimpleNamespace(pose_landmarks=[])) is None

    def test_first_pose_is_converted(self):
        pose = landmarks_from_result(pose_result())
        assert len(pose) == NUM_LANDMARKS
        assert pose.get(0).x == 0.5
        assert pose.get(0).visibility == 0.9

    def test_missing_visibility_defaults(self):
        pose = landmarks_from_result(pose_result(visibility=None))
        assert pose.get(0).visibility == 0.5


class TestModelPath:

    def test_missing_model_is_unavailable(self, tmp_path, monkeypatch):
        monkeypatch.setattr(pose_estimator, "MODEL_NAMES", {1: "absent_full.task"})
        with pytest.raises(EstimatorUnavailable, match="absent_full.task"):
            get_model_path(1, model_dir=str(tmp_path))

    def test_model_dir_is_searched_first(self, tmp_path):
        model = tmp_path / "pose_landmarker_full.task"
        model.write_bytes(b"")
        assert get_model_path(1, model_dir=str(tmp_path)) == str(model)


class TestPoseLandmarkEstimator:

    def test_timestamps_strictly_increase(self):
        landmarker = FakeLandmarker()
        estimator = PoseLandmarkEstimator(landmarker=landmarker, timeout=1.0)

        estimator.detect(frame(), 0.0)
        estimator.detect(frame(), 0.0)
        estimator.detect(frame(), 0.0005)
        estimator.detect(frame(), 0.5)
        estimator.close()

        assert landmarker.timestamps == [0, 1, 2, 500]

    def test_estimate_returns_landmarks(self):
        estimator = PoseLandmarkEstimator(landmarker=FakeLandmarker(), timeout=1.0)
        with estimator:
            pose = asyncio.run(estimator.estimate(frame(), 0.1))
        assert len(pose) == NUM_LANDMARKS

    def test_second_request_while_pending_is_busy(self):
        gate = threading.Event()
        landmarker = FakeLandmarker(gate=gate)
        estimator = PoseLandmarkEstimator(landmarker=landmarker, timeout=2.0)

        async def overlapping():
            first = asyncio.ensure_future(estimator.estimate(frame(), 0.0))
            await wait_started(landmarker)
            with pytest.raises(EstimatorBusy):
                await estimator.estimate(frame(), 0.1)
            gate.set()
            return await first

        try:
            assert asyncio.run(overlapping()) is not None
        finally:
            gate.set()
            estimator.close()
        assert landmarker.timestamps == [0]

    def test_estimate_after_close_is_unavailable(self):
        landmarker = FakeLandmarker()
        estimator = PoseLandmarkEstimator(landmarker=landmarker, timeout=1.0)
        estimator.close()

        assert landmarker.closed
        with pytest.raises(EstimatorUnavailable):
            asyncio.run(estimator.estimate(frame(), 0.0))

    def test_close_during_detection_waits_for_it(self):
        gate = threading.Event()
        landmarker = FakeLandmarker(gate=gate)
        estimator = PoseLandmarkEstimator(landmarker=landmarker, timeout=2.0)

        async def close_mid_detection():
            pending = asyncio.ensure_future(estimator.estimate(frame(), 0.0))
            await wait_started(landmarker)
            estimator.close()
            assert not landmarker.closed
            gate.set()
            return await pending

        try:
            assert asyncio.run(close_mid_detection()) is not None
        finally:
            gate.set()
        assert wait_until(lambda: landmarker.closed)

    def test_timed_out_detection_keeps_estimator_busy(self):
        gate = threading.Event()
        landmarker = FakeLandmarker(gate=gate)
        estimator = PoseLandmarkEstimator(landmarker=landmarker, timeout=0.05)

        try:
            with pytest.raises(EstimateTimeout):
                asyncio.run(estimator.estimate(frame(), 0.0))
            assert estimator.busy
            with pytest.raises(EstimatorBusy):
                asyncio.run(estimator.estimate(frame(), 0.1))

            gate.set()
            assert wait_until(lambda: not estimator.busy)
            assert asyncio.run(estimator.estimate(frame(), 0.2)) is not None
        finally:
            gate.set()
            estimator.close()
        assert landmarker.timestamps == [0, 200]
