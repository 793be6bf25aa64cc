"""
Pose estimation using MediaPipe for skate trick analysis.

Wraps the MediaPipe Tasks ``PoseLandmarker`` in VIDEO mode. The landmarker
smooths landmarks across consecutive calls, so one instance serves exactly
one extraction run and only ever has one request outstanding.

Updated for MediaPipe 0.10.30+ Tasks API.
"""

import asyncio
import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional

import cv2
import numpy as np
import mediapipe as mp
from mediapipe.tasks import python
from mediapipe.tasks.python import vision

from crete.config import get_settings
from crete.cv.errors import EstimateTimeout, EstimatorBusy, EstimatorUnavailable
from crete.cv.landmarks import Landmark, PoseLandmarks

logger = logging.getLogger(__name__)

MODEL_NAMES = {
    0: "pose_landmarker_lite.task",
    1: "pose_landmarker_full.task",
    2: "pose_landmarker_heavy.task",
}


def get_model_path(complexity: int = 1, model_dir: Optional[str] = None) -> str:
    """
    Get the path to the pose landmarker model.

    Args:
        complexity: 0=lite (fastest), 1=full, 2=heavy (most accurate)
        model_dir: Extra directory searched before the package defaults

    Raises:
        EstimatorUnavailable: if no model file can be found
    """
    model_name = MODEL_NAMES.get(complexity, MODEL_NAMES[1])

    base_dirs: List[str] = []
    if model_dir:
        base_dirs.append(model_dir)
    base_dirs += [
        os.path.join(os.path.dirname(__file__), "..", "..", "models"),
        os.path.join(os.path.dirname(__file__), "..", "..", "..", "models"),
    ]

    for base_dir in base_dirs:
        path = os.path.abspath(os.path.join(base_dir, model_name))
        if os.path.exists(path):
            return path

    # Fallback to any available model
    for base_dir in base_dirs:
        for name in MODEL_NAMES.values():
            path = os.path.abspath(os.path.join(base_dir, name))
            if os.path.exists(path):
                return path

    raise EstimatorUnavailable(
        f"Pose landmarker model '{model_name}' not found. "
        "Download from: https://storage.googleapis.com/mediapipe-models/pose_landmarker/"
    )


def landmarks_from_result(result) -> Optional[PoseLandmarks]:
    """Convert a MediaPipe Tasks result into ``PoseLandmarks`` (None if no pose)."""
    if not result.pose_landmarks or len(result.pose_landmarks) == 0:
        return None

    # Use first detected pose
    points = []
    for landmark in result.pose_landmarks[0]:
        vis = landmark.visibility if getattr(landmark, "visibility", None) is not None else 0.5
        points.append(Landmark(x=landmark.x, y=landmark.y, visibility=vis))
    return PoseLandmarks.from_points(points)


class PoseLandmarkEstimator:
    """
    Single-subject landmark estimator.

    Confidence thresholds are fixed at construction. ``estimate`` admits
    one request at a time; a call while the previous detection is still
    running (including one that already timed out) raises ``EstimatorBusy``.
    Detection runs on a dedicated single worker thread, and the landmarker
    is only released once that thread has finished its current frame.
    """

    def __init__(
        self,
        model_complexity: Optional[int] = None,
        min_detection_confidence: Optional[float] = None,
        min_tracking_confidence: Optional[float] = None,
        model_dir: Optional[str] = None,
        timeout: Optional[float] = None,
        landmarker=None,
    ):
        """
        Initialize pose estimator.

        Args:
            model_complexity: 0=lite, 1=full, 2=heavy (default from settings)
            min_detection_confidence: Minimum confidence for initial detection
            min_tracking_confidence: Minimum confidence for tracking
            model_dir: Directory holding the ``.task`` model files
            timeout: Seconds to wait for one frame before ``EstimateTimeout``
            landmarker: Ready-made landmarker; skips model loading when given

        Raises:
            EstimatorUnavailable: if the model is missing or fails to load
        """
        settings = get_settings()
        self.timeout = settings.estimate_timeout_seconds if timeout is None else timeout

        if landmarker is None:
            landmarker = self._create_landmarker(
                settings.pose_model_complexity if model_complexity is None else model_complexity,
                settings.min_detection_confidence if min_detection_confidence is None else min_detection_confidence,
                settings.min_tracking_confidence if min_tracking_confidence is None else min_tracking_confidence,
                model_dir or settings.pose_model_dir,
            )
        self.landmarker = landmarker

        self._frame_timestamp_ms = -1
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pose-landmarker")
        self._inflight: Optional[Future] = None
        self._closed = False

    @staticmethod
    def _create_landmarker(complexity: int, detection: float, tracking: float, model_dir: Optional[str]):
        model_path = get_model_path(complexity, model_dir)
        try:
            base_options = python.BaseOptions(model_asset_path=model_path)
            options = vision.PoseLandmarkerOptions(
                base_options=base_options,
                running_mode=vision.RunningMode.VIDEO,
                min_pose_detection_confidence=detection,
                min_tracking_confidence=tracking,
                num_poses=1,  # Single skater per clip
            )
            landmarker = vision.PoseLandmarker.create_from_options(options)
        except Exception as e:
            raise EstimatorUnavailable(f"Failed to initialise pose landmarker: {e}") from e

        logger.info(f"Pose landmarker loaded from {model_path}")
        return landmarker

    @property
    def busy(self) -> bool:
        """True while a detection is still running on the worker thread."""
        return self._inflight is not None and not self._inflight.done()

    def detect(self, frame: np.ndarray, timestamp: float) -> Optional[PoseLandmarks]:
        """
        Run the landmarker on one BGR frame (blocking).

        Returns:
            33 landmarks, or None when no pose is detected
        """
        # Convert BGR to RGB for MediaPipe
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)

        # Timestamp must be monotonically increasing in VIDEO mode
        timestamp_ms = int(timestamp * 1000)
        if timestamp_ms <= self._frame_timestamp_ms:
            timestamp_ms = self._frame_timestamp_ms + 1
        self._frame_timestamp_ms = timestamp_ms

        result = self.landmarker.detect_for_video(mp_image, timestamp_ms)
        return landmarks_from_result(result)

    async def estimate(self, frame: np.ndarray, timestamp: float) -> Optional[PoseLandmarks]:
        """Estimate landmarks for one frame without blocking the event loop."""
        if self._closed:
            raise EstimatorUnavailable("Estimator has been closed")
        if self.busy:
            raise EstimatorBusy("An estimation request is already pending")

        self._inflight = self._executor.submit(self.detect, frame, timestamp)
        try:
            # A timeout abandons the wait only; the detection keeps the worker busy
            return await asyncio.wait_for(
                asyncio.wrap_future(self._inflight),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise EstimateTimeout(
                f"Pose estimation at {timestamp:.3f}s exceeded {self.timeout}s"
            ) from None

    def close(self):
        """
        Release resources.

        If a detection is still running, the landmarker is closed by the
        worker thread as soon as that detection returns.
        """
        if self._closed:
            return
        self._closed = True

        inflight = self._inflight
        if inflight is not None and not inflight.done():
            logger.debug("Deferring landmarker close until the running detection returns")
            inflight.add_done_callback(lambda _: self.landmarker.close())
        else:
            self.landmarker.close()
        self._executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
