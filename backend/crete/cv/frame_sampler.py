"""
Deterministic frame sampling over a trimmed video.

The sampler seeks to evenly spaced timestamps inside a trim window and
yields one decoded frame per timestamp. Seeks are strictly serialized:
the next seek is only issued after the previous one has completed and its
frame has been consumed.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Protocol

import cv2
import numpy as np

from crete.cv.errors import ClipNotReady, InvalidTrimWindow, RunCancelled, SeekTimeout

logger = logging.getLogger(__name__)

# Absorbs float error in (end - start) * fps, e.g. 0.3 * 10 = 2.9999999999999996
_FRAME_COUNT_EPSILON = 1e-9


@dataclass(frozen=True)
class TrimWindow:
    """Time range of the clip to analyze, in seconds."""
    start: float
    end: float

    def __post_init__(self):
        if self.start < 0:
            raise InvalidTrimWindow(f"Trim start must be >= 0, got {self.start}")
        if self.end <= self.start:
            raise InvalidTrimWindow(
                f"Trim end ({self.end}) must be greater than start ({self.start})"
            )

    @property
    def length(self) -> float:
        return self.end - self.start

    def validate_for(self, duration: float) -> None:
        """Check the window fits inside a clip of the given duration."""
        if self.end > duration + _FRAME_COUNT_EPSILON:
            raise InvalidTrimWindow(
                f"Trim end ({self.end:.3f}s) exceeds clip duration ({duration:.3f}s)"
            )

    def contains(self, t: float) -> bool:
        return self.start <= t < self.end

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


@dataclass
class SampledFrame:
    """One decoded frame at a sampled timestamp."""
    index: int
    timestamp: float
    image: np.ndarray


class VideoClip(Protocol):
    """Seekable media source read by the sampler."""

    @property
    def duration(self) -> float: ...

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    def is_ready(self) -> bool: ...

    async def seek(self, t: float) -> None: ...

    def read_frame(self) -> np.ndarray: ...


def frame_count(trim: TrimWindow, fps: float) -> int:
    """Number of samples in ``trim`` at ``fps``: floor(length * fps) + 1."""
    return math.floor(trim.length * fps + _FRAME_COUNT_EPSILON) + 1


def sample_timestamps(trim: TrimWindow, fps: float) -> list:
    """Evenly spaced timestamps from trim start, 1/fps apart, up to trim end."""
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")
    return [trim.start + i / fps for i in range(frame_count(trim, fps))]


class OpenCVVideoClip:
    """
    VideoClip backed by ``cv2.VideoCapture``.

    Decoding runs in a worker thread so the event loop stays responsive.
    The decoded frame is kept in a single reusable buffer; callers must
    finish with a frame before the next seek.
    """

    def __init__(self, video_path: str, frame_width: int = 0):
        """
        Open a video file.

        Args:
            video_path: Path to video file
            frame_width: Resize decoded frames to this width (0 = keep size)
        """
        self.video_path = video_path
        self.frame_width = frame_width
        self._capture = cv2.VideoCapture(video_path)
        self._canvas: Optional[np.ndarray] = None
        self._seek_pending = False

        if self._capture.isOpened():
            fps = self._capture.get(cv2.CAP_PROP_FPS) or 0.0
            total_frames = int(self._capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
            self.fps = fps
            self._duration = total_frames / fps if fps > 0 else 0.0
            self._width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
            self._height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        else:
            self.fps = 0.0
            self._duration = 0.0
            self._width = 0
            self._height = 0

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
        return self._capture.isOpened() and self._duration > 0 and self._width > 0

    async def seek(self, t: float) -> None:
        """Seek to ``t`` seconds and decode the frame there."""
        if self._seek_pending:
            raise RuntimeError("Seek issued while a previous seek is still pending")
        self._seek_pending = True
        try:
            self._canvas = await asyncio.to_thread(self._decode_at, t)
        finally:
            self._seek_pending = False

    def _decode_at(self, t: float) -> np.ndarray:
        # Seeking at or past the last frame fails on most backends; clamp to it
        if self.fps > 0:
            last_frame_time = max(0.0, self._duration - 1.0 / self.fps)
            t = min(t, last_frame_time)
        self._capture.set(cv2.CAP_PROP_POS_MSEC, t * 1000.0)
        ret, frame = self._capture.read()
        if not ret or frame is None:
            raise ClipNotReady(f"Could not decode frame at {t:.3f}s from {self.video_path}")

        if self.frame_width and frame.shape[1] > self.frame_width:
            scale = self.frame_width / frame.shape[1]
            size = (self.frame_width, int(frame.shape[0] * scale))
            if self._canvas is not None and self._canvas.shape[:2] == (size[1], size[0]):
                return cv2.resize(frame, size, dst=self._canvas, interpolation=cv2.INTER_LINEAR)
            return cv2.resize(frame, size, interpolation=cv2.INTER_LINEAR)
        return frame

    def read_frame(self) -> np.ndarray:
        if self._canvas is None:
            raise ClipNotReady("No frame decoded yet; seek first")
        return self._canvas

    def close(self):
        """Release resources."""
        self._capture.release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class FrameSampler:
    """
    Samples a clip at a fixed rate inside a trim window.

    Each call to :meth:`sample` is a fresh, finite pass that re-seeks from
    the trim start. The clip's playback position is left wherever the last
    seek put it.
    """

    def __init__(self, fps: float = 30.0, seek_timeout: Optional[float] = 5.0):
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self.fps = fps
        self.seek_timeout = seek_timeout

    async def sample(
        self,
        clip: VideoClip,
        trim: TrimWindow,
        is_current: Optional[Callable[[], bool]] = None,
        run_id: int = 0,
    ) -> AsyncIterator[SampledFrame]:
        """
        Yield ``SampledFrame`` objects in strictly increasing time order.

        Raises:
            ClipNotReady: before any frame if the clip cannot seek yet
            SeekTimeout: if one seek exceeds ``seek_timeout``
            RunCancelled: at a resume point once ``is_current()`` turns false
        """
        if not clip.is_ready():
            raise ClipNotReady("Video is not loaded to a seekable state")
        trim.validate_for(clip.duration)

        timestamps = sample_timestamps(trim, self.fps)
        logger.debug(
            f"Sampling {len(timestamps)} frames over "
            f"[{trim.start:.2f}s, {trim.end:.2f}s] at {self.fps:.1f} FPS"
        )

        for index, timestamp in enumerate(timestamps):
            try:
                await asyncio.wait_for(clip.seek(timestamp), timeout=self.seek_timeout)
            except asyncio.TimeoutError:
                raise SeekTimeout(
                    f"Seek to {timestamp:.3f}s did not complete within {self.seek_timeout}s"
                ) from None

            if is_current is not None and not is_current():
                raise RunCancelled(run_id)

            yield SampledFrame(index=index, timestamp=timestamp, image=clip.read_frame())
