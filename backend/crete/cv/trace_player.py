"""
Trace playback with skeleton and board overlay.

During result playback the player reads the playback clock, keeps it
looping inside the trim window, picks the trace record closest to the
current time, and draws it on a canvas. No interpolation between samples.
"""

import asyncio
import bisect
import logging
from typing import Callable, Optional, Protocol, Tuple

import cv2
import numpy as np

from crete.config import get_settings
from crete.cv.frame_sampler import TrimWindow
from crete.cv.landmarks import SKELETON_CONNECTIONS
from crete.cv.motion_trace import FrameRecord, MotionTrace

logger = logging.getLogger(__name__)


class PlaybackClock(Protocol):
    """Time source of the playing video."""

    def current_time(self) -> float: ...

    def seek(self, t: float) -> None: ...


def loop_correct(clock: PlaybackClock, trim: TrimWindow) -> float:
    """
    Keep playback inside ``[trim.start, trim.end)``.

    Past the end wraps to the start; before the start (external scrub)
    clamps forward to the start. Returns the corrected time.
    """
    t = clock.current_time()
    if t >= trim.end or t < trim.start:
        clock.seek(trim.start)
        return trim.start
    return t


def nearest_record(trace: MotionTrace, t: float, times: Optional[list] = None) -> Optional[FrameRecord]:
    """Record whose time is closest to ``t``; ties go to the earlier record."""
    if not trace.records:
        return None
    times = times if times is not None else trace.times
    i = bisect.bisect_left(times, t)
    if i == 0:
        return trace.records[0]
    if i == len(times):
        return trace.records[-1]
    before, after = times[i - 1], times[i]
    if abs(t - before) <= abs(after - t):
        return trace.records[i - 1]
    return trace.records[i]


class OverlayRenderer:
    """Draws a frame record onto a BGR canvas with OpenCV."""

    def __init__(
        self,
        skeleton_color: Tuple[int, int, int] = (255, 255, 255),
        joint_color: Tuple[int, int, int] = (20, 255, 57),
        board_color: Tuple[int, int, int] = (0, 215, 255),
        line_thickness: int = 2,
        joint_radius: int = 4,
        board_radius: int = 8,
        min_visibility: float = 0.0,
    ):
        self.skeleton_color = skeleton_color
        self.joint_color = joint_color
        self.board_color = board_color
        self.line_thickness = line_thickness
        self.joint_radius = joint_radius
        self.board_radius = board_radius
        self.min_visibility = min_visibility

    @staticmethod
    def to_pixels(x: float, y: float, canvas: np.ndarray) -> Tuple[int, int]:
        height, width = canvas.shape[:2]
        return int(round(x * width)), int(round(y * height))

    def draw(self, canvas: np.ndarray, record: Optional[FrameRecord]) -> np.ndarray:
        """Draw ``record`` in place and return the canvas."""
        if record is None:
            return canvas

        if record.landmarks is not None:
            points = record.landmarks
            for a, b in SKELETON_CONNECTIONS:
                pa, pb = points.get(a), points.get(b)
                if pa is None or pb is None:
                    continue
                if min(pa.visibility, pb.visibility) < self.min_visibility:
                    continue
                cv2.line(
                    canvas,
                    self.to_pixels(pa.x, pa.y, canvas),
                    self.to_pixels(pb.x, pb.y, canvas),
                    self.skeleton_color,
                    self.line_thickness,
                    cv2.LINE_AA,
                )
            for point in points:
                if point is None or point.visibility < self.min_visibility:
                    continue
                cv2.circle(canvas, self.to_pixels(point.x, point.y, canvas),
                           self.joint_radius, self.joint_color, -1, cv2.LINE_AA)

        if record.board_center is not None:
            center = self.to_pixels(record.board_center.x, record.board_center.y, canvas)
            cv2.circle(canvas, center, self.board_radius, self.board_color, -1, cv2.LINE_AA)
            cv2.putText(
                canvas,
                "BOARD",
                (center[0] + self.board_radius + 4, center[1] + 4),
                cv2.FONT_HERSHEY_SIMPLEX,
                0.5,
                self.board_color,
                1,
                cv2.LINE_AA,
            )

        return canvas


class TracePlayer:
    """
    Synchronizes a motion trace to a playback clock.

    ``play()`` starts a refresh loop that ticks once per display interval;
    ``pause()`` and ``close()`` cancel it immediately so no tick is issued
    after playback stops.
    """

    def __init__(
        self,
        trace: MotionTrace,
        clock: PlaybackClock,
        renderer: Optional[OverlayRenderer] = None,
        refresh_hz: Optional[float] = None,
    ):
        self.trace = trace
        self.trim = trace.trim
        self.clock = clock
        self.renderer = renderer or OverlayRenderer()
        self.refresh_interval = 1.0 / (refresh_hz or get_settings().overlay_refresh_hz)
        self._times = trace.times
        self._task: Optional[asyncio.Task] = None
        self.playing = False

    def tick(self, canvas: np.ndarray) -> Optional[FrameRecord]:
        """One refresh: correct the loop, pick the nearest record, draw it."""
        t = loop_correct(self.clock, self.trim)
        record = nearest_record(self.trace, t, self._times)
        self.renderer.draw(canvas, record)
        return record

    def play(self, canvas_provider: Callable[[], np.ndarray],
             on_frame: Optional[Callable[[np.ndarray, Optional[FrameRecord]], None]] = None) -> asyncio.Task:
        """Start the refresh loop on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self.playing = True
        self._task = asyncio.get_running_loop().create_task(self._run(canvas_provider, on_frame))
        return self._task

    async def _run(self, canvas_provider, on_frame) -> None:
        while self.playing:
            canvas = canvas_provider()
            record = self.tick(canvas)
            if on_frame is not None:
                on_frame(canvas, record)
            await asyncio.sleep(self.refresh_interval)

    def pause(self) -> None:
        self.playing = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def close(self) -> None:
        self.pause()
        logger.debug("Trace player closed")


class StaticClock:
    """Clock pinned to a fixed time; seeks simply move it."""

    def __init__(self, t: float = 0.0):
        self.t = t

    def current_time(self) -> float:
        return self.t

    def seek(self, t: float) -> None:
        self.t = t


def render_overlay_frame(
    video_path: str,
    trace: MotionTrace,
    t: float,
    renderer: Optional[OverlayRenderer] = None,
) -> np.ndarray:
    """
    Decode the frame at ``t`` and draw the trace overlay on it.

    ``t`` goes through the same loop correction as live playback, so times
    outside the trim window render the trim start.
    """
    player = TracePlayer(trace, StaticClock(t), renderer)
    corrected = loop_correct(player.clock, player.trim)

    capture = cv2.VideoCapture(video_path)
    try:
        if not capture.isOpened():
            raise FileNotFoundError(f"Failed to open video: {video_path}")
        capture.set(cv2.CAP_PROP_POS_MSEC, corrected * 1000.0)
        ret, frame = capture.read()
        if not ret:
            raise ValueError(f"Could not decode frame at {corrected:.3f}s")
    finally:
        capture.release()

    player.tick(frame)
    return frame
