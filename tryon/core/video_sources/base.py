"""Video source abstractions.

Frames are consumed through two small interfaces: `VideoSource` (pull the next
frame, used by capture threads and tools) and `FrameProvider` (peek at the
latest frame and its size, used by the tracking loop and the lighting timer).
`LatestFrameBuffer` bridges the two.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Protocol

import cv2

from tryon.core.types import Frame, FrameSize

logger = logging.getLogger(__name__)


class FrameProvider(Protocol):
    """Anything that can hand out the current frame at any time."""

    def frame_size(self) -> FrameSize | None:
        """Return (width, height) of the current frame, or `None` if unknown."""

    def snapshot(self) -> Frame | None:
        """Return the current frame (read-only), or `None` when unavailable."""


class LatestFrameBuffer:
    """Thread-safe holder of the most recent frame.

    Capture code calls `update()`; consumers call `snapshot()`. Frames are
    replaced, never modified, so a snapshot stays valid after the next update.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame: Frame | None = None
        self._seq = 0

    def update(self, frame: Frame | None) -> None:
        with self._lock:
            self._frame = frame
            self._seq += 1

    def clear(self) -> None:
        self.update(None)

    @property
    def seq(self) -> int:
        with self._lock:
            return self._seq

    def snapshot(self) -> Frame | None:
        with self._lock:
            return self._frame

    def frame_size(self) -> FrameSize | None:
        with self._lock:
            frame = self._frame
        if frame is None:
            return None
        h, w = frame.shape[:2]
        return int(w), int(h)


class VideoSource(ABC):
    """Base interface for anything that can produce video frames."""

    @abstractmethod
    def read(self) -> Frame | None:
        """Return the next frame, or `None` when unavailable."""

        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Release any underlying resources."""

        raise NotImplementedError


class OpenCVSource(VideoSource):
    """A `VideoSource` backed by `cv2.VideoCapture`."""

    def __init__(self, source: str | int) -> None:
        self.cap = cv2.VideoCapture(source)
        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open video source: {source}")

    def read(self) -> Frame | None:
        ok, frame = self.cap.read()
        if not ok:
            return None
        return frame

    def close(self) -> None:
        self.cap.release()


class WebcamSource(OpenCVSource):
    """Front camera capture with minimal driver buffering."""

    def __init__(self, index: int = 0, width: int = 640, height: int = 480) -> None:
        super().__init__(index)
        logger.info("Opened camera index=%s", index)
        # Not every backend honors these; ignore refusals.
        for prop, value in (
            (cv2.CAP_PROP_BUFFERSIZE, 1),
            (cv2.CAP_PROP_FRAME_WIDTH, width),
            (cv2.CAP_PROP_FRAME_HEIGHT, height),
            (cv2.CAP_PROP_FPS, 30),
        ):
            try:
                self.cap.set(prop, value)
            except cv2.error:
                logger.debug("Camera refused property %s=%s", prop, value)


class FileSource(OpenCVSource):
    """Video file played back in real time and looped at EOF."""

    def __init__(self, path: str) -> None:
        self._path = path
        super().__init__(path)
        fps = float(self.cap.get(cv2.CAP_PROP_FPS) or 0.0)
        self._source_fps: float | None = fps if fps > 0.0 else None
        self._start_perf: float | None = None
        self._frame_index = 0

    def _pace(self) -> None:
        """Sleep until the current frame's presentation time."""

        if not self._source_fps or self._start_perf is None:
            return
        expected = self._frame_index / self._source_fps
        delay = expected - (time.perf_counter() - self._start_perf)
        if delay > 0:
            time.sleep(delay)

    def read(self) -> Frame | None:
        if self._start_perf is None:
            self._start_perf = time.perf_counter()
            self._frame_index = 0

        ok, frame = self.cap.read()
        if not ok:
            # EOF: rewind and restart the clock.
            if not self.cap.set(cv2.CAP_PROP_POS_FRAMES, 0):
                return None
            self._start_perf = time.perf_counter()
            self._frame_index = 0
            ok, frame = self.cap.read()
            if not ok:
                return None
        self._frame_index += 1
        self._pace()
        return frame
