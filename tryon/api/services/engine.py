from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
import time
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any, TypeVar

from tryon.core.config.settings import TryOnSettings
from tryon.core.detectors.base import LandmarkDetector
from tryon.core.detectors.face_mesh import FaceMeshLandmarkDetector
from tryon.core.detectors.yolo import YoloPoseLandmarkDetector
from tryon.core.errors import InitializationFailure
from tryon.core.render.wireframe import WireframeRenderer
from tryon.core.tracking.coordinator import (
    TrackingCoordinator,
    TrackingState,
    tracking_config_from_settings,
)
from tryon.core.tracking.quality import TrackingQuality
from tryon.core.types import (
    LightingState,
    OverlayOverride,
    ProductCategory,
    ProductSelection,
    TrackingSnapshot,
)
from tryon.core.video_sources.base import FileSource, LatestFrameBuffer, VideoSource, WebcamSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

START_TIMEOUT_S = 60.0
CALL_TIMEOUT_S = 5.0


def make_detector(settings: TryOnSettings) -> LandmarkDetector:
    """Instantiate the configured landmark detector (models load on initialize)."""

    if settings.detector == "yolo_pose":
        return YoloPoseLandmarkDetector(
            settings.model_name,
            conf=settings.confidence,
            keypoint_conf=settings.keypoint_confidence,
        )
    return FaceMeshLandmarkDetector(
        min_detection_confidence=settings.confidence,
        min_tracking_confidence=settings.confidence,
    )


class TryOnEngine:
    """Runs capture and the tracking loop for the API.

    - capture thread continuously reads frames into a `LatestFrameBuffer`
    - a dedicated asyncio loop thread hosts the `TrackingCoordinator`
      (tracking cycles plus the lighting timer)

    Public methods are safe to call from any thread; mutations are forwarded
    to the loop thread so the coordinator is only touched from one thread.
    """

    def __init__(self, settings: TryOnSettings) -> None:
        self.settings = settings
        self.frames = LatestFrameBuffer()
        self.renderer = WireframeRenderer() if settings.render_mode == "3d" else None
        self.coordinator = TrackingCoordinator(
            make_detector(settings),
            self.frames,
            product=ProductSelection.of(settings.default_category, settings.default_product_name),
            config=tracking_config_from_settings(settings),
            renderer=self.renderer,
        )
        self.source: VideoSource | None = None
        self.running = False
        self.last_error: str | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: threading.Thread | None = None
        self._capture_thread: threading.Thread | None = None

    def _make_source(self) -> VideoSource:
        """Instantiate the configured `VideoSource`."""

        if self.settings.video_source == "file" and self.settings.video_path:
            video_path = Path(self.settings.video_path)
            if not video_path.exists():
                raise RuntimeError(f"Video path not found: {video_path}")
            return FileSource(str(video_path))
        return WebcamSource(self.settings.camera_index)

    def start(self) -> None:
        """Open the video source and start tracking.

        Safe to call multiple times; subsequent calls while running are ignored.
        Failures are recorded in `last_error` rather than raised.
        """

        if self.running:
            return
        try:
            self.source = self._make_source()
        except Exception:
            self.last_error = "Failed to initialize video source"
            logger.exception(self.last_error)
            return

        self.running = True
        self.last_error = None
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(target=self._run_loop, daemon=True)
        self._loop_thread.start()
        self._capture_thread = threading.Thread(target=self._capture_loop, daemon=True)
        self._capture_thread.start()

        future = asyncio.run_coroutine_threadsafe(self.coordinator.start(), self._loop)
        try:
            future.result(timeout=START_TIMEOUT_S)
        except InitializationFailure as exc:
            # Capture keeps running so the preview still works; tracking is off.
            self.last_error = str(exc)
        except concurrent.futures.TimeoutError:
            self.last_error = "Tracking initialization timed out"
            logger.error(self.last_error)

    def stop(self) -> None:
        """Stop tracking, background threads and the video source."""

        self.running = False
        loop = self._loop
        if loop is not None and loop.is_running():
            try:
                self._call(self.coordinator.stop)
            except Exception:
                logger.warning("Coordinator stop failed", exc_info=True)
            loop.call_soon_threadsafe(loop.stop)
        else:
            self.coordinator.stop()
        if self._loop_thread and self._loop_thread.is_alive():
            self._loop_thread.join(timeout=2)
        if self._capture_thread and self._capture_thread.is_alive():
            self._capture_thread.join(timeout=2)
        if loop is not None and not loop.is_running():
            loop.close()
        self._loop = None
        if self.source:
            self.source.close()
            self.source = None
        self.frames.clear()

    def _run_loop(self) -> None:
        assert self._loop is not None
        asyncio.set_event_loop(self._loop)
        logger.debug("Tracking loop thread started")
        self._loop.run_forever()

    def _capture_loop(self) -> None:
        """Continuously read frames from the configured source."""

        logger.debug("Capture loop started")
        while self.running and self.source:
            frame = self.source.read()
            if frame is None:
                time.sleep(0.02)
                continue
            self.frames.update(frame)

    def _call(self, fn: Callable[..., T], *args: Any) -> T:
        """Run `fn(*args)` on the tracking loop thread and return its result."""

        loop = self._loop
        if loop is None or not loop.is_running():
            return fn(*args)

        async def _invoke() -> T:
            return fn(*args)

        return asyncio.run_coroutine_threadsafe(_invoke(), loop).result(timeout=CALL_TIMEOUT_S)

    # -- published state -------------------------------------------------

    def latest_snapshot(self) -> TrackingSnapshot:
        return self.coordinator.latest

    def latest_lighting(self) -> LightingState:
        return self.coordinator.latest_lighting

    def tracking_quality(self) -> TrackingQuality:
        return self.coordinator.tracking_quality()

    def tracking_state(self) -> TrackingState:
        return self.coordinator.state

    def product(self) -> ProductSelection:
        return self.coordinator.product

    def override(self) -> OverlayOverride | None:
        return self.coordinator.override

    def error(self) -> str | None:
        return self.last_error or self.coordinator.last_error

    # -- commands ---------------------------------------------------------

    def select_product(self, category: ProductCategory | str, name: str | None = None) -> TrackingSnapshot:
        return self._call(self.coordinator.select_product, category, name)

    def set_override(self, override: OverlayOverride | None) -> TrackingSnapshot:
        return self._call(self.coordinator.set_override, override)

    def clear_override(self) -> TrackingSnapshot:
        return self.set_override(None)

    def nudge_override(self, dx: int = 0, dy: int = 0, dscale: int = 0, drotate: int = 0) -> TrackingSnapshot:
        return self._call(self.coordinator.nudge, dx, dy, dscale, drotate)

    async def tracking_stream(self, poll_s: float = 0.02) -> AsyncGenerator[TrackingSnapshot, None]:
        """Yield each newly published snapshot."""

        last_id = -1
        while True:
            snapshot = self.coordinator.latest
            if snapshot.cycle_id != last_id:
                last_id = snapshot.cycle_id
                yield snapshot
            await asyncio.sleep(poll_s)
