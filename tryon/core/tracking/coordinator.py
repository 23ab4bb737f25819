"""Tracking loop coordinator.

Owns one try-on session: the detector, the smoothing buffer, the lighting
timer and (in 3D mode) the scene renderer. The loop is a cooperative
self-rescheduling cycle on the running asyncio event loop:

    detect -> extract -> smooth -> place -> publish

At most one detection is in flight; the next cycle is scheduled only after
the current one resolves. Every published value is an immutable snapshot,
so readers never need a lock.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from tryon.core.config.settings import TryOnSettings
from tryon.core.detectors.base import LandmarkDetector
from tryon.core.errors import DetectionMiss, IncompleteLandmarks, InitializationFailure
from tryon.core.geometry.extractor import (
    REFERENCE_EYE_DISTANCE,
    REFERENCE_SHOULDER_DISTANCE,
    extract_geometry,
)
from tryon.core.lighting.adapter import LightingAdapter, scene_light_intensities
from tryon.core.placement.overrides import nudge as step_override
from tryon.core.placement.pose3d import default_placement_3d, place_3d
from tryon.core.placement.strategy import place_overlay
from tryon.core.render.base import SceneRenderer
from tryon.core.render.mesh import build_face_mesh
from tryon.core.smoothing.buffer import SmoothingBuffer
from tryon.core.tracking.quality import TrackingQuality, classify_tracking_quality
from tryon.core.types import (
    FrameSize,
    LightingState,
    OverlayOverride,
    OverlayTransform,
    Placement3D,
    ProductCategory,
    ProductSelection,
    SmoothedEstimate,
    TrackingMetrics,
    TrackingSnapshot,
)
from tryon.core.video_sources.base import FrameProvider

logger = logging.getLogger(__name__)

FRAME_RATE_WINDOW_S = 1.0
DEFAULT_SURFACE_SIZE: FrameSize = (640, 480)


class TrackingState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    TRACKING = "tracking"
    STOPPED = "stopped"


@dataclass(frozen=True)
class TrackingConfig:
    render_mode: str = "2d"
    smoothing_window: int = 3
    min_detection_interval_s: float = 0.033
    refresh_interval_s: float = 0.016
    lighting_interval_s: float = 0.5
    lighting_sample_size: int = 100
    reference_eye_distance: float = REFERENCE_EYE_DISTANCE
    reference_shoulder_distance: float = REFERENCE_SHOULDER_DISTANCE

    @property
    def is_3d(self) -> bool:
        return self.render_mode == "3d"


def tracking_config_from_settings(settings: TryOnSettings) -> TrackingConfig:
    """Build a `TrackingConfig` from the millisecond-based settings."""

    return TrackingConfig(
        render_mode=settings.render_mode,
        smoothing_window=int(settings.smoothing_window),
        min_detection_interval_s=float(settings.min_detection_interval_ms) / 1000.0,
        refresh_interval_s=float(settings.refresh_interval_ms) / 1000.0,
        lighting_interval_s=float(settings.lighting_interval_ms) / 1000.0,
        lighting_sample_size=int(settings.lighting_sample_size),
        reference_eye_distance=float(settings.reference_eye_distance),
        reference_shoulder_distance=float(settings.reference_shoulder_distance),
    )


class TrackingCoordinator:
    """Runs the per-cycle tracking loop for one session.

    Args:
        detector: Landmark detection capability; initialized by `start()` and
            cleaned up by `stop()`.
        frames: Provider of the current video frame.
        product: Initial product selection.
        config: Loop timing and rendering options.
        renderer: Scene renderer used in 3D mode (optional).
        clock: Monotonic clock in seconds; injectable for tests and offline runs.
    """

    def __init__(
        self,
        detector: LandmarkDetector,
        frames: FrameProvider,
        *,
        product: ProductSelection | None = None,
        config: TrackingConfig | None = None,
        renderer: SceneRenderer | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.detector = detector
        self.frames = frames
        self.config = config or TrackingConfig()
        self.renderer = renderer
        self.clock = clock
        self.lighting = LightingAdapter(
            frames,
            sample_size=self.config.lighting_sample_size,
            interval_s=self.config.lighting_interval_s,
        )
        self.buffer = SmoothingBuffer(self.config.smoothing_window)
        self.last_error: str | None = None

        self._state = TrackingState.UNINITIALIZED
        self._tracking = False
        self._product = product or ProductSelection(ProductCategory.JEWELRY)
        self._override: OverlayOverride | None = None
        self._cycle_id = 0
        self._in_flight = False
        self._handle: asyncio.TimerHandle | None = None
        self._cycle_task: asyncio.Task | None = None
        self._lighting_task: asyncio.Task | None = None
        self._surface_size: FrameSize | None = None

        self._last_detection_at: float | None = None
        self._window_start: float | None = None
        self._window_cycles = 0
        self._metrics = TrackingMetrics()
        self._snapshot = self._compose(None, detected=False)

    # -- published state -------------------------------------------------

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def product(self) -> ProductSelection:
        return self._product

    @property
    def override(self) -> OverlayOverride | None:
        return self._override

    @property
    def latest(self) -> TrackingSnapshot:
        return self._snapshot

    @property
    def latest_lighting(self) -> LightingState:
        return self.lighting.latest

    @property
    def latest_metrics(self) -> TrackingMetrics:
        return self._snapshot.metrics

    def tracking_quality(self) -> TrackingQuality:
        m = self._snapshot.metrics
        return classify_tracking_quality(m.tracking_confidence, m.frame_rate)

    # -- lifecycle -------------------------------------------------------

    async def start(self, *, run_loop: bool = True) -> None:
        """Initialize capabilities and begin tracking.

        With `run_loop=False` no timers are scheduled; the caller drives
        `run_cycle()` and `lighting.sample()` itself (offline processing).

        Raises:
            InitializationFailure: The detector or renderer could not start.
                The session stays in `INITIALIZING`.
        """

        if self._state is TrackingState.STOPPED:
            raise RuntimeError("tracking session already stopped")
        if self._state is not TrackingState.UNINITIALIZED:
            return

        self._state = TrackingState.INITIALIZING
        try:
            await self.detector.initialize()
            if not self.detector.is_ready():
                raise InitializationFailure("detector did not report ready")
            if self.config.is_3d and self.renderer is not None:
                size = self.frames.frame_size() or DEFAULT_SURFACE_SIZE
                self.renderer.attach(*size)
                self._surface_size = size
        except InitializationFailure as exc:
            self.last_error = str(exc)
            logger.exception("Tracking initialization failed")
            raise
        except Exception as exc:
            self.last_error = f"Initialization failed: {exc}"
            logger.exception("Tracking initialization failed")
            raise InitializationFailure(self.last_error) from exc

        self.last_error = None
        self._state = TrackingState.READY
        logger.info("Tracking ready (mode=%s, product=%s)", self.config.render_mode, self._product.category.value)

        self._state = TrackingState.TRACKING
        self._tracking = True
        now = self.clock()
        self._window_start = now
        self._window_cycles = 0
        if run_loop:
            self._lighting_task = asyncio.create_task(self.lighting.run())
            self._schedule(0.0)

    def stop(self) -> None:
        """Stop tracking and release capabilities. Idempotent; `STOPPED` is terminal."""

        if self._state is TrackingState.STOPPED:
            return
        self._tracking = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._lighting_task is not None:
            self._lighting_task.cancel()
            self._lighting_task = None
        # An in-flight detection is left to resolve; it will not publish.
        self._cycle_task = None
        try:
            self.detector.cleanup()
        except Exception:
            logger.warning("Detector cleanup failed", exc_info=True)
        if self.renderer is not None and self._surface_size is not None:
            try:
                self.renderer.dispose()
            except Exception:
                logger.warning("Renderer dispose failed", exc_info=True)
            self._surface_size = None
        self._state = TrackingState.STOPPED
        logger.info("Tracking stopped after %d cycles", self._cycle_id)

    # -- selection / overrides -------------------------------------------

    def select_product(self, category: ProductCategory | str, name: str | None = None) -> TrackingSnapshot:
        """Switch the product being tried on and republish the overlay.

        Raises:
            UnsupportedCategory: `category` is unknown; nothing changes.
        """

        self._product = ProductSelection.of(category, name)
        logger.debug("Selected product %s (%s)", self._product.category.value, name)
        return self._republish()

    def set_override(self, override: OverlayOverride | None) -> TrackingSnapshot:
        """Replace (or clear with `None`) the manual overlay adjustment."""

        self._override = override
        return self._republish()

    def nudge(self, dx: int = 0, dy: int = 0, dscale: int = 0, drotate: int = 0) -> TrackingSnapshot:
        """Step the on-screen overlay by whole move/scale/rotate increments."""

        stepped = step_override(self._override, self._snapshot.overlay, dx=dx, dy=dy, dscale=dscale, drotate=drotate)
        return self.set_override(stepped)

    # -- the cycle -------------------------------------------------------

    def _schedule(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(max(0.0, delay), self._launch_cycle)

    def _launch_cycle(self) -> None:
        self._handle = None
        if not self._tracking:
            return
        self._cycle_task = asyncio.ensure_future(self._cycle_and_reschedule())

    async def _cycle_and_reschedule(self) -> None:
        try:
            await self.run_cycle()
        except Exception:
            # run_cycle absorbs per-cycle errors; anything here is a bug, keep looping.
            logger.exception("Unexpected error in tracking cycle")
        finally:
            if self._tracking:
                self._schedule(self.config.refresh_interval_s)

    async def run_cycle(self) -> TrackingSnapshot | None:
        """Run one tracking cycle and return the snapshot it published.

        Returns `None` when nothing was published: the session is not
        tracking, a cycle is already in flight, or the detection missed
        without completing a frame-rate window.
        """

        if not self._tracking or self._in_flight:
            return None
        self._in_flight = True
        try:
            return await self._run_cycle()
        finally:
            self._in_flight = False

    async def _run_cycle(self) -> TrackingSnapshot | None:
        now = self.clock()
        metrics_rolled = self._count_cycle(now)

        last = self._last_detection_at
        if last is not None and now - last < self.config.min_detection_interval_s:
            # Between detections: refresh from the last smoothed estimate.
            return self._publish(self._estimate(), detected=False, latency_ms=None)

        self._last_detection_at = now
        t0 = self.clock()
        try:
            frame = self.frames.snapshot()
            frame_size = self.frames.frame_size()
            if frame is None or frame_size is None:
                raise DetectionMiss("no frame available")
            landmarks = await self.detector.detect(frame)
            latency_ms = (self.clock() - t0) * 1000.0
            if landmarks is None:
                raise DetectionMiss("no subject in frame")
            geometry = extract_geometry(
                landmarks,
                frame_size,
                reference_eye_distance=self.config.reference_eye_distance,
                reference_shoulder_distance=self.config.reference_shoulder_distance,
            )
        except (DetectionMiss, IncompleteLandmarks) as exc:
            logger.debug("Cycle skipped: %s", exc)
            return self._publish_metrics_only(metrics_rolled)
        except Exception:
            logger.exception("Detection failed")
            return self._publish_metrics_only(metrics_rolled)

        if not self._tracking:
            # Stopped while the detection was in flight.
            return None
        self.buffer.push(geometry, landmarks)
        return self._publish(self._estimate(), detected=True, latency_ms=latency_ms)

    def _count_cycle(self, now: float) -> bool:
        """Advance the rolling frame-rate window; True when it rolled over."""

        if self._window_start is None:
            self._window_start = now
        self._window_cycles += 1
        elapsed = now - self._window_start
        if elapsed < FRAME_RATE_WINDOW_S:
            return False
        fps = self._window_cycles / elapsed
        self._metrics = TrackingMetrics(
            frame_rate=fps,
            detection_latency_ms=self._metrics.detection_latency_ms,
            render_time_ms=self._metrics.render_time_ms,
            tracking_confidence=self._metrics.tracking_confidence,
        )
        self._window_start = now
        self._window_cycles = 0
        return True

    def _estimate(self) -> SmoothedEstimate | None:
        return self.buffer.current()

    def _frame_size(self) -> FrameSize:
        return self.frames.frame_size() or self._surface_size or DEFAULT_SURFACE_SIZE

    def _placement_3d(self, estimate: SmoothedEstimate | None) -> Placement3D | None:
        if not self.config.is_3d:
            return None
        size = self._frame_size()
        if estimate is None:
            return default_placement_3d(self._product.category, size)
        return place_3d(estimate, self._product.category, frame_size=size)

    def _render_3d(self, estimate: SmoothedEstimate | None, placement: Placement3D | None) -> None:
        if self.renderer is None or placement is None or self._surface_size is None:
            return
        size = self._frame_size()
        try:
            if size != self._surface_size:
                self.renderer.resize(*size)
                self._surface_size = size
            mesh = build_face_mesh(estimate.landmarks if estimate else None, size)
            ambient, directional = scene_light_intensities(self.lighting.latest)
            self.renderer.render(mesh, placement, ambient=ambient, directional=directional)
        except Exception:
            logger.exception("Scene render failed")

    def _overlay(self, estimate: SmoothedEstimate | None) -> OverlayTransform:
        geometry = estimate.geometry if estimate is not None else None
        return place_overlay(
            geometry,
            self._product.category,
            self._product.name,
            frame_size=self._frame_size() if geometry is not None else None,
            override=self._override,
            landmarks=estimate.landmarks if estimate is not None else None,
        )

    def _compose(self, estimate: SmoothedEstimate | None, *, detected: bool) -> TrackingSnapshot:
        return TrackingSnapshot(
            cycle_id=self._cycle_id,
            timestamp=time.time(),
            overlay=self._overlay(estimate),
            metrics=self._metrics,
            placement_3d=self._placement_3d(estimate),
            detected=detected,
        )

    def _publish(
        self,
        estimate: SmoothedEstimate | None,
        *,
        detected: bool,
        latency_ms: float | None,
    ) -> TrackingSnapshot | None:
        t0 = self.clock()
        geometry = estimate.geometry if estimate is not None else None
        overlay = self._overlay(estimate)
        placement = self._placement_3d(estimate)
        self._render_3d(estimate, placement)
        render_ms = (self.clock() - t0) * 1000.0

        if not self._tracking:
            return None
        self._metrics = TrackingMetrics(
            frame_rate=self._metrics.frame_rate,
            detection_latency_ms=latency_ms if latency_ms is not None else self._metrics.detection_latency_ms,
            render_time_ms=render_ms,
            tracking_confidence=geometry.confidence if geometry is not None else 0.0,
        )
        self._cycle_id += 1
        self._snapshot = TrackingSnapshot(
            cycle_id=self._cycle_id,
            timestamp=time.time(),
            overlay=overlay,
            metrics=self._metrics,
            placement_3d=placement,
            detected=detected,
        )
        return self._snapshot

    def _publish_metrics_only(self, rolled: bool) -> TrackingSnapshot | None:
        """After a miss: keep the overlay, refresh metrics once per window."""

        if not rolled or not self._tracking:
            return None
        prev = self._snapshot
        self._cycle_id += 1
        self._snapshot = TrackingSnapshot(
            cycle_id=self._cycle_id,
            timestamp=time.time(),
            overlay=prev.overlay,
            metrics=self._metrics,
            placement_3d=prev.placement_3d,
            detected=False,
        )
        return self._snapshot

    def _republish(self) -> TrackingSnapshot:
        detected = self._snapshot.detected
        self._cycle_id += 1
        self._snapshot = self._compose(self._estimate(), detected=detected)
        return self._snapshot
