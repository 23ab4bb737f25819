import asyncio

import numpy as np
import pytest

from tryon.core.errors import InitializationFailure, UnsupportedCategory
from tryon.core.placement.strategy import DEFAULT_POSITIONS
from tryon.core.render.wireframe import WireframeRenderer
from tryon.core.tracking.coordinator import (
    TrackingConfig,
    TrackingCoordinator,
    TrackingState,
    tracking_config_from_settings,
)
from tryon.core.tracking.quality import TrackingQuality
from tryon.core.types import LandmarkSet, OverlayOverride, ProductCategory, ProductSelection
from tryon.core.video_sources.base import LatestFrameBuffer


def _face_landmarks(cx=320.0, cy=240.0, confidence=0.9) -> LandmarkSet:
    return LandmarkSet.from_points(
        {
            "face_oval": [(cx - 60, cy), (cx, cy - 80), (cx + 60, cy), (cx, cy + 80)],
            "left_eye": [(cx - 50, cy - 20)],
            "right_eye": [(cx + 50, cy - 20)],
        },
        confidence=confidence,
    )


class _FakeDetector:
    def __init__(self, results=None, fail_init=False, ready=True):
        self.results = list(results or [])
        self.fail_init = fail_init
        self.ready = ready
        self.initialized = False
        self.cleaned = False
        self.calls = 0

    async def initialize(self):
        if self.fail_init:
            raise RuntimeError("model missing")
        self.initialized = True

    def is_ready(self):
        return self.initialized and self.ready

    async def detect(self, frame):
        self.calls += 1
        if self.results:
            item = self.results.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return _face_landmarks()

    def cleanup(self):
        self.cleaned = True


class _Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now

    def advance(self, s):
        self.now += s


def _frames(w=640, h=480):
    frames = LatestFrameBuffer()
    frames.update(np.full((h, w, 3), 128, dtype=np.uint8))
    return frames


def _coordinator(detector=None, frames=None, clock=None, **kwargs):
    return TrackingCoordinator(
        detector or _FakeDetector(),
        frames or _frames(),
        clock=clock or _Clock(),
        **kwargs,
    )


def test_initial_snapshot_shows_category_default():
    coord = _coordinator(product=ProductSelection(ProductCategory.SHOES))
    assert coord.state is TrackingState.UNINITIALIZED
    assert coord.latest.overlay.position == DEFAULT_POSITIONS[ProductCategory.SHOES]
    assert coord.latest.detected is False


def test_start_transitions_to_tracking():
    coord = _coordinator()

    async def _run():
        await coord.start(run_loop=False)
        assert coord.state is TrackingState.TRACKING
        coord.stop()

    asyncio.run(_run())
    assert coord.state is TrackingState.STOPPED


def test_initialization_failure_stays_initializing():
    det = _FakeDetector(fail_init=True)
    coord = _coordinator(det)
    with pytest.raises(InitializationFailure):
        asyncio.run(coord.start(run_loop=False))
    assert coord.state is TrackingState.INITIALIZING
    assert "model missing" in (coord.last_error or "")


def test_detector_not_ready_is_initialization_failure():
    coord = _coordinator(_FakeDetector(ready=False))
    with pytest.raises(InitializationFailure):
        asyncio.run(coord.start(run_loop=False))
    assert coord.state is TrackingState.INITIALIZING


def test_stopped_is_terminal():
    coord = _coordinator()
    coord.stop()
    assert coord.state is TrackingState.STOPPED
    with pytest.raises(RuntimeError):
        asyncio.run(coord.start(run_loop=False))
    assert coord.state is TrackingState.STOPPED


def test_cycle_publishes_tracked_overlay():
    coord = _coordinator()

    async def _run():
        await coord.start(run_loop=False)
        return await coord.run_cycle()

    snap = asyncio.run(_run())
    assert snap is not None
    assert snap.detected is True
    assert snap.cycle_id == 1
    assert snap.overlay.position.x == pytest.approx(50.0)
    assert snap.overlay.position.y == pytest.approx(50.0)
    assert snap.metrics.tracking_confidence == pytest.approx(0.9)
    assert coord.latest is snap


def test_detection_miss_keeps_last_overlay():
    det = _FakeDetector(results=[_face_landmarks(cx=200.0), None, _face_landmarks(cx=200.0)])
    clock = _Clock()
    coord = _coordinator(det, clock=clock)

    async def _run():
        await coord.start(run_loop=False)
        first = await coord.run_cycle()
        clock.advance(0.05)
        missed = await coord.run_cycle()
        return first, missed

    first, missed = asyncio.run(_run())
    assert first is not None
    assert missed is None
    assert coord.latest is first
    assert coord.state is TrackingState.TRACKING


def test_detector_exception_is_absorbed():
    det = _FakeDetector(results=[RuntimeError("gpu lost")])
    coord = _coordinator(det)

    async def _run():
        await coord.start(run_loop=False)
        return await coord.run_cycle()

    assert asyncio.run(_run()) is None
    assert coord.state is TrackingState.TRACKING


def test_incomplete_landmarks_treated_as_miss():
    det = _FakeDetector(results=[LandmarkSet.from_points({"nose": [(1, 1)]}, confidence=0.9)])
    coord = _coordinator(det)

    async def _run():
        await coord.start(run_loop=False)
        return await coord.run_cycle()

    assert asyncio.run(_run()) is None
    assert len(coord.buffer) == 0


def test_throttled_cycles_republish_without_detecting():
    det = _FakeDetector()
    clock = _Clock()
    coord = _coordinator(det, clock=clock, config=TrackingConfig(min_detection_interval_s=0.033))

    async def _run():
        await coord.start(run_loop=False)
        await coord.run_cycle()
        clock.advance(0.016)
        refreshed = await coord.run_cycle()
        clock.advance(0.02)
        detected = await coord.run_cycle()
        return refreshed, detected

    refreshed, detected = asyncio.run(_run())
    assert det.calls == 2
    assert refreshed is not None and refreshed.detected is False
    assert refreshed.overlay == coord.latest.overlay
    assert detected is not None and detected.detected is True


def test_frame_rate_from_rolling_window():
    clock = _Clock()
    coord = _coordinator(clock=clock, config=TrackingConfig(min_detection_interval_s=0.0))

    async def _run():
        await coord.start(run_loop=False)
        for _ in range(31):
            clock.advance(1.0 / 30.0)
            await coord.run_cycle()

    asyncio.run(_run())
    assert coord.latest_metrics.frame_rate == pytest.approx(30.0, rel=0.05)
    assert coord.tracking_quality() is TrackingQuality.EXCELLENT


def test_stop_during_detection_does_not_publish():
    class _SlowDetector(_FakeDetector):
        async def detect(self, frame):
            await asyncio.sleep(0.01)
            return _face_landmarks()

    coord = _coordinator(_SlowDetector())

    async def _run():
        await coord.start(run_loop=False)
        before = coord.latest
        task = asyncio.create_task(coord.run_cycle())
        await asyncio.sleep(0)
        coord.stop()
        result = await task
        return before, result

    before, result = asyncio.run(_run())
    assert result is None
    assert coord.latest is before
    assert coord.state is TrackingState.STOPPED


def test_select_product_republishes_and_rejects_unknown():
    coord = _coordinator()
    snap = coord.select_product("furniture", "Sofa")
    assert coord.product == ProductSelection(ProductCategory.FURNITURE, "Sofa")
    assert snap.overlay.position == DEFAULT_POSITIONS[ProductCategory.FURNITURE]
    with pytest.raises(UnsupportedCategory):
        coord.select_product("hats")
    assert coord.product.category is ProductCategory.FURNITURE


def test_scale_override_keeps_tracked_position():
    coord = _coordinator()

    async def _run():
        await coord.start(run_loop=False)
        return await coord.run_cycle()

    tracked = asyncio.run(_run())
    snap = coord.set_override(OverlayOverride(scale=1.4))
    assert snap.overlay.scale == pytest.approx(1.4)
    assert snap.overlay.position == tracked.overlay.position
    assert snap.overlay.rotation_deg == tracked.overlay.rotation_deg
    cleared = coord.set_override(None)
    assert cleared.overlay.scale == 1.0


def test_nudge_steps_from_the_tracked_overlay():
    coord = _coordinator()

    async def _run():
        await coord.start(run_loop=False)
        return await coord.run_cycle()

    tracked = asyncio.run(_run())
    snap = coord.nudge(dx=1)
    assert snap.overlay.position.x == pytest.approx(tracked.overlay.position.x + 2.0)
    assert snap.overlay.position.y == pytest.approx(tracked.overlay.position.y)
    snap = coord.nudge(dscale=2)
    assert snap.overlay.scale == pytest.approx(1.2)
    assert coord.override.position is not None
    assert coord.override.rotation_deg is None


def test_body_landmarks_place_shoes_at_the_ankles():
    body = LandmarkSet.from_points(
        {
            "left_shoulder": [(220, 100)],
            "right_shoulder": [(420, 100)],
            "left_hip": [(240, 250)],
            "right_hip": [(400, 250)],
            "left_ankle": [(250, 450)],
            "right_ankle": [(390, 450)],
        },
        confidence=0.8,
    )
    coord = _coordinator(
        detector=_FakeDetector(results=[body]), product=ProductSelection(ProductCategory.SHOES)
    )

    async def _run():
        await coord.start(run_loop=False)
        return await coord.run_cycle()

    snap = asyncio.run(_run())
    assert snap.detected is True
    assert snap.overlay.position.x == pytest.approx(50.0)
    assert snap.overlay.position.y == pytest.approx(450 / 480 * 100)


def test_scheduled_loop_runs_cycles_and_lighting():
    det = _FakeDetector()
    coord = TrackingCoordinator(
        det,
        _frames(),
        config=TrackingConfig(refresh_interval_s=0.005, min_detection_interval_s=0.0, lighting_interval_s=0.01),
    )

    async def _run():
        await coord.start()
        await asyncio.sleep(0.1)
        coord.stop()
        await asyncio.sleep(0.02)

    asyncio.run(_run())
    assert det.calls >= 2
    assert det.cleaned is True
    assert coord.latest.detected is True
    # Mid-grey frame: brightness 1.0, bright-side contrast.
    assert coord.latest_lighting.contrast == 0.95


def test_3d_mode_attaches_renderer_and_publishes_placement():
    renderer = WireframeRenderer()
    coord = _coordinator(renderer=renderer, config=TrackingConfig(render_mode="3d"))

    async def _run():
        await coord.start(run_loop=False)
        return await coord.run_cycle()

    snap = asyncio.run(_run())
    assert renderer.size == (640, 480)
    assert renderer.frames_rendered == 1
    assert snap.placement_3d is not None
    assert snap.placement_3d.category is ProductCategory.JEWELRY
    coord.stop()
    assert renderer.surface is None


def test_renderer_attach_failure_is_initialization_failure():
    class _BadRenderer(WireframeRenderer):
        def attach(self, width, height):
            raise RuntimeError("no GL context")

    coord = _coordinator(renderer=_BadRenderer(), config=TrackingConfig(render_mode="3d"))
    with pytest.raises(InitializationFailure):
        asyncio.run(coord.start(run_loop=False))
    assert coord.state is TrackingState.INITIALIZING


def test_config_from_settings_converts_milliseconds():
    from tryon.core.config.settings import TryOnSettings

    cfg = tracking_config_from_settings(
        TryOnSettings(min_detection_interval_ms=50, refresh_interval_ms=20, lighting_interval_ms=1000)
    )
    assert cfg.min_detection_interval_s == pytest.approx(0.05)
    assert cfg.refresh_interval_s == pytest.approx(0.02)
    assert cfg.lighting_interval_s == pytest.approx(1.0)
    assert cfg.smoothing_window == 3
