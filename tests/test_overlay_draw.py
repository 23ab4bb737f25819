import numpy as np
import pytest

from tryon.core.overlay.draw import ANCHOR_COLOR, apply_lighting, draw_overlay, overlay_rect
from tryon.core.types import LightingState, OverlayPosition, OverlayTransform


def _overlay(**kwargs) -> OverlayTransform:
    defaults = dict(position=OverlayPosition(x=50.0, y=50.0, width=40.0, height=30.0))
    defaults.update(kwargs)
    return OverlayTransform(**defaults)


def test_overlay_rect_applies_scale():
    cx, cy, w, h = overlay_rect(_overlay(scale=1.5), 200, 100)
    assert (cx, cy) == (100.0, 50.0)
    assert w == pytest.approx(120.0)
    assert h == pytest.approx(45.0)


def test_apply_lighting_brightens_and_keeps_alpha():
    img = np.full((4, 4, 4), 100, dtype=np.uint8)
    img[:, :, 3] = 200
    out = apply_lighting(img, LightingState(brightness=1.5, contrast=1.0, saturation=1.0))
    assert out.shape == img.shape
    assert int(out[0, 0, 0]) == 150
    assert int(out[0, 0, 3]) == 200
    assert int(img[0, 0, 0]) == 100


def test_apply_lighting_contrast_pivots_on_mid_grey():
    img = np.zeros((2, 2, 3), dtype=np.uint8)
    img[0, 0] = 128
    img[1, 1] = 64
    out = apply_lighting(img, LightingState(brightness=1.0, contrast=2.0, saturation=1.0))
    assert int(out[0, 0, 0]) == 128
    assert int(out[1, 1, 0]) == 0


def test_apply_lighting_desaturates():
    img = np.zeros((2, 2, 3), dtype=np.uint8)
    img[:, :] = (0, 0, 255)
    out = apply_lighting(img, LightingState(brightness=1.0, contrast=1.0, saturation=0.0))
    b, g, r = (int(v) for v in out[0, 0])
    assert b == g == r


def test_draw_overlay_outline_does_not_touch_input():
    frame = np.zeros((100, 200, 3), dtype=np.uint8)
    out = draw_overlay(frame, _overlay(), label="Ring")
    assert not frame.any()
    assert out.any()
    assert tuple(int(v) for v in out[50, 100]) == ANCHOR_COLOR


def test_draw_overlay_blends_asset_with_opacity():
    frame = np.zeros((100, 200, 3), dtype=np.uint8)
    asset = np.full((10, 10, 4), 255, dtype=np.uint8)
    out = draw_overlay(frame, _overlay(opacity=0.5), asset=asset)
    # Inside the rectangle, away from the anchor dot.
    assert 110 <= int(out[40, 70, 0]) <= 145
    # Outside the rectangle.
    assert int(out[5, 5, 0]) == 0


def test_draw_overlay_transparent_asset_leaves_frame():
    frame = np.full((50, 50, 3), 30, dtype=np.uint8)
    asset = np.zeros((8, 8, 4), dtype=np.uint8)
    out = draw_overlay(frame, _overlay(), lighting=LightingState(1.2, 1.0, 1.0), asset=asset)
    assert int(out[20, 15, 0]) == 30


def test_apply_lighting_expands_grayscale_to_bgr():
    gray = np.full((20, 20), 100, dtype=np.uint8)
    out = apply_lighting(gray, LightingState(brightness=1.2, contrast=1.0, saturation=0.9))
    assert out.shape == (20, 20, 3)
    assert int(out[0, 0, 0]) == 120


def test_draw_overlay_lights_grayscale_asset():
    frame = np.zeros((100, 200, 3), dtype=np.uint8)
    asset = np.full((20, 20), 200, dtype=np.uint8)
    out = draw_overlay(frame, _overlay(opacity=1.0), lighting=LightingState(1.1, 1.0, 1.0), asset=asset)
    assert int(out[40, 70, 0]) == 220
    assert int(out[5, 5, 0]) == 0
