"""Category placement rules for 2D overlays.

Maps the current smoothed geometry, the product category and an optional
product-name hint to an `OverlayTransform` in percent-of-frame coordinates.
The rectangle's (x, y) is the anchor the renderer centers the asset on.
"""

from __future__ import annotations

import logging
import math

import numpy as np

from tryon.core.geometry.extractor import group_pixels
from tryon.core.types import (
    FrameSize,
    Geometry,
    LandmarkKind,
    LandmarkSet,
    OverlayOverride,
    OverlayPosition,
    OverlayTransform,
    ProductCategory,
)

logger = logging.getLogger(__name__)

DEFAULT_OPACITY = 0.9
MIN_SCALE = 0.5
MAX_SCALE = 2.0

# Shown whenever no geometry is available, so the overlay never blanks.
DEFAULT_POSITIONS: dict[ProductCategory, OverlayPosition] = {
    ProductCategory.JEWELRY: OverlayPosition(x=50.0, y=25.0, width=20.0, height=15.0),
    ProductCategory.SHOES: OverlayPosition(x=50.0, y=80.0, width=30.0, height=20.0),
    ProductCategory.CLOTHES: OverlayPosition(x=50.0, y=55.0, width=40.0, height=45.0),
    ProductCategory.FURNITURE: OverlayPosition(x=30.0, y=40.0, width=40.0, height=35.0),
}

# Furniture is placed in the background and never follows the subject.
FURNITURE_POSITION = DEFAULT_POSITIONS[ProductCategory.FURNITURE]

SHOES_BAND_Y = 75.0
SHOES_BAND_HEIGHT = 20.0
SHOES_WIDTH_FACTOR = 1.5

CLOTHES_WIDTH_FACTOR = 1.6
CLOTHES_HEIGHT_FACTOR = 2.0
CLOTHES_MIN_WIDTH = 30.0
CLOTHES_MIN_HEIGHT = 35.0
CLOTHES_ROTATION_FACTOR = 0.5

EARRING_WIDTH_FACTOR = 0.8

# Body rules are in units of the shoulder span.
SHIRT_PADDING = 0.1
SHIRT_COLLAR_RAISE = 0.1
# Used when the hips are not visible and the box is only the shoulder line.
MIN_TORSO_RATIO = 0.5
FALLBACK_TORSO_RATIO = 1.3
SHOE_SIZE = 0.15
NECKLACE_BODY_WIDTH = 0.5
NECKLACE_BODY_HEIGHT = 0.2
WRIST_BODY_SIZE = 0.2

EARRING_HINTS = ("earring",)
NECKLACE_HINTS = ("necklace", "pendant", "chain")
WRIST_HINTS = ("watch", "bracelet")


def default_position(category: ProductCategory | str) -> OverlayPosition:
    """Return the fixed base position for `category`."""

    return DEFAULT_POSITIONS[ProductCategory.parse(category)]


def normalize_degrees(deg: float) -> float:
    """Wrap an angle in degrees into [-180, 180)."""

    return (float(deg) + 180.0) % 360.0 - 180.0


def _clamp(value: float, lo: float, hi: float) -> float:
    return float(min(hi, max(lo, value)))


class _Frame:
    """Pixel -> percent conversion for one tracked geometry."""

    def __init__(self, geometry: Geometry, frame_size: FrameSize) -> None:
        w, h = frame_size
        if w <= 0 or h <= 0:
            raise ValueError(f"frame_size must be positive, got {frame_size}")
        self.size = frame_size
        self.w = float(w)
        self.h = float(h)
        g = geometry
        self.cx = g.center.x
        self.cy = g.center.y
        self.fw = g.width
        self.fh = g.height
        self.left = g.center.x - g.width / 2.0
        self.top = g.top
        self.bottom = g.bottom

    def px(self, x: float) -> float:
        return x / self.w * 100.0

    def py(self, y: float) -> float:
        return y / self.h * 100.0

    def box(self, cx: float, cy: float, width: float, height: float) -> OverlayPosition:
        return OverlayPosition(x=self.px(cx), y=self.py(cy), width=self.px(width), height=self.py(height))


def _first_points(landmarks: LandmarkSet | None, names: tuple[str, ...], f: _Frame) -> np.ndarray:
    """(K, 3) pixel array holding the first point of each present group."""

    if landmarks is None:
        return np.empty((0, 3))
    rows = [group_pixels(landmarks, n, f.size)[:1] for n in names if landmarks.has(n)]
    return np.vstack(rows) if rows else np.empty((0, 3))


def _jewelry(geometry: Geometry, f: _Frame, hint: str) -> tuple[OverlayPosition, float]:
    roll = math.degrees(geometry.rotation_z)
    if any(k in hint for k in EARRING_HINTS):
        # Anchored on the face's left edge, at ear height.
        pos = OverlayPosition(
            x=f.px(f.left),
            y=f.py(f.cy + f.fh * 0.3),
            width=f.px(f.fw * EARRING_WIDTH_FACTOR),
            height=f.py(f.fh * 0.4),
        )
        return pos, roll
    if any(k in hint for k in NECKLACE_HINTS):
        pos = OverlayPosition(
            x=f.px(f.cx),
            y=f.py(f.cy + f.fh * 0.8),
            width=f.px(f.fw * 0.6),
            height=f.py(f.fh * 0.3),
        )
        return pos, roll
    if any(k in hint for k in WRIST_HINTS):
        pos = OverlayPosition(
            x=f.px(f.left - f.fw * 0.5),
            y=f.py(f.cy + f.fh * 1.2),
            width=f.px(f.fw * 0.4),
            height=f.py(f.fh * 0.2),
        )
        return pos, 0.0
    base = DEFAULT_POSITIONS[ProductCategory.JEWELRY]
    return OverlayPosition(x=f.px(f.cx), y=f.py(f.cy), width=base.width, height=base.height), roll


def _body_jewelry(
    geometry: Geometry, f: _Frame, hint: str, landmarks: LandmarkSet | None
) -> tuple[OverlayPosition, float]:
    if any(k in hint for k in WRIST_HINTS):
        wrists = _first_points(landmarks, ("left_wrist", "right_wrist"), f)
        if len(wrists):
            size = f.fw * WRIST_BODY_SIZE
            return f.box(float(wrists[0, 0]), float(wrists[0, 1]), size, size), 0.0
    # No face in a body payload: everything else is worn at the neck.
    size_w = f.fw * NECKLACE_BODY_WIDTH
    size_h = f.fw * NECKLACE_BODY_HEIGHT
    return f.box(f.cx, f.top, size_w, size_h), math.degrees(geometry.rotation_z)


def _shoes(f: _Frame) -> OverlayPosition:
    return OverlayPosition(
        x=f.px(f.cx),
        y=SHOES_BAND_Y,
        width=f.px(f.fw * SHOES_WIDTH_FACTOR),
        height=SHOES_BAND_HEIGHT,
    )


def _body_shoes(f: _Frame, landmarks: LandmarkSet | None) -> OverlayPosition:
    ankles = _first_points(landmarks, ("left_ankle", "right_ankle"), f)
    if not len(ankles):
        return _shoes(f)
    shoe = f.fw * SHOE_SIZE
    span = float(ankles[:, 0].max() - ankles[:, 0].min())
    return f.box(float(ankles[:, 0].mean()), float(ankles[:, 1].mean()), span + 2.0 * shoe, shoe)


def _clothes(f: _Frame) -> OverlayPosition:
    width = max(CLOTHES_MIN_WIDTH, f.px(f.fw * CLOTHES_WIDTH_FACTOR))
    height = max(CLOTHES_MIN_HEIGHT, f.py(f.fh * CLOTHES_HEIGHT_FACTOR))
    # The band hangs from the chin: its top edge sits on the face's bottom.
    return OverlayPosition(x=f.px(f.cx), y=f.py(f.bottom) + height / 2.0, width=width, height=height)


def _body_clothes(f: _Frame) -> OverlayPosition:
    """Shirt box from just above the shoulder line down to the hips."""

    top = f.top - f.fw * SHIRT_COLLAR_RAISE
    bottom = f.bottom if f.fh >= f.fw * MIN_TORSO_RATIO else f.top + f.fw * FALLBACK_TORSO_RATIO
    height = bottom - top
    width = f.fw * (1.0 + 2.0 * SHIRT_PADDING)
    return f.box(f.cx, top + height / 2.0, width, height)


def compute_base(
    geometry: Geometry | None,
    category: ProductCategory,
    product_name: str | None,
    frame_size: FrameSize | None,
    landmarks: LandmarkSet | None = None,
) -> tuple[OverlayPosition, float]:
    """Return the unclamped (position, rotation_deg) before overrides.

    Face geometry uses the face-relative rules; body geometry (shoulders to
    hips) places clothes on the torso, shoes at the ankles and jewelry at the
    neck or wrist. `landmarks` supplies the ankle and wrist points.
    """

    if geometry is None or category is ProductCategory.FURNITURE:
        return DEFAULT_POSITIONS[category], 0.0
    if frame_size is None:
        raise ValueError("frame_size is required when geometry is present")

    f = _Frame(geometry, frame_size)
    hint = (product_name or "").lower()
    body = geometry.kind is LandmarkKind.BODY
    if category is ProductCategory.JEWELRY:
        if body:
            return _body_jewelry(geometry, f, hint, landmarks)
        return _jewelry(geometry, f, hint)
    if category is ProductCategory.SHOES:
        return (_body_shoes(f, landmarks) if body else _shoes(f)), 0.0
    roll = math.degrees(geometry.rotation_z) * CLOTHES_ROTATION_FACTOR
    return (_body_clothes(f) if body else _clothes(f)), roll


def compose(computed: OverlayTransform, override: OverlayOverride | None) -> OverlayTransform:
    """Apply a manual override on top of a computed transform and clamp it."""

    if override is not None:
        computed = OverlayTransform(
            position=override.position if override.position is not None else computed.position,
            scale=override.scale if override.scale is not None else computed.scale,
            rotation_deg=(
                override.rotation_deg if override.rotation_deg is not None else computed.rotation_deg
            ),
            opacity=override.opacity if override.opacity is not None else computed.opacity,
        )
    return OverlayTransform(
        position=computed.position.clamped(),
        scale=_clamp(computed.scale, MIN_SCALE, MAX_SCALE),
        rotation_deg=normalize_degrees(computed.rotation_deg),
        opacity=_clamp(computed.opacity, 0.0, 1.0),
    )


def place_overlay(
    geometry: Geometry | None,
    category: ProductCategory | str,
    product_name: str | None = None,
    *,
    frame_size: FrameSize | None = None,
    override: OverlayOverride | None = None,
    landmarks: LandmarkSet | None = None,
) -> OverlayTransform:
    """Compute the published 2D transform for one product.

    Args:
        geometry: Smoothed geometry, or `None` when nothing is tracked yet.
        category: Product category; unknown values are rejected.
        product_name: Optional name used for jewelry sub-placement hints.
        frame_size: Source frame (width, height) in pixels; required with geometry.
        override: Optional manual adjustment; unspecified fields keep computed values.
        landmarks: Smoothed landmarks; body placement reads ankles and wrists from them.

    Raises:
        UnsupportedCategory: When `category` is not a known category.
    """

    cat = ProductCategory.parse(category)
    position, rotation = compute_base(geometry, cat, product_name, frame_size, landmarks)
    computed = OverlayTransform(
        position=position,
        scale=1.0,
        rotation_deg=rotation,
        opacity=DEFAULT_OPACITY,
    )
    return compose(computed, override)
