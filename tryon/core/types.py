"""Shared type definitions used across the try-on core.

This module centralizes the small, immutable values that flow through one
tracking cycle (landmarks, geometry, overlay transforms, lighting and metrics)
so detector/extractor/placement code can stay strongly typed. Every value is a
frozen dataclass: stages publish new values instead of mutating shared ones.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

import numpy as np

from tryon.core.errors import UnsupportedCategory

Frame = np.ndarray

Vector3 = tuple[float, float, float]
Euler3 = tuple[float, float, float]
FrameSize = tuple[int, int]  # (width, height) in pixels


class ProductCategory(str, Enum):
    """Catalog categories that have a placement rule."""

    JEWELRY = "jewelry"
    SHOES = "shoes"
    CLOTHES = "clothes"
    FURNITURE = "furniture"

    @classmethod
    def parse(cls, value: ProductCategory | str) -> ProductCategory:
        """Return the category for `value` or raise `UnsupportedCategory`."""

        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedCategory(value) from None


class LandmarkKind(str, Enum):
    """Which capability set a landmark payload carries."""

    FACE = "face"
    BODY = "body"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class LandmarkPoint:
    """One detected point in frame pixel space (z is approximate depth)."""

    x: float
    y: float
    z: float = 0.0


@dataclass(frozen=True)
class LandmarkSet:
    """Named point groups produced by one detection.

    `normalized=True` means coordinates are fractions of the frame size (as
    emitted by MediaPipe) and must be scaled by the extractor.
    """

    groups: Mapping[str, tuple[LandmarkPoint, ...]]
    confidence: float
    normalized: bool = False

    def __post_init__(self) -> None:
        frozen = {str(k): tuple(v) for k, v in dict(self.groups).items()}
        object.__setattr__(self, "groups", MappingProxyType(frozen))
        object.__setattr__(self, "confidence", float(min(1.0, max(0.0, self.confidence))))

    @classmethod
    def from_points(
        cls,
        groups: Mapping[str, Iterable[Iterable[float]]],
        confidence: float,
        normalized: bool = False,
    ) -> LandmarkSet:
        """Build a set from plain `(x, y[, z])` sequences."""

        converted: dict[str, tuple[LandmarkPoint, ...]] = {}
        for name, points in groups.items():
            converted[name] = tuple(LandmarkPoint(*map(float, p)) for p in points)
        return cls(groups=converted, confidence=confidence, normalized=normalized)

    def group(self, name: str) -> tuple[LandmarkPoint, ...]:
        """Return the points of `name`, or an empty tuple when absent."""

        return self.groups.get(name, ())

    def has(self, *names: str) -> bool:
        """Return True when every named group is present and non-empty."""

        return all(self.groups.get(n) for n in names)

    @property
    def kind(self) -> LandmarkKind:
        if self.has("face_oval"):
            return LandmarkKind.FACE
        if self.has("left_shoulder") or self.has("right_shoulder"):
            return LandmarkKind.BODY
        return LandmarkKind.UNKNOWN


@dataclass(frozen=True)
class Geometry:
    """Compact geometric summary of one landmark set (pixels, radians).

    For a face the box is the face oval; for a body it spans shoulders to hips.
    """

    center: LandmarkPoint
    width: float
    height: float
    rotation_z: float
    scale: float
    confidence: float
    kind: LandmarkKind = LandmarkKind.FACE

    @property
    def top(self) -> float:
        return self.center.y - self.height / 2.0

    @property
    def bottom(self) -> float:
        return self.center.y + self.height / 2.0


@dataclass(frozen=True)
class SmoothedEstimate:
    """Buffer-averaged geometry plus the averaged landmarks it came from."""

    geometry: Geometry
    landmarks: LandmarkSet | None = None
    samples: int = 1


@dataclass(frozen=True)
class OverlayPosition:
    """Overlay rectangle in percent of the frame; (x, y) is the anchor point."""

    x: float
    y: float
    width: float
    height: float

    def clamped(self) -> OverlayPosition:
        return OverlayPosition(
            x=_clamp(self.x, 0.0, 100.0),
            y=_clamp(self.y, 0.0, 100.0),
            width=_clamp(self.width, 0.0, 100.0),
            height=_clamp(self.height, 0.0, 100.0),
        )


@dataclass(frozen=True)
class OverlayTransform:
    """2D placement applied by the renderer to a product asset."""

    position: OverlayPosition
    scale: float = 1.0
    rotation_deg: float = 0.0
    opacity: float = 0.9


@dataclass(frozen=True)
class OverlayOverride:
    """Manual adjustments; `None` fields defer to the computed transform."""

    position: OverlayPosition | None = None
    scale: float | None = None
    rotation_deg: float | None = None
    opacity: float | None = None


@dataclass(frozen=True)
class Placement3D:
    """3D pose for a mesh asset, in frame pixel space."""

    position: Vector3
    rotation: Euler3
    scale: Vector3
    anchor_points: tuple[Vector3, ...]
    category: ProductCategory


@dataclass(frozen=True)
class LightingState:
    """Multiplicative adjustment factors for the overlay rendering."""

    brightness: float = 1.0
    contrast: float = 1.0
    saturation: float = 1.0


NEUTRAL_LIGHTING = LightingState()


@dataclass(frozen=True)
class TrackingMetrics:
    """Per-cycle performance numbers published alongside the overlay."""

    frame_rate: float = 0.0
    detection_latency_ms: float = 0.0
    render_time_ms: float = 0.0
    tracking_confidence: float = 0.0


@dataclass(frozen=True)
class ProductSelection:
    """The product currently being tried on."""

    category: ProductCategory
    name: str | None = None

    @classmethod
    def of(cls, category: ProductCategory | str, name: str | None = None) -> ProductSelection:
        return cls(category=ProductCategory.parse(category), name=name)


@dataclass(frozen=True)
class TrackingSnapshot:
    """Everything the renderer needs for one frame, published atomically."""

    cycle_id: int
    timestamp: float
    overlay: OverlayTransform
    metrics: TrackingMetrics = field(default_factory=TrackingMetrics)
    placement_3d: Placement3D | None = None
    detected: bool = False


def _clamp(value: float, lo: float, hi: float) -> float:
    return float(min(hi, max(lo, value)))
