"""Temporal smoothing of tracked geometry.

Keeps the last few `Geometry` values of one session in a bounded FIFO and
exposes their field-wise mean. Rotation is averaged on the circle so that
readings on either side of +/-180 degrees do not collapse to 0.
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Iterable, Sequence

import numpy as np

from tryon.core.types import Geometry, LandmarkPoint, LandmarkSet, SmoothedEstimate

DEFAULT_CAPACITY = 3


def circular_mean(angles: Iterable[float]) -> float:
    """Return the shortest-path mean of angles in radians, in (-pi, pi]."""

    arr = np.asarray(list(angles), dtype=np.float64)
    if arr.size == 0:
        raise ValueError("circular_mean of an empty sequence")
    return float(math.atan2(float(np.sin(arr).mean()), float(np.cos(arr).mean())))


def mean_geometry(items: Sequence[Geometry]) -> Geometry:
    """Return the field-wise mean of `items` (rotation averaged circularly)."""

    if not items:
        raise ValueError("mean_geometry of an empty sequence")
    centers = np.array([(g.center.x, g.center.y, g.center.z) for g in items], dtype=np.float64)
    c = centers.mean(axis=0)
    return Geometry(
        center=LandmarkPoint(float(c[0]), float(c[1]), float(c[2])),
        width=float(np.mean([g.width for g in items])),
        height=float(np.mean([g.height for g in items])),
        rotation_z=circular_mean(g.rotation_z for g in items),
        scale=float(np.mean([g.scale for g in items])),
        confidence=float(np.mean([g.confidence for g in items])),
        kind=items[-1].kind,
    )


def mean_landmarks(items: Sequence[LandmarkSet]) -> LandmarkSet:
    """Average landmark groups point-wise across `items`.

    A group is averaged only when every item carries it with the same point
    count; otherwise the latest item's points are used as-is.
    """

    if not items:
        raise ValueError("mean_landmarks of an empty sequence")
    latest = items[-1]
    groups: dict[str, tuple[LandmarkPoint, ...]] = {}
    for name, points in latest.groups.items():
        series = [s.group(name) for s in items]
        if any(len(p) != len(points) for p in series):
            groups[name] = points
            continue
        stacked = np.array([[(p.x, p.y, p.z) for p in pts] for pts in series], dtype=np.float64)
        avg = stacked.mean(axis=0).reshape(-1, 3)
        groups[name] = tuple(LandmarkPoint(float(x), float(y), float(z)) for x, y, z in avg)
    return LandmarkSet(
        groups=groups,
        confidence=float(np.mean([s.confidence for s in items])),
        normalized=latest.normalized,
    )


class SmoothingBuffer:
    """Fixed-capacity FIFO of recent geometry (and landmark) readings.

    Owned by exactly one tracking session. `current()` is the only source of
    geometry handed to placement.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = int(capacity)
        self._geometry: deque[Geometry] = deque(maxlen=self.capacity)
        self._landmarks: deque[LandmarkSet | None] = deque(maxlen=self.capacity)

    def __len__(self) -> int:
        return len(self._geometry)

    def push(self, geometry: Geometry, landmarks: LandmarkSet | None = None) -> None:
        """Append a reading, evicting the oldest one when full."""

        self._geometry.append(geometry)
        self._landmarks.append(landmarks)

    def clear(self) -> None:
        self._geometry.clear()
        self._landmarks.clear()

    def current(self) -> SmoothedEstimate | None:
        """Return the mean of the held readings, or `None` when empty."""

        if not self._geometry:
            return None
        geometry = mean_geometry(list(self._geometry))
        held = [lm for lm in self._landmarks if lm is not None]
        landmarks = mean_landmarks(held) if held else None
        return SmoothedEstimate(geometry=geometry, landmarks=landmarks, samples=len(self._geometry))
