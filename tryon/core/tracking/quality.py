from __future__ import annotations

from enum import Enum


class TrackingQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


# (label, min confidence, min frame rate); both bounds are exclusive.
QUALITY_TIERS: tuple[tuple[TrackingQuality, float, float], ...] = (
    (TrackingQuality.EXCELLENT, 0.8, 25.0),
    (TrackingQuality.GOOD, 0.6, 20.0),
    (TrackingQuality.FAIR, 0.4, 15.0),
)


def classify_tracking_quality(confidence: float, frame_rate: float) -> TrackingQuality:
    """Return the qualitative label for the current tracking metrics.

    A tier is reached only when both values are strictly above its thresholds,
    so a value sitting exactly on a threshold falls to the next tier down.
    """

    for label, min_conf, min_fps in QUALITY_TIERS:
        if confidence > min_conf and frame_rate > min_fps:
            return label
    return TrackingQuality.POOR
