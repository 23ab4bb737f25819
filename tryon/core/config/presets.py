from __future__ import annotations

from typing import Any


# Device-oriented presets. They trade detection cadence and smoothing lag
# against CPU/battery use; nothing else about placement changes.
#
# Notes:
# - min_detection_interval_ms: soft cap on detections per second
# - smoothing_window: more entries = steadier overlay, more lag
# - lighting_interval_ms: lighting is cosmetic, sample it less on weak devices


PRESETS: dict[str, dict[str, Any]] = {
    # Full detection rate, steadier overlay.
    "quality": {
        "smoothing_window": 5,
        "min_detection_interval_ms": 33.0,
        "refresh_interval_ms": 16.0,
        "lighting_interval_ms": 500.0,
    },
    "balanced": {
        "smoothing_window": 3,
        "min_detection_interval_ms": 50.0,
        "refresh_interval_ms": 16.0,
        "lighting_interval_ms": 750.0,
    },
    # Roughly 10 detections/second and a slower display refresh.
    "battery": {
        "smoothing_window": 2,
        "min_detection_interval_ms": 100.0,
        "refresh_interval_ms": 33.0,
        "lighting_interval_ms": 2000.0,
        "lighting_sample_size": 50,
    },
}


PRESET_LABELS: dict[str, str] = {
    "quality": "Quality",
    "balanced": "Balanced",
    "battery": "Battery saver",
}


def list_presets() -> list[dict[str, Any]]:
    return [
        {
            "id": preset_id,
            "label": PRESET_LABELS.get(preset_id, preset_id),
            "settings": PRESETS[preset_id],
        }
        for preset_id in PRESETS
    ]


def preset_patch(preset_id: str) -> dict[str, Any]:
    if preset_id not in PRESETS:
        raise KeyError(preset_id)
    return dict(PRESETS[preset_id])
