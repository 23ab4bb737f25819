"""Try-on configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `TOV_`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tryon.core.types import ProductCategory


class TryOnSettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `TOV_` env overrides."""

    video_source: str = Field("webcam", description="webcam|file")
    video_path: str | None = None
    camera_index: int = 0

    detector: str = Field("face_mesh", description="face_mesh|yolo_pose")
    # Only used by the yolo_pose detector.
    model_name: str = Field("yolo11n-pose.pt")
    confidence: float = 0.5
    keypoint_confidence: float = 0.3

    render_mode: str = Field("2d", description="2d|3d")

    # Tracking loop timing
    smoothing_window: int = 3
    min_detection_interval_ms: float = 33.0
    refresh_interval_ms: float = 16.0
    lighting_interval_ms: float = 500.0
    lighting_sample_size: int = 100

    # Pixel distances that map to scale 1.0
    reference_eye_distance: float = 100.0
    reference_shoulder_distance: float = 200.0

    default_category: str = "jewelry"
    default_product_name: str | None = None

    model_config = SettingsConfigDict(env_prefix="TOV_", validate_assignment=True)

    @field_validator("video_source")
    def _validate_source(cls, v: str) -> str:
        if v not in {"webcam", "file"}:
            raise ValueError("video_source must be webcam|file")
        return v

    @field_validator("camera_index")
    def _validate_camera_index(cls, v: int) -> int:
        if v < 0:
            raise ValueError("camera_index must be >= 0")
        return v

    @field_validator("detector")
    def _validate_detector(cls, v: str) -> str:
        v2 = str(v).strip().lower()
        if v2 not in {"face_mesh", "yolo_pose"}:
            raise ValueError("detector must be face_mesh|yolo_pose")
        return v2

    @field_validator("confidence")
    def _validate_confidence(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("confidence must be in (0, 1]")
        return v

    @field_validator("keypoint_confidence")
    def _validate_keypoint_confidence(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("keypoint_confidence must be in [0, 1]")
        return v

    @field_validator("render_mode")
    def _validate_render_mode(cls, v: str) -> str:
        v2 = str(v).strip().lower()
        if v2 not in {"2d", "3d"}:
            raise ValueError("render_mode must be 2d|3d")
        return v2

    @field_validator("smoothing_window")
    def _validate_smoothing_window(cls, v: int) -> int:
        if v < 1:
            raise ValueError("smoothing_window must be >= 1")
        return v

    @field_validator("min_detection_interval_ms")
    def _validate_min_detection_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("min_detection_interval_ms must be >= 0")
        return float(v)

    @field_validator("refresh_interval_ms", "lighting_interval_ms")
    def _validate_positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("intervals must be > 0")
        return float(v)

    @field_validator("lighting_sample_size")
    def _validate_sample_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("lighting_sample_size must be > 0")
        return v

    @field_validator("reference_eye_distance", "reference_shoulder_distance")
    def _validate_reference(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("reference distances must be > 0")
        return float(v)

    @field_validator("default_category")
    def _validate_category(cls, v: str) -> str:
        # UnsupportedCategory is a ValueError, so pydantic reports it as a validation error.
        return ProductCategory.parse(v).value


def settings_to_dict(settings: TryOnSettings) -> dict[str, Any]:
    """Convert settings to a plain dict."""

    return settings.model_dump()


def _config_path() -> Path:
    """Return the YAML configuration path (defaults to config/tryon.config.yml)."""

    return Path(os.getenv("TOV_CONFIG", "config/tryon.config.yml"))


def load_settings() -> TryOnSettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = TryOnSettings()
    env_overrides: dict[str, Any] = {
        name: getattr(env_settings, name) for name in env_settings.model_fields_set
    }

    merged = {**data, **env_overrides}
    return TryOnSettings(**merged)
