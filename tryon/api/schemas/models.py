"""Pydantic models for the HTTP/WS API."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from tryon.core.types import ProductCategory


class OverlayPositionSchema(BaseModel):
    """Overlay rectangle in percent of the frame; (x, y) is the anchor."""

    x: float
    y: float
    width: float
    height: float


class OverlayTransformSchema(BaseModel):
    position: OverlayPositionSchema
    scale: float
    rotation_deg: float
    opacity: float


class Placement3DSchema(BaseModel):
    position: tuple[float, float, float]
    rotation: tuple[float, float, float]
    scale: tuple[float, float, float]
    anchor_points: list[tuple[float, float, float]]
    category: str


class LightingSchema(BaseModel):
    brightness: float
    contrast: float
    saturation: float


class MetricsSchema(BaseModel):
    frame_rate: float
    detection_latency_ms: float
    render_time_ms: float
    tracking_confidence: float


class ProductSchema(BaseModel):
    """Product selection; unknown categories are rejected with 422."""

    category: str
    name: str | None = None

    @field_validator("category")
    @classmethod
    def _validate_category(cls, v: str) -> str:
        return ProductCategory.parse(v).value


class OverrideSchema(BaseModel):
    """Manual overlay adjustment; omitted fields keep their computed values."""

    position: OverlayPositionSchema | None = None
    scale: float | None = Field(default=None, gt=0.0)
    rotation_deg: float | None = None
    opacity: float | None = Field(default=None, ge=0.0, le=1.0)


class NudgeSchema(BaseModel):
    """Whole-step adjustment: 2% move, 0.1 scale or 15 degrees per unit."""

    dx: int = 0
    dy: int = 0
    dscale: int = 0
    drotate: int = 0


class TrackingSchema(BaseModel):
    """Published tracking state for one cycle."""

    cycle_id: int
    timestamp: float
    detected: bool
    state: str
    quality: str
    product: ProductSchema
    overlay: OverlayTransformSchema
    placement_3d: Placement3DSchema | None = None
    lighting: LightingSchema
    metrics: MetricsSchema
    error: str | None = None


class HealthSchema(BaseModel):
    status: str
    tracking: str | None = None


class ConfigSchema(BaseModel):
    """Runtime configuration payload."""

    video_source: str
    video_path: str | None = None
    camera_index: int = Field(default=0, ge=0)
    detector: str = "face_mesh"
    model_name: str = "yolo11n-pose.pt"
    confidence: float = Field(default=0.5, gt=0.0, le=1.0)
    keypoint_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    render_mode: str = "2d"
    smoothing_window: int = Field(default=3, ge=1)
    min_detection_interval_ms: float = Field(default=33.0, ge=0)
    refresh_interval_ms: float = Field(default=16.0, gt=0)
    lighting_interval_ms: float = Field(default=500.0, gt=0)
    lighting_sample_size: int = Field(default=100, gt=0)
    reference_eye_distance: float = Field(default=100.0, gt=0)
    reference_shoulder_distance: float = Field(default=200.0, gt=0)
    default_category: str = "jewelry"
    default_product_name: str | None = None

    @field_validator("video_source")
    @classmethod
    def _validate_source(cls, v: str) -> str:
        if v not in {"webcam", "file"}:
            raise ValueError("video_source must be webcam|file")
        return v

    @field_validator("detector")
    @classmethod
    def _validate_detector(cls, v: str) -> str:
        if v not in {"face_mesh", "yolo_pose"}:
            raise ValueError("detector must be face_mesh|yolo_pose")
        return v

    @field_validator("render_mode")
    @classmethod
    def _validate_render_mode(cls, v: str) -> str:
        if v not in {"2d", "3d"}:
            raise ValueError("render_mode must be 2d|3d")
        return v

    @field_validator("default_category")
    @classmethod
    def _validate_category(cls, v: str) -> str:
        return ProductCategory.parse(v).value
