"""Tracking state and product/override endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from tryon.api.schemas.models import (
    LightingSchema,
    MetricsSchema,
    NudgeSchema,
    OverlayTransformSchema,
    OverrideSchema,
    Placement3DSchema,
    ProductSchema,
    TrackingSchema,
)
from tryon.api.services.engine import TryOnEngine
from tryon.api.services.state import get_engine
from tryon.core.errors import UnsupportedCategory
from tryon.core.types import OverlayOverride, OverlayPosition, TrackingSnapshot

router = APIRouter()


def build_tracking_schema(engine: TryOnEngine, snapshot: TrackingSnapshot | None = None) -> TrackingSchema:
    """Serialize the engine's published state (latest snapshot by default)."""

    snap = snapshot if snapshot is not None else engine.latest_snapshot()
    product = engine.product()
    placement = None
    if snap.placement_3d is not None:
        p = snap.placement_3d
        placement = Placement3DSchema(
            position=p.position,
            rotation=p.rotation,
            scale=p.scale,
            anchor_points=list(p.anchor_points),
            category=p.category.value,
        )
    return TrackingSchema(
        cycle_id=snap.cycle_id,
        timestamp=snap.timestamp,
        detected=snap.detected,
        state=engine.tracking_state().value,
        quality=engine.tracking_quality().value,
        product=ProductSchema(category=product.category.value, name=product.name),
        overlay=OverlayTransformSchema(**asdict(snap.overlay)),
        placement_3d=placement,
        lighting=LightingSchema(**asdict(engine.latest_lighting())),
        metrics=MetricsSchema(**asdict(snap.metrics)),
        error=engine.error(),
    )


@router.get("/tracking", response_model=TrackingSchema)
def get_tracking(engine: TryOnEngine = Depends(get_engine)) -> TrackingSchema:
    """Return the current overlay, lighting, metrics and quality label."""

    return build_tracking_schema(engine)


@router.post("/tracking/product", response_model=TrackingSchema)
def select_product(product: ProductSchema, engine: TryOnEngine = Depends(get_engine)) -> TrackingSchema:
    """Switch the product being tried on."""

    try:
        snapshot = engine.select_product(product.category, product.name)
    except UnsupportedCategory as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None
    return build_tracking_schema(engine, snapshot)


@router.put("/tracking/override", response_model=TrackingSchema)
def set_override(payload: OverrideSchema, engine: TryOnEngine = Depends(get_engine)) -> TrackingSchema:
    """Pin some overlay fields; the rest keep following the tracked subject."""

    position = OverlayPosition(**payload.position.model_dump()) if payload.position is not None else None
    override = OverlayOverride(
        position=position,
        scale=payload.scale,
        rotation_deg=payload.rotation_deg,
        opacity=payload.opacity,
    )
    return build_tracking_schema(engine, engine.set_override(override))


@router.delete("/tracking/override", response_model=TrackingSchema)
def clear_override(engine: TryOnEngine = Depends(get_engine)) -> TrackingSchema:
    """Drop the manual adjustment."""

    return build_tracking_schema(engine, engine.clear_override())


@router.post("/tracking/override/nudge", response_model=TrackingSchema)
def nudge_override(payload: NudgeSchema, engine: TryOnEngine = Depends(get_engine)) -> TrackingSchema:
    """Step the on-screen overlay; touched fields become pinned."""

    snapshot = engine.nudge_override(payload.dx, payload.dy, payload.dscale, payload.drotate)
    return build_tracking_schema(engine, snapshot)
