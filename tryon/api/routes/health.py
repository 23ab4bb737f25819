"""Health check endpoints."""

from fastapi import APIRouter

from tryon.api.schemas.models import HealthSchema
from tryon.api.services import state

router = APIRouter()


@router.get("/health", response_model=HealthSchema)
def health() -> HealthSchema:
    """Lightweight health endpoint; never starts the engine."""

    engine = state._engine
    tracking = engine.tracking_state().value if engine is not None else None
    return HealthSchema(status="ok", tracking=tracking)
