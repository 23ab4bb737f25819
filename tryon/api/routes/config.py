"""Try-on settings endpoints.

Reads and patches the detector, render mode, smoothing window and the
detection/refresh/lighting cadence. Every change rebuilds the engine; the
selected product and manual override carry over.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from tryon.api.schemas.models import ConfigSchema
from tryon.api.services.state import get_settings, reload_settings
from tryon.core.config.presets import PRESETS, list_presets, preset_patch
from tryon.core.config.settings import TryOnSettings, settings_to_dict

router = APIRouter()


def _as_schema(settings: TryOnSettings) -> ConfigSchema:
    return ConfigSchema(**settings_to_dict(settings))


@router.get("/config", response_model=ConfigSchema)
def get_config() -> ConfigSchema:
    """Return the settings the engine is running with (env and YAML merged)."""

    return _as_schema(get_settings())


@router.get("/config/presets")
def get_presets() -> dict[str, list[dict[str, object]]]:
    """List the device presets (quality, balanced, battery) and what they set."""

    return {"presets": list_presets()}


@router.post("/config/presets/{preset_id}", response_model=ConfigSchema)
def apply_preset(preset_id: str) -> ConfigSchema:
    """Switch detection cadence and smoothing to a device preset.

    Placement rules and the selected detector are untouched.
    """

    try:
        patch = preset_patch(preset_id)
    except KeyError:
        known = ", ".join(sorted(PRESETS))
        raise HTTPException(status_code=404, detail=f"Unknown preset {preset_id!r} (known: {known})") from None
    return _as_schema(reload_settings(patch))


@router.post("/config", response_model=ConfigSchema)
def update_config(cfg: ConfigSchema) -> ConfigSchema:
    """Replace the runtime settings, e.g. swap face_mesh for yolo_pose or 2d for 3d.

    The running engine is stopped and rebuilt with the new detector and
    renderer. Changes live in memory only; persist them in the YAML file or
    TOV_* environment variables.
    """

    return _as_schema(reload_settings(cfg.model_dump()))
