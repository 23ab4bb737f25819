"""In-process state for settings and the try-on engine.

FastAPI routes use this module to access (and hot-reload) the singleton
`TryOnEngine` instance.
"""

from __future__ import annotations

from threading import RLock

from tryon.api.services.engine import TryOnEngine
from tryon.core.config.settings import TryOnSettings, load_settings, settings_to_dict

_settings: TryOnSettings | None = None
_engine: TryOnEngine | None = None
_lock = RLock()


def get_settings() -> TryOnSettings:
    """Return cached settings, loading them on first use."""

    global _settings
    with _lock:
        if _settings is None:
            _settings = load_settings()
    return _settings


def reload_settings(data: dict | None = None) -> TryOnSettings:
    """Reload settings and restart the engine if it is running.

    The running product selection and manual override survive the restart.

    Args:
        data: Optional patch dict merged into the loaded settings.
    """

    global _settings, _engine
    with _lock:
        base = load_settings()
        if data:
            _settings = TryOnSettings(**{**settings_to_dict(base), **data})
        else:
            _settings = base
        if _engine:
            product = _engine.product()
            override = _engine.override()
            _engine.stop()
            _engine = TryOnEngine(_settings)
            _engine.start()
            _engine.select_product(product.category, product.name)
            if override is not None:
                _engine.set_override(override)
    return _settings


def get_engine() -> TryOnEngine:
    """Return the singleton engine instance, creating and starting it if needed."""

    global _engine
    with _lock:
        if _engine is None:
            _engine = TryOnEngine(get_settings())
            _engine.start()
    return _engine


def stop_engine() -> None:
    """Stop and discard the singleton engine instance (if present)."""

    global _engine
    with _lock:
        if _engine is not None:
            _engine.stop()
            _engine = None
