"""Error taxonomy for the try-on tracking core.

Only `InitializationFailure` is fatal to a session. Everything raised inside a
tracking cycle is absorbed by the coordinator and logged.
"""

from __future__ import annotations


class TryOnError(Exception):
    """Base class for all try-on errors."""


class InitializationFailure(TryOnError):
    """A capability (detector, renderer) could not be brought up."""


class DetectionMiss(TryOnError):
    """No subject was found in the current frame."""


class IncompleteLandmarks(TryOnError):
    """A landmark set lacks the named points needed to derive geometry."""


class UnsupportedCategory(TryOnError, ValueError):
    """Product category is not one of the known values."""

    def __init__(self, category: object) -> None:
        super().__init__(f"Unsupported product category: {category!r}")
        self.category = category


class LightingSampleFailure(TryOnError):
    """The current video frame could not be sampled for lighting."""
