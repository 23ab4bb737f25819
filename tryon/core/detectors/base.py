from __future__ import annotations

from typing import Protocol

from tryon.core.types import Frame, LandmarkSet


class LandmarkDetector(Protocol):
    """Session-scoped landmark detection capability.

    `initialize()` raises `InitializationFailure` when the model cannot be
    loaded. `detect()` returns `None` when nothing is found in the frame.
    """

    async def initialize(self) -> None: ...

    def is_ready(self) -> bool: ...

    async def detect(self, frame: Frame) -> LandmarkSet | None: ...

    def cleanup(self) -> None: ...
