from __future__ import annotations

from typing import Protocol

from tryon.core.render.mesh import FaceMesh
from tryon.core.types import Placement3D


class SceneRenderer(Protocol):
    """3D output surface driven by the tracking loop in 3D mode."""

    def attach(self, width: int, height: int) -> None:
        """Bind to an output surface of the given size."""

    def render(
        self,
        mesh: FaceMesh | None,
        placement: Placement3D,
        *,
        ambient: float,
        directional: float,
    ) -> None:
        """Draw one frame."""

    def resize(self, width: int, height: int) -> None: ...

    def dispose(self) -> None: ...
