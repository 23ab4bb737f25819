"""OpenCV wireframe renderer.

Rasterizes the face mesh and the 3D placement anchor onto an in-memory BGR
surface. Used as the 3D scene backend for the API preview and offline tools.
"""

from __future__ import annotations

import logging

import cv2
import numpy as np

from tryon.core.render.mesh import FaceMesh
from tryon.core.types import Placement3D

logger = logging.getLogger(__name__)

MESH_COLOR = (0, 255, 0)
ANCHOR_COLOR = (255, 128, 0)
PLACEMENT_COLOR = (0, 170, 255)


class WireframeRenderer:
    """`SceneRenderer` drawing onto a numpy surface."""

    def __init__(self) -> None:
        self.surface: np.ndarray | None = None
        self.frames_rendered = 0

    @property
    def size(self) -> tuple[int, int] | None:
        if self.surface is None:
            return None
        h, w = self.surface.shape[:2]
        return w, h

    def attach(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"surface size must be positive, got {width}x{height}")
        self.surface = np.zeros((int(height), int(width), 3), dtype=np.uint8)
        logger.debug("Wireframe surface attached (%dx%d)", width, height)

    def resize(self, width: int, height: int) -> None:
        self.attach(width, height)

    def dispose(self) -> None:
        self.surface = None

    def render(
        self,
        mesh: FaceMesh | None,
        placement: Placement3D,
        *,
        ambient: float,
        directional: float,
    ) -> None:
        if self.surface is None:
            raise RuntimeError("render() called before attach()")
        img = self.surface
        img[:] = 0
        # Light intensities only modulate line brightness here.
        gain = float(np.clip((ambient + directional) / 2.0, 0.0, 1.0))

        if mesh is not None and len(mesh.indices):
            pts = mesh.vertices[:, :2].astype(np.int32)
            color = tuple(int(c * gain) for c in MESH_COLOR)
            polys = [pts[tri].reshape(-1, 1, 2) for tri in mesh.indices]
            cv2.polylines(img, polys, True, color, 1, cv2.LINE_AA)

        for ax, ay, _ in placement.anchor_points:
            cv2.circle(img, (int(ax), int(ay)), 3, ANCHOR_COLOR, -1)
        px, py, _ = placement.position
        half = int(20 * max(placement.scale[0], 0.1))
        cv2.rectangle(img, (int(px) - half, int(py) - half), (int(px) + half, int(py) + half), PLACEMENT_COLOR, 2)
        self.frames_rendered += 1
