"""Face mesh buffers for 3D rendering.

Vertices come from the raw `mesh` landmark group (the detector's full point
list, in its native index order); triangles use a fixed subset of the
MediaPipe Face Mesh topology covering the outline, one eye, the nose bridge
and the mouth.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from tryon.core.types import FrameSize, LandmarkSet

FACE_TRIANGULATION: tuple[tuple[int, int, int], ...] = (
    # outline
    (10, 338, 297), (338, 332, 297), (332, 284, 297), (284, 251, 297),
    (251, 389, 297), (389, 356, 297), (356, 454, 297), (454, 323, 297),
    (323, 361, 297), (361, 288, 297), (288, 397, 297), (397, 365, 297),
    (365, 379, 297), (379, 378, 297), (378, 400, 297), (400, 10, 297),
    # eye
    (33, 7, 163), (7, 144, 163), (144, 145, 163), (145, 153, 163),
    (153, 154, 163), (154, 155, 163), (155, 133, 163), (133, 173, 163),
    (173, 157, 163), (157, 158, 163), (158, 33, 163),
    # nose bridge
    (1, 2, 5), (2, 4, 5), (4, 6, 5), (6, 19, 5), (19, 20, 5),
    # mouth
    (61, 84, 17), (84, 314, 17), (314, 405, 17), (405, 320, 17),
    (320, 307, 17), (307, 375, 17), (375, 321, 17), (321, 308, 17),
)


@dataclass(frozen=True)
class FaceMesh:
    """Vertex (N, 3) float32 and triangle index (M, 3) int32 buffers."""

    vertices: np.ndarray
    indices: np.ndarray

    @property
    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        """Axis-aligned (min, max) corners of the vertex cloud."""

        return self.vertices.min(axis=0), self.vertices.max(axis=0)


def build_face_mesh(landmarks: LandmarkSet | None, frame_size: FrameSize | None = None) -> FaceMesh | None:
    """Return the mesh buffers for `landmarks`, or `None` without a `mesh` group.

    Triangles referring to points the detector did not emit are dropped.
    Normalized landmarks are scaled to pixels when `frame_size` is given.
    """

    if landmarks is None:
        return None
    points = landmarks.group("mesh")
    if not points:
        return None

    vertices = np.array([(p.x, p.y, p.z) for p in points], dtype=np.float32)
    if landmarks.normalized and frame_size is not None:
        w, h = frame_size
        vertices[:, 0] *= float(w)
        vertices[:, 1] *= float(h)
        vertices[:, 2] *= float(w)

    n = len(vertices)
    tris = [t for t in FACE_TRIANGULATION if max(t) < n]
    indices = np.array(tris, dtype=np.int32).reshape(-1, 3)
    return FaceMesh(vertices=vertices, indices=indices)
