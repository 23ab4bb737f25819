"""MediaPipe Face Mesh integration.

MediaPipe is an optional dependency (`pip install .[face]`); it is imported
when the detector initializes, not at module import.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from collections.abc import Sequence
from typing import Any

import cv2

from tryon.core.errors import InitializationFailure
from tryon.core.types import Frame, LandmarkSet

logger = logging.getLogger(__name__)

# Face Mesh reports no per-face score once a face is tracked.
FACE_MESH_CONFIDENCE = 0.85

# Face Mesh landmark indices per named group.
FACE_MESH_GROUPS: dict[str, tuple[int, ...]] = {
    "face_oval": (10, 338, 297, 332, 284, 251, 389, 356, 454, 323, 361, 288, 397, 365, 379, 378, 400),
    "left_eye": (33, 7, 163, 144, 145, 153, 154, 155, 133, 173, 157, 158),
    "right_eye": (362, 382, 381, 380, 374, 373, 390, 249, 263, 466, 388, 387),
    "left_eyebrow": (46, 53, 52, 51, 48, 115, 131, 134, 102, 49),
    "right_eyebrow": (276, 283, 282, 281, 278, 344, 360, 363, 331, 279),
    "nose": (1, 2, 5, 4, 6, 19, 20, 94, 125, 141, 235, 236, 3, 51, 48, 115, 131, 134, 102),
    "lips": (61, 84, 17, 314, 405, 320, 307, 375, 321, 308, 324, 318, 78, 95, 88, 178, 87, 14, 317, 402),
    "jawline": (172, 136, 150, 149, 176, 148, 152, 377, 400, 378, 379, 365, 397, 288, 361),
}


def landmarks_from_face_mesh(
    points: Sequence[Sequence[float]],
    confidence: float = FACE_MESH_CONFIDENCE,
) -> LandmarkSet:
    """Group a raw normalized Face Mesh point list into named face groups.

    Indices past the end of `points` are skipped; the full list is kept as the
    `mesh` group.
    """

    raw = [tuple(float(c) for c in p) for p in points]
    groups: dict[str, list[tuple[float, ...]]] = {}
    for name, indices in FACE_MESH_GROUPS.items():
        pts = [raw[i] for i in indices if i < len(raw)]
        if pts:
            groups[name] = pts
    if raw:
        groups["mesh"] = raw
    return LandmarkSet.from_points(groups, confidence=confidence, normalized=True)


def _load_mediapipe() -> Any:
    try:
        return importlib.import_module("mediapipe")
    except ModuleNotFoundError as exc:
        raise InitializationFailure(
            "mediapipe is not installed; install the 'face' extra or use detector=yolo_pose"
        ) from exc


class FaceMeshLandmarkDetector:
    """Single-face landmark detector backed by MediaPipe Face Mesh."""

    def __init__(self, min_detection_confidence: float = 0.5, min_tracking_confidence: float = 0.5) -> None:
        self.min_detection_confidence = min_detection_confidence
        self.min_tracking_confidence = min_tracking_confidence
        self._mesh: Any | None = None

    async def initialize(self) -> None:
        if self._mesh is not None:
            return
        mp = _load_mediapipe()
        try:
            self._mesh = await asyncio.to_thread(
                mp.solutions.face_mesh.FaceMesh,
                static_image_mode=False,
                max_num_faces=1,
                refine_landmarks=True,
                min_detection_confidence=self.min_detection_confidence,
                min_tracking_confidence=self.min_tracking_confidence,
            )
        except Exception as exc:
            raise InitializationFailure(f"Failed to create Face Mesh: {exc}") from exc
        logger.info("Face Mesh ready")

    def is_ready(self) -> bool:
        return self._mesh is not None

    def _process(self, frame: Frame) -> LandmarkSet | None:
        if self._mesh is None:
            return None
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        results = self._mesh.process(rgb)
        faces = getattr(results, "multi_face_landmarks", None)
        if not faces:
            return None
        return landmarks_from_face_mesh([(lm.x, lm.y, lm.z) for lm in faces[0].landmark])

    async def detect(self, frame: Frame) -> LandmarkSet | None:
        return await asyncio.to_thread(self._process, frame)

    def cleanup(self) -> None:
        if self._mesh is not None:
            close = getattr(self._mesh, "close", None)
            if close is not None:
                close()
            self._mesh = None
