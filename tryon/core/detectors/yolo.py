"""Ultralytics YOLO pose integration.

Maps the 17 COCO keypoints of the most confident person to named body groups.
Inference runs in a worker thread so the tracking loop stays responsive.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import numpy as np
from ultralytics import YOLO

from tryon.core.errors import InitializationFailure
from tryon.core.types import Frame, LandmarkSet

logger = logging.getLogger(__name__)

YOLO_POSE_DEFAULT_MODEL = "yolo11n-pose.pt"

# COCO keypoint index -> body group name.
COCO_BODY_KEYPOINTS: dict[int, str] = {
    5: "left_shoulder",
    6: "right_shoulder",
    7: "left_elbow",
    8: "right_elbow",
    9: "left_wrist",
    10: "right_wrist",
    11: "left_hip",
    12: "right_hip",
    13: "left_knee",
    14: "right_knee",
    15: "left_ankle",
    16: "right_ankle",
}


def _to_numpy(value: Any) -> np.ndarray:
    if hasattr(value, "cpu"):
        value = value.cpu()
    return value.numpy() if hasattr(value, "numpy") else np.asarray(value)


def landmarks_from_keypoints(
    keypoints: np.ndarray,
    confidence: float,
    keypoint_confidence: float = 0.3,
) -> LandmarkSet:
    """Build body groups from one person's (17, 2|3) keypoint array.

    Keypoints whose own score is at or below `keypoint_confidence`, or that sit
    at the (0, 0) "not found" marker, are left out.
    """

    kp = np.asarray(keypoints, dtype=np.float64)
    groups: dict[str, list[tuple[float, float]]] = {}
    for idx, name in COCO_BODY_KEYPOINTS.items():
        if idx >= kp.shape[0]:
            continue
        x, y = float(kp[idx, 0]), float(kp[idx, 1])
        if kp.shape[1] > 2 and float(kp[idx, 2]) <= keypoint_confidence:
            continue
        if x == 0.0 and y == 0.0:
            continue
        groups[name] = [(x, y)]
    return LandmarkSet.from_points(groups, confidence=confidence)


class YoloPoseLandmarkDetector:
    """Body landmark detector wrapper around an Ultralytics pose model."""

    def __init__(
        self,
        model_name: str = YOLO_POSE_DEFAULT_MODEL,
        conf: float = 0.5,
        keypoint_conf: float = 0.3,
    ) -> None:
        self.model_name = model_name
        self.conf = conf
        self.keypoint_conf = keypoint_conf
        self.device = "cpu"
        self.model: Any | None = None
        self._predict_kwargs = {
            "conf": self.conf,
            "verbose": False,
            # Person class only (COCO class id 0).
            "classes": [0],
            "device": self.device,
        }

    async def initialize(self) -> None:
        if self.model is not None:
            return
        try:
            self.model = await asyncio.to_thread(YOLO, self.model_name, task="pose")
        except Exception as exc:
            raise InitializationFailure(f"Failed to load pose model {self.model_name!r}: {exc}") from exc
        logger.info("Loaded pose model %s", self.model_name)

    def is_ready(self) -> bool:
        return self.model is not None

    def _predict(self, frame: Frame) -> LandmarkSet | None:
        if self.model is None:
            return None
        results = self.model.predict(frame, **self._predict_kwargs)
        if not results:
            return None
        result = results[0]
        boxes = getattr(result, "boxes", None)
        kpts = getattr(result, "keypoints", None)
        if boxes is None or len(boxes) == 0 or kpts is None or getattr(kpts, "data", None) is None:
            return None

        confs = _to_numpy(boxes.conf).reshape(-1)
        kpts_np = _to_numpy(kpts.data)
        if confs.size == 0 or kpts_np.ndim != 3:
            return None
        best = int(np.argmax(confs))
        if best >= kpts_np.shape[0]:
            return None
        return landmarks_from_keypoints(kpts_np[best], float(confs[best]), self.keypoint_conf)

    async def detect(self, frame: Frame) -> LandmarkSet | None:
        return await asyncio.to_thread(self._predict, frame)

    def cleanup(self) -> None:
        self.model = None
