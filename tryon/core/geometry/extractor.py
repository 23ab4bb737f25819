"""Landmark geometry extraction.

Turns one `LandmarkSet` into a `Geometry` summary: center, extents, in-plane
rotation, resolution-independent scale and the detector's confidence. Face and
body payloads are told apart by which point groups are present, so detectors
with different layouts can share the same downstream stages.
"""

from __future__ import annotations

import math

import numpy as np

from tryon.core.errors import IncompleteLandmarks
from tryon.core.types import FrameSize, Geometry, LandmarkKind, LandmarkPoint, LandmarkSet

# Typical inter-eye anchor distance (px) at which scale == 1.0.
REFERENCE_EYE_DISTANCE = 100.0
# Typical shoulder-to-shoulder distance (px) at which scale == 1.0.
REFERENCE_SHOULDER_DISTANCE = 200.0

MIN_FACE_OVAL_POINTS = 3


def _as_array(points: tuple[LandmarkPoint, ...], frame_size: FrameSize, normalized: bool) -> np.ndarray:
    """Return an (N, 3) float array in pixel coordinates."""

    arr = np.array([(p.x, p.y, p.z) for p in points], dtype=np.float64).reshape(-1, 3)
    if normalized:
        w, h = frame_size
        arr[:, 0] *= float(w)
        arr[:, 1] *= float(h)
    return arr


def group_pixels(landmarks: LandmarkSet, name: str, frame_size: FrameSize) -> np.ndarray:
    """Return the points of group `name` as an (N, 3) pixel array (N may be 0)."""

    return _as_array(landmarks.group(name), frame_size, landmarks.normalized)


def _anchor_pose(left: np.ndarray, right: np.ndarray, reference: float) -> tuple[float, float]:
    """Return (rotation_z, scale) from two anchor points."""

    dx = float(right[0] - left[0])
    dy = float(right[1] - left[1])
    rotation = math.atan2(dy, dx)
    scale = math.hypot(dx, dy) / reference
    return rotation, scale


def _summarize(
    outline: np.ndarray,
    left: np.ndarray,
    right: np.ndarray,
    reference: float,
    confidence: float,
    kind: LandmarkKind,
) -> Geometry:
    center = outline.mean(axis=0)
    mins = outline.min(axis=0)
    maxs = outline.max(axis=0)
    rotation, scale = _anchor_pose(left, right, reference)
    return Geometry(
        center=LandmarkPoint(float(center[0]), float(center[1]), float(center[2])),
        width=float(maxs[0] - mins[0]),
        height=float(maxs[1] - mins[1]),
        rotation_z=rotation,
        scale=scale,
        confidence=confidence,
        kind=kind,
    )


def extract_face_geometry(
    landmarks: LandmarkSet,
    frame_size: FrameSize,
    *,
    reference_eye_distance: float = REFERENCE_EYE_DISTANCE,
) -> Geometry:
    """Summarize a face payload (face oval plus the first point of each eye)."""

    oval = landmarks.group("face_oval")
    if len(oval) < MIN_FACE_OVAL_POINTS:
        raise IncompleteLandmarks(
            f"face_oval needs at least {MIN_FACE_OVAL_POINTS} points, got {len(oval)}"
        )
    if not landmarks.has("left_eye", "right_eye"):
        raise IncompleteLandmarks("both eye anchors are required for rotation/scale")

    norm = landmarks.normalized
    outline = _as_array(oval, frame_size, norm)
    left = _as_array(landmarks.group("left_eye")[:1], frame_size, norm)[0]
    right = _as_array(landmarks.group("right_eye")[:1], frame_size, norm)[0]
    return _summarize(
        outline, left, right, reference_eye_distance, landmarks.confidence, LandmarkKind.FACE
    )


def extract_body_geometry(
    landmarks: LandmarkSet,
    frame_size: FrameSize,
    *,
    reference_shoulder_distance: float = REFERENCE_SHOULDER_DISTANCE,
) -> Geometry:
    """Summarize a body payload (shoulders, plus hips when available)."""

    if not landmarks.has("left_shoulder", "right_shoulder"):
        raise IncompleteLandmarks("both shoulder anchors are required for rotation/scale")

    norm = landmarks.normalized
    left = _as_array(landmarks.group("left_shoulder")[:1], frame_size, norm)[0]
    right = _as_array(landmarks.group("right_shoulder")[:1], frame_size, norm)[0]
    torso = [left, right]
    for name in ("left_hip", "right_hip"):
        hip = landmarks.group(name)
        if hip:
            torso.append(_as_array(hip[:1], frame_size, norm)[0])
    outline = np.vstack(torso)
    return _summarize(
        outline, left, right, reference_shoulder_distance, landmarks.confidence, LandmarkKind.BODY
    )


def extract_geometry(
    landmarks: LandmarkSet,
    frame_size: FrameSize,
    *,
    reference_eye_distance: float = REFERENCE_EYE_DISTANCE,
    reference_shoulder_distance: float = REFERENCE_SHOULDER_DISTANCE,
) -> Geometry:
    """Return the `Geometry` of a landmark set.

    Face groups take precedence over body groups when both are present.

    Raises:
        IncompleteLandmarks: When neither a face nor a body anchor pair is present.
        ValueError: When the frame size is not positive.
    """

    w, h = frame_size
    if w <= 0 or h <= 0:
        raise ValueError(f"frame_size must be positive, got {frame_size}")

    kind = landmarks.kind
    if kind is LandmarkKind.FACE:
        return extract_face_geometry(
            landmarks, frame_size, reference_eye_distance=reference_eye_distance
        )
    if kind is LandmarkKind.BODY:
        return extract_body_geometry(
            landmarks, frame_size, reference_shoulder_distance=reference_shoulder_distance
        )
    raise IncompleteLandmarks(
        "landmark set has neither face_oval nor shoulder groups: "
        f"{sorted(landmarks.groups.keys())}"
    )
