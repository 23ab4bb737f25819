"""3D pose placement for mesh assets.

Positions are expressed in frame pixel space (x right, y down, z toward the
camera is negative), matching the coordinates of the tracked landmarks.
"""

from __future__ import annotations

from tryon.core.placement.strategy import DEFAULT_POSITIONS
from tryon.core.types import (
    FrameSize,
    Geometry,
    LandmarkKind,
    LandmarkPoint,
    LandmarkSet,
    Placement3D,
    ProductCategory,
    SmoothedEstimate,
    Vector3,
)

JEWELRY_SCALE = 0.8
JEWELRY_DEPTH = 5.0
CLOTHES_SCALE = (2.5, 3.0, 1.0)
CLOTHES_DROP = 1.5
CLOTHES_DEPTH = -10.0
SHOES_SCALE = (1.5, 0.8, 1.0)
SHOES_DROP = 4.0
SHOES_DEPTH = -20.0
SHOES_ANCHOR_SPREAD = 50.0
FURNITURE_DEPTH = -50.0
FURNITURE_SCALE = 2.0
# Hips to ankles, in torso heights, when the ankles are not tracked.
BODY_SHOES_DROP = 2.0


def _to_px(p: LandmarkPoint, landmarks: LandmarkSet, frame_size: FrameSize) -> Vector3:
    if not landmarks.normalized:
        return (p.x, p.y, p.z)
    w, h = frame_size
    return (p.x * w, p.y * h, p.z)


def _chin_y(geometry: Geometry, landmarks: LandmarkSet | None, frame_size: FrameSize) -> float:
    """Lowest jawline point when available, else the bottom of the face box."""

    if landmarks is not None:
        jaw = landmarks.group("jawline")
        if jaw:
            return max(_to_px(p, landmarks, frame_size)[1] for p in jaw)
    return geometry.center.y + geometry.height / 2.0


def _first_point(landmarks: LandmarkSet | None, group: str, frame_size: FrameSize) -> Vector3 | None:
    if landmarks is None:
        return None
    pts = landmarks.group(group)
    if not pts:
        return None
    return _to_px(pts[0], landmarks, frame_size)


def default_placement_3d(category: ProductCategory, frame_size: FrameSize) -> Placement3D:
    """Pose used when nothing is tracked: the 2D default rectangle's anchor."""

    w, h = frame_size
    base = DEFAULT_POSITIONS[category]
    furniture = category is ProductCategory.FURNITURE
    position = (base.x / 100.0 * w, base.y / 100.0 * h, FURNITURE_DEPTH if furniture else 0.0)
    s = FURNITURE_SCALE if furniture else 1.0
    return Placement3D(
        position=position,
        rotation=(0.0, 0.0, 0.0),
        scale=(s, s, s),
        anchor_points=(position,),
        category=category,
    )


def _first_points(
    landmarks: LandmarkSet | None, groups: tuple[str, ...], frame_size: FrameSize
) -> tuple[Vector3, ...]:
    return tuple(p for p in (_first_point(landmarks, g, frame_size) for g in groups) if p is not None)


def _place_body(g: Geometry, lm: LandmarkSet | None, cat: ProductCategory, frame_size: FrameSize) -> Placement3D:
    """Body geometry spans shoulders (top) to hips (bottom)."""

    cx, cy, cz = g.center.x, g.center.y, g.center.z
    s = g.scale
    shoulders = _first_points(lm, ("left_shoulder", "right_shoulder"), frame_size)
    if not shoulders:
        half = g.width / 2.0
        shoulders = ((cx - half, g.top, cz), (cx + half, g.top, cz))

    if cat is ProductCategory.JEWELRY:
        return Placement3D(
            position=(cx, g.top, cz + JEWELRY_DEPTH),
            rotation=(0.0, 0.0, g.rotation_z),
            scale=(s * JEWELRY_SCALE,) * 3,
            anchor_points=shoulders,
            category=cat,
        )

    if cat is ProductCategory.CLOTHES:
        return Placement3D(
            position=(cx, cy, cz + CLOTHES_DEPTH),
            rotation=(0.0, 0.0, g.rotation_z * 0.5),
            scale=(s * CLOTHES_SCALE[0], s * CLOTHES_SCALE[1], s * CLOTHES_SCALE[2]),
            anchor_points=shoulders,
            category=cat,
        )

    ankles = _first_points(lm, ("left_ankle", "right_ankle"), frame_size)
    if ankles:
        feet_x = sum(p[0] for p in ankles) / len(ankles)
        feet_y = sum(p[1] for p in ankles) / len(ankles)
    else:
        feet_x, feet_y = cx, g.bottom + g.height * BODY_SHOES_DROP
        ankles = ((cx - SHOES_ANCHOR_SPREAD, feet_y, cz), (cx + SHOES_ANCHOR_SPREAD, feet_y, cz))
    return Placement3D(
        position=(feet_x, feet_y, cz + SHOES_DEPTH),
        rotation=(0.0, 0.0, 0.0),
        scale=(s * SHOES_SCALE[0], s * SHOES_SCALE[1], s * SHOES_SCALE[2]),
        anchor_points=ankles,
        category=cat,
    )


def place_3d(
    estimate: SmoothedEstimate | None,
    category: ProductCategory | str,
    *,
    frame_size: FrameSize,
) -> Placement3D:
    """Return the 3D pose of a product for the current smoothed estimate."""

    cat = ProductCategory.parse(category)
    if estimate is None or cat is ProductCategory.FURNITURE:
        return default_placement_3d(cat, frame_size)

    g = estimate.geometry
    lm = estimate.landmarks
    if g.kind is LandmarkKind.BODY:
        return _place_body(g, lm, cat, frame_size)

    cx, cy, cz = g.center.x, g.center.y, g.center.z
    s = g.scale

    if cat is ProductCategory.JEWELRY:
        position = (cx, _chin_y(g, lm, frame_size) + g.height * 0.3, cz + JEWELRY_DEPTH)
        anchors = tuple(
            p for p in (_first_point(lm, "nose", frame_size), _first_point(lm, "lips", frame_size)) if p is not None
        ) or ((cx, cy, cz),)
        return Placement3D(
            position=position,
            rotation=(0.0, 0.0, g.rotation_z),
            scale=(s * JEWELRY_SCALE,) * 3,
            anchor_points=anchors,
            category=cat,
        )

    if cat is ProductCategory.CLOTHES:
        half = g.width / 2.0
        return Placement3D(
            position=(cx, cy + g.height * CLOTHES_DROP, cz + CLOTHES_DEPTH),
            rotation=(0.0, 0.0, g.rotation_z * 0.5),
            scale=(s * CLOTHES_SCALE[0], s * CLOTHES_SCALE[1], s * CLOTHES_SCALE[2]),
            anchor_points=((cx - half, cy + g.height, cz), (cx + half, cy + g.height, cz)),
            category=cat,
        )

    feet_y = cy + g.height * SHOES_DROP
    return Placement3D(
        position=(cx, feet_y, cz + SHOES_DEPTH),
        rotation=(0.0, 0.0, 0.0),
        scale=(s * SHOES_SCALE[0], s * SHOES_SCALE[1], s * SHOES_SCALE[2]),
        anchor_points=(
            (cx - SHOES_ANCHOR_SPREAD, feet_y, cz),
            (cx + SHOES_ANCHOR_SPREAD, feet_y, cz),
        ),
        category=cat,
    )
