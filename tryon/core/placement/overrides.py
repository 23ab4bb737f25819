"""Step-wise manual adjustment of an overlay.

Each call returns a new `OverlayOverride` derived from the transform currently
on screen; the caller publishes it, nothing is mutated in place.
"""

from __future__ import annotations

from tryon.core.placement.strategy import MAX_SCALE, MIN_SCALE, normalize_degrees
from tryon.core.types import OverlayOverride, OverlayPosition, OverlayTransform

MOVE_STEP = 2.0
SCALE_STEP = 0.1
ROTATE_STEP = 15.0


def nudge(
    override: OverlayOverride | None,
    base: OverlayTransform,
    *,
    dx: int = 0,
    dy: int = 0,
    dscale: int = 0,
    drotate: int = 0,
) -> OverlayOverride:
    """Return `override` moved/scaled/rotated by whole steps.

    `base` is the transform currently displayed; it supplies the starting value
    of every field the override does not pin yet. Only the fields touched by a
    non-zero step are pinned in the result.
    """

    current = override or OverlayOverride()
    position = current.position
    if dx or dy:
        start = position or base.position
        position = OverlayPosition(
            x=min(100.0, max(0.0, start.x + dx * MOVE_STEP)),
            y=min(100.0, max(0.0, start.y + dy * MOVE_STEP)),
            width=start.width,
            height=start.height,
        )

    scale = current.scale
    if dscale:
        start_scale = scale if scale is not None else base.scale
        scale = min(MAX_SCALE, max(MIN_SCALE, round(start_scale + dscale * SCALE_STEP, 6)))

    rotation = current.rotation_deg
    if drotate:
        start_rot = rotation if rotation is not None else base.rotation_deg
        rotation = normalize_degrees(start_rot + drotate * ROTATE_STEP)

    return OverlayOverride(
        position=position,
        scale=scale,
        rotation_deg=rotation,
        opacity=current.opacity,
    )
