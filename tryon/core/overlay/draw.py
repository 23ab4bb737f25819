"""Overlay drawing helpers (OpenCV).

Used by offline tools and the API preview to burn the current overlay into a
frame. Browser clients normally draw the overlay themselves from the published
transform.
"""

from __future__ import annotations

import cv2
import numpy as np

from tryon.core.types import LightingState, OverlayTransform

BOX_COLOR = (0, 170, 255)
ANCHOR_COLOR = (57, 255, 20)  # bright green
TEXT_COLOR = (255, 255, 255)


def apply_lighting(image: np.ndarray, lighting: LightingState) -> np.ndarray:
    """Return a copy of a BGR(A) image adjusted by the lighting factors.

    Single-channel images are expanded to BGR first.
    """

    if image.size == 0:
        return image.copy()
    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    bgr = image[:, :, :3].astype(np.float32)
    # Contrast pivots around mid-grey, brightness scales the result.
    bgr = (bgr - 128.0) * float(lighting.contrast) + 128.0
    bgr *= float(lighting.brightness)
    bgr = np.clip(bgr, 0, 255).astype(np.uint8)

    if lighting.saturation != 1.0:
        hsv = cv2.cvtColor(bgr, cv2.COLOR_BGR2HSV).astype(np.float32)
        hsv[:, :, 1] = np.clip(hsv[:, :, 1] * float(lighting.saturation), 0, 255)
        bgr = cv2.cvtColor(hsv.astype(np.uint8), cv2.COLOR_HSV2BGR)

    if image.shape[2] == 4:
        return np.dstack([bgr, image[:, :, 3]])
    return bgr


def overlay_rect(overlay: OverlayTransform, frame_w: int, frame_h: int) -> tuple[float, float, float, float]:
    """Return (cx, cy, w, h) of the overlay in pixels, scale applied."""

    pos = overlay.position
    cx = pos.x / 100.0 * frame_w
    cy = pos.y / 100.0 * frame_h
    w = pos.width / 100.0 * frame_w * overlay.scale
    h = pos.height / 100.0 * frame_h * overlay.scale
    return cx, cy, w, h


def _blend_asset(
    img: np.ndarray,
    asset: np.ndarray,
    rect: tuple[float, float, float, float],
    rotation_deg: float,
    opacity: float,
) -> None:
    cx, cy, w, h = rect
    aw, ah = max(1, int(round(w))), max(1, int(round(h)))
    resized = cv2.resize(asset, (aw, ah), interpolation=cv2.INTER_AREA)
    if resized.ndim == 2:
        resized = cv2.cvtColor(resized, cv2.COLOR_GRAY2BGR)
    if resized.shape[2] == 4:
        alpha = resized[:, :, 3].astype(np.float32) / 255.0
        color = resized[:, :, :3]
    else:
        alpha = np.ones((ah, aw), dtype=np.float32)
        color = resized

    # Rotate the asset about its own center, then translate it onto the anchor.
    fh, fw = img.shape[:2]
    m = cv2.getRotationMatrix2D((aw / 2.0, ah / 2.0), -rotation_deg, 1.0)
    m[0, 2] += cx - aw / 2.0
    m[1, 2] += cy - ah / 2.0
    warped = cv2.warpAffine(color, m, (fw, fh), flags=cv2.INTER_LINEAR, borderValue=(0, 0, 0))
    mask = cv2.warpAffine(alpha, m, (fw, fh), flags=cv2.INTER_LINEAR, borderValue=0)
    mask = (mask * float(opacity))[:, :, None]
    blended = warped.astype(np.float32) * mask + img.astype(np.float32) * (1.0 - mask)
    img[:] = np.clip(blended, 0, 255).astype(np.uint8)


def draw_overlay(
    frame: np.ndarray,
    overlay: OverlayTransform,
    lighting: LightingState | None = None,
    asset: np.ndarray | None = None,
    label: str | None = None,
) -> np.ndarray:
    """Return a copy of `frame` with the overlay drawn.

    With an `asset` image the asset is lit, rotated and alpha-blended at the
    overlay rectangle; without one the rectangle outline is drawn.
    """

    img = frame.copy()
    fh, fw = img.shape[:2]
    rect = overlay_rect(overlay, fw, fh)
    cx, cy, w, h = rect

    if asset is not None and asset.size > 0 and w >= 1 and h >= 1:
        lit = apply_lighting(asset, lighting) if lighting is not None else asset
        _blend_asset(img, lit, rect, overlay.rotation_deg, overlay.opacity)
    else:
        box = cv2.boxPoints(((cx, cy), (w, h), overlay.rotation_deg))
        cv2.polylines(img, [box.astype(np.int32)], True, BOX_COLOR, 2, cv2.LINE_AA)

    cv2.circle(img, (int(cx), int(cy)), 4, ANCHOR_COLOR, -1)
    if label:
        cv2.putText(
            img,
            label,
            (int(cx - w / 2.0), max(int(cy - h / 2.0) - 8, 0)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            TEXT_COLOR,
            1,
            cv2.LINE_AA,
        )
    return img
