"""Ambient lighting adaptation.

Samples a downscaled copy of the current video frame on its own timer and
derives brightness/contrast/saturation factors for the overlay. Lighting is
cosmetic: any sampling problem publishes neutral factors instead of raising.
"""

from __future__ import annotations

import asyncio
import logging

import cv2
import numpy as np

from tryon.core.errors import LightingSampleFailure
from tryon.core.types import NEUTRAL_LIGHTING, Frame, LightingState
from tryon.core.video_sources.base import FrameProvider

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 100
DEFAULT_INTERVAL_S = 0.5

LUMINANCE_REFERENCE = 128.0
MIN_BRIGHTNESS = 0.7
MAX_BRIGHTNESS = 1.3
DIM_LUMINANCE = 100.0
DIM_CONTRAST = 1.1
BRIGHT_CONTRAST = 0.95
WARM_TEMPERATURE = 150.0
WARM_SATURATION = 1.1
COOL_SATURATION = 0.9


def compute_lighting(sample: np.ndarray) -> LightingState:
    """Derive lighting factors from an (H, W, 3) image sample.

    Luminance is the mean of each pixel's channel average; the colour
    temperature proxy is the mean of the three channel averages.
    """

    arr = np.asarray(sample, dtype=np.float64)
    if arr.ndim != 3 or arr.shape[2] < 3 or arr.shape[0] == 0 or arr.shape[1] == 0:
        raise LightingSampleFailure(f"expected an (H, W, 3) sample, got shape {arr.shape}")
    rgb = arr[:, :, :3]
    luminance = float(rgb.mean(axis=2).mean())
    channel_means = rgb.reshape(-1, 3).mean(axis=0)
    temperature = float(channel_means.mean())

    brightness = float(np.clip(luminance / LUMINANCE_REFERENCE, MIN_BRIGHTNESS, MAX_BRIGHTNESS))
    contrast = DIM_CONTRAST if luminance < DIM_LUMINANCE else BRIGHT_CONTRAST
    saturation = WARM_SATURATION if temperature > WARM_TEMPERATURE else COOL_SATURATION
    return LightingState(brightness=brightness, contrast=contrast, saturation=saturation)


def downscale(frame: Frame, size: int) -> np.ndarray:
    """Return `frame` resized to `size` x `size` pixels."""

    if frame is None or getattr(frame, "size", 0) == 0:
        raise LightingSampleFailure("no frame available")
    return cv2.resize(frame, (size, size), interpolation=cv2.INTER_AREA)


def scene_light_intensities(lighting: LightingState) -> tuple[float, float]:
    """Return (ambient, directional) light intensities for 3D rendering."""

    luminance = lighting.brightness * LUMINANCE_REFERENCE
    f = min(1.0, max(0.0, luminance / 255.0))
    return 0.4 + f * 0.4, 0.6 + f * 0.4


class LightingAdapter:
    """Periodic lighting sampler for one session."""

    def __init__(
        self,
        frames: FrameProvider,
        *,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        interval_s: float = DEFAULT_INTERVAL_S,
    ) -> None:
        if sample_size <= 0:
            raise ValueError("sample_size must be > 0")
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.frames = frames
        self.sample_size = int(sample_size)
        self.interval_s = float(interval_s)
        self._latest: LightingState = NEUTRAL_LIGHTING

    @property
    def latest(self) -> LightingState:
        return self._latest

    def sample(self) -> LightingState:
        """Sample the current frame and publish the resulting state."""

        try:
            state = compute_lighting(downscale(self.frames.snapshot(), self.sample_size))
        except LightingSampleFailure as exc:
            logger.debug("Lighting sample skipped: %s", exc)
            state = NEUTRAL_LIGHTING
        except Exception:
            # Covers provider and cv2 errors too; the timer must keep running.
            logger.warning("Lighting sample failed", exc_info=True)
            state = NEUTRAL_LIGHTING
        self._latest = state
        return state

    async def run(self) -> None:
        """Sample every `interval_s` seconds until cancelled."""

        logger.debug("Lighting timer started (every %.0f ms)", self.interval_s * 1000.0)
        while True:
            self.sample()
            await asyncio.sleep(self.interval_s)
