from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path

import cv2
import numpy as np

from tryon.core.detectors.face_mesh import FaceMeshLandmarkDetector
from tryon.core.detectors.yolo import YoloPoseLandmarkDetector
from tryon.core.overlay.draw import draw_overlay
from tryon.core.tracking.coordinator import TrackingConfig, TrackingCoordinator
from tryon.core.types import Frame, LandmarkSet, ProductCategory, ProductSelection
from tryon.core.video_sources.base import LatestFrameBuffer

logger = logging.getLogger(__name__)


class _MockFaceDetector:
    """Reports a fixed, centered face so the pipeline runs without a model."""

    async def initialize(self) -> None:
        return None

    def is_ready(self) -> bool:
        return True

    async def detect(self, frame: Frame) -> LandmarkSet | None:
        h, w = frame.shape[:2]
        cx, cy, r = w / 2.0, h / 2.0, min(w, h) / 4.0
        oval = [(cx + r * np.cos(a), cy + 1.3 * r * np.sin(a)) for a in np.linspace(0, 2 * np.pi, 12, endpoint=False)]
        return LandmarkSet.from_points(
            {
                "face_oval": oval,
                "left_eye": [(cx - r * 0.4, cy - r * 0.2)],
                "right_eye": [(cx + r * 0.4, cy - r * 0.2)],
            },
            confidence=0.9,
        )

    def cleanup(self) -> None:
        return None


class _ClockFromVideo:
    """Presentation-time clock advanced once per decoded frame."""

    def __init__(self, fps: float) -> None:
        self.step = 1.0 / fps if fps > 0 else 1.0 / 30.0
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def tick(self) -> None:
        self.now += self.step


def _to_jsonable(obj):
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj):
        return _to_jsonable(asdict(obj))
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(v) for v in obj]
    return obj


def _make_detector(args):
    if args.mock:
        return _MockFaceDetector()
    if args.detector == "yolo_pose":
        return YoloPoseLandmarkDetector(args.model, conf=args.conf)
    return FaceMeshLandmarkDetector(min_detection_confidence=args.conf)


async def _process(args, cap: cv2.VideoCapture, fps: float) -> list[dict]:
    frames = LatestFrameBuffer()
    clock = _ClockFromVideo(fps)
    coordinator = TrackingCoordinator(
        _make_detector(args),
        frames,
        product=ProductSelection.of(args.category, args.product_name),
        config=TrackingConfig(render_mode="2d", smoothing_window=args.smoothing_window),
        clock=clock,
    )
    await coordinator.start(run_loop=False)

    writer: cv2.VideoWriter | None = None
    outputs: list[dict] = []
    try:
        index = 0
        while True:
            ok, frame = cap.read()
            if not ok:
                break
            frames.update(frame)
            await coordinator.run_cycle()
            lighting = coordinator.lighting.sample()
            snapshot = coordinator.latest
            outputs.append(
                {
                    "frame_index": index,
                    "snapshot": _to_jsonable(snapshot),
                    "lighting": _to_jsonable(lighting),
                    "quality": coordinator.tracking_quality().value,
                }
            )

            if args.annotated_output:
                if writer is None:
                    h, w = frame.shape[:2]
                    Path(args.annotated_output).parent.mkdir(parents=True, exist_ok=True)
                    writer = cv2.VideoWriter(
                        args.annotated_output, cv2.VideoWriter_fourcc(*"MJPG"), fps or 30.0, (w, h)
                    )
                writer.write(draw_overlay(frame, snapshot.overlay, lighting, label=args.product_name))

            index += 1
            clock.tick()
            if args.max_frames and len(outputs) >= args.max_frames:
                break
    finally:
        coordinator.stop()
        if writer is not None:
            writer.release()
    return outputs


def run(args):
    cap = cv2.VideoCapture(args.input)
    if not cap.isOpened():
        raise SystemExit(f"Cannot open video {args.input}")
    fps = float(cap.get(cv2.CAP_PROP_FPS) or 0.0)
    try:
        outputs = asyncio.run(_process(args, cap, fps))
    finally:
        cap.release()
    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(outputs, f, indent=2)
    print(f"Wrote {len(outputs)} frame snapshots to {out_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run try-on tracking on a video")
    parser.add_argument("--input", required=True, help="Path to video file")
    parser.add_argument("--output", required=True, help="Where to save JSON output")
    parser.add_argument(
        "--category",
        default=ProductCategory.JEWELRY.value,
        choices=[c.value for c in ProductCategory],
    )
    parser.add_argument("--product-name", default=None, help="Used for jewelry placement hints")
    parser.add_argument("--detector", default="face_mesh", choices=["face_mesh", "yolo_pose"])
    parser.add_argument("--model", default="yolo11n-pose.pt", help="Pose model for yolo_pose")
    parser.add_argument("--conf", type=float, default=0.5)
    parser.add_argument("--smoothing-window", type=int, default=3)
    parser.add_argument("--max-frames", type=int, default=0, help="Limit frames for quick tests")
    parser.add_argument(
        "--mock", action="store_true", help="Use a synthetic face detector (no model needed)"
    )
    parser.add_argument("--annotated-output", default=None, help="Optional .avi with the overlay drawn")
    parser.add_argument("--log-level", default="WARNING")
    return parser


if __name__ == "__main__":
    parsed = build_parser().parse_args()
    logging.basicConfig(level=getattr(logging, parsed.log_level.upper(), logging.WARNING))
    run(parsed)
