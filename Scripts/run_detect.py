from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import cv2
import numpy as np

try:
    from tqdm import tqdm  # type: ignore
except ModuleNotFoundError:
    tqdm = None  # type: ignore[assignment]

from yolo_live import (
    Detection,
    FrameLoopController,
    PipelineConfig,
    PipelineError,
    count_by_class,
    load_class_labels,
    load_pipeline,
    load_pipeline_config,
)
from yolo_live.capture import LatestFrameSource, get_capture_info, open_capture

LOGGER = logging.getLogger("run_detect")


def setup_logging(log_level: str, log_path: Optional[str] = None) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_path:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def _format_counts(counts: Dict[str, int]) -> str:
    if not counts:
        return "no objects detected"
    total = sum(counts.values())
    parts = ", ".join(f"{name}: {n}" for name, n in counts.items())
    return f"{total} detections ({parts})"


def _print_detections(prefix: str, detections: List[Detection], verbose: bool) -> None:
    print(f"{prefix}: {_format_counts(count_by_class(detections))}")
    if verbose:
        for det in detections:
            x1, y1, x2, y2 = det.as_xyxy()
            print(f"  {det.class_label:<16} {det.score:.3f}  [{x1:.1f}, {y1:.1f}, {x2:.1f}, {y2:.1f}]")


def _build_config(args: argparse.Namespace) -> PipelineConfig:
    labels = load_class_labels(args.labels) if args.labels else None
    if args.config:
        base = load_pipeline_config(Path(args.config), class_labels=labels)
    elif labels:
        base = PipelineConfig(class_labels=tuple(labels))
    else:
        raise ValueError("Class labels are required: pass --labels or put class_labels in --config.")

    overrides = {
        "model_input_size": args.imgsz,
        "topk": args.topk,
        "iou_threshold": args.iou,
        "score_threshold": args.conf,
    }
    return replace(base, **{k: v for k, v in overrides.items() if v is not None})


def _iter_frames(cap, every: int, max_frames: int) -> Iterable[np.ndarray]:
    frame_idx = 0
    processed = 0
    while True:
        ok, frame = cap.read()
        if not ok or frame is None:
            break
        frame_idx += 1
        if (frame_idx - 1) % every != 0:
            continue
        yield frame
        processed += 1
        if max_frames and processed >= max_frames:
            break


def run_image(pipeline, args: argparse.Namespace) -> int:
    img = cv2.imread(args.image)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {args.image}")
    t0 = time.perf_counter()
    detections = pipeline(img)
    LOGGER.info("Image processed in %.1f ms", (time.perf_counter() - t0) * 1000.0)
    _print_detections(args.image, detections, args.verbose)
    return 0


def run_sequential(pipeline, args: argparse.Namespace) -> int:
    cap = open_capture(video=args.video, webcam=args.webcam, rtsp=args.rtsp)
    info = get_capture_info(cap)
    LOGGER.info("Opened source: fps=%s size=%sx%s", info.fps, info.width, info.height)

    frames = _iter_frames(cap, args.every, args.max_frames)
    if tqdm is not None and args.video is not None:
        frames = tqdm(frames, unit="frame")

    failures = 0
    try:
        for i, frame in enumerate(frames):
            try:
                detections = pipeline(frame)
            except PipelineError as exc:
                failures += 1
                LOGGER.warning("Frame %d skipped: %s", i, exc)
                continue
            _print_detections(f"frame {i}", detections, args.verbose)
    finally:
        cap.release()
    return 1 if failures else 0


async def _run_live(pipeline, args: argparse.Namespace) -> int:
    cap = open_capture(video=args.video, webcam=args.webcam, rtsp=args.rtsp)
    source = LatestFrameSource(cap).start()

    def on_result(detections: List[Detection]) -> None:
        _print_detections("live", detections, args.verbose)

    def on_error(exc: BaseException) -> None:
        print(f"live: frame failed ({exc})", file=sys.stderr)

    controller = FrameLoopController(pipeline, source, on_result, on_error, interval=1.0 / args.fps)
    controller.start()
    deadline = time.monotonic() + args.duration if args.duration > 0 else None
    try:
        while deadline is None or time.monotonic() < deadline:
            if source.exhausted and not controller.busy:
                break
            await asyncio.sleep(0.05)
    finally:
        controller.stop()
        await controller.wait_idle()
        source.close()

    s = controller.stats
    LOGGER.info(
        "Live loop: ticks=%d executed=%d skipped=%d failed=%d delivered=%d",
        s.ticks,
        s.executions,
        s.skipped,
        s.failures,
        s.delivered,
    )
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Run YOLO detection (detector + NMS model) on images or video.")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", default=None, help="Path to an input image.")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")
    src.add_argument("--rtsp", default=None, help="RTSP URL.")

    parser.add_argument("--detector", default="models/yolov8n.onnx", help="Detector model (.onnx/.torchscript).")
    parser.add_argument("--nms", default=None, help="NMS model (.onnx). Omit to run NMS in-process.")
    parser.add_argument("--backend", default=None, help="Force detector backend: onnxruntime / torchscript.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--config", default=None, help="Pipeline config JSON.")
    parser.add_argument("--labels", default=None, help="metadata.yaml or labels.txt with class names.")
    parser.add_argument("--imgsz", type=int, default=None, help="Model input size (overrides config).")
    parser.add_argument("--conf", type=float, default=None, help="Score threshold (overrides config).")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS (overrides config).")
    parser.add_argument("--topk", type=int, default=None, help="Max detections per frame (overrides config).")

    parser.add_argument("--live", action="store_true", help="Drive the frame loop on the newest frame only.")
    parser.add_argument("--fps", type=float, default=30.0, help="Tick rate for --live.")
    parser.add_argument("--duration", type=float, default=0.0, help="Seconds to run --live (0 = until source ends).")
    parser.add_argument("--every", type=int, default=1, help="Process every Nth frame (sequential mode).")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N processed frames (0 = no limit).")
    parser.add_argument("--verbose", action="store_true", help="Print every box, not just counts.")
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    parser.add_argument("--log-file", default=None, help="Also log to this file.")
    args = parser.parse_args()

    setup_logging(args.log_level, args.log_file)

    if args.every < 1:
        raise ValueError("--every must be >= 1")
    if args.max_frames < 0:
        raise ValueError("--max-frames must be >= 0")
    if args.fps <= 0:
        raise ValueError("--fps must be > 0")
    if args.live and args.image is not None:
        raise ValueError("--live needs a video/webcam/rtsp source.")

    config = _build_config(args)
    providers = [p.strip() for p in args.onnx_providers.split(",")] if args.onnx_providers else None
    pipeline = load_pipeline(
        args.detector,
        args.nms,
        config=config,
        backend=args.backend,
        onnx_providers=providers,
    )

    if args.image is not None:
        return run_image(pipeline, args)
    if args.live:
        return asyncio.run(_run_live(pipeline, args))
    return run_sequential(pipeline, args)


if __name__ == "__main__":
    raise SystemExit(main())
