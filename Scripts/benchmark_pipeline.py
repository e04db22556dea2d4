from __future__ import annotations

import argparse
import time
from typing import Dict, Iterable, List, Optional

import cv2
import numpy as np

from yolo_live import GreedyBoxFilter, ModelBoxFilter, PipelineConfig, decode, load_model, normalize_output
from yolo_live.letterbox import letterbox
from yolo_live.tensor import to_tensor
from yolo_live.types import LetterboxTransform


def _stage_report(stage: str, values_s: List[float]) -> str:
    ms = np.asarray(values_s, dtype=np.float64) * 1000.0
    p50, p90, p95 = np.percentile(ms, [50, 90, 95])
    return f"{stage}: n={ms.size} mean={ms.mean():.3f}ms p50={p50:.3f}ms p90={p90:.3f}ms p95={p95:.3f}ms"


def _iter_frames(args: argparse.Namespace) -> Iterable[np.ndarray]:
    if args.image is not None:
        img = cv2.imread(args.image)
        if img is None:
            raise FileNotFoundError(f"Could not read image at path: {args.image}")
        for _ in range(int(args.repeats)):
            yield img
        return

    cap = cv2.VideoCapture(args.video)
    if not cap.isOpened():
        raise FileNotFoundError(f"Could not open video: {args.video}")
    try:
        while True:
            ok, frame = cap.read()
            if not ok or frame is None:
                break
            yield frame
    finally:
        cap.release()


def _synthetic_rows(n: int, n_classes: int, size: int) -> np.ndarray:
    rng = np.random.default_rng(0)
    cxcy = rng.uniform(0, size, size=(n, 2))
    wh = rng.uniform(5, 120, size=(n, 2))
    scores = rng.uniform(0.0, 1.0, size=(n, n_classes))
    return np.hstack([cxcy, wh, scores]).astype(np.float32)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Benchmark pipeline stages: letterbox+tensor, detector, in-process NMS vs NMS model, decode."
    )
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", default=None, help="Path to an input image (repeated N times).")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument(
        "--synthetic-boxes",
        type=int,
        default=None,
        help="Model-free run over N random detector rows (box filter + decode only).",
    )

    parser.add_argument("--detector", default="models/yolov8n.onnx", help="Detector model (.onnx/.torchscript).")
    parser.add_argument("--nms", default=None, help="Optional NMS model (.onnx) to compare with in-process NMS.")
    parser.add_argument("--imgsz", type=int, default=640, help="Model input size.")
    parser.add_argument("--classes", type=int, default=80, help="Number of classes in the detector head.")
    parser.add_argument("--conf", type=float, default=0.25, help="Score threshold.")
    parser.add_argument("--iou", type=float, default=0.45, help="IoU threshold for NMS.")
    parser.add_argument("--topk", type=int, default=300, help="Max detections kept.")
    parser.add_argument("--warmup", type=int, default=10, help="Iterations to run but not record.")
    parser.add_argument("--repeats", type=int, default=50, help="For --image / --synthetic-boxes: iterations.")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N recorded samples (0 = no limit).")
    args = parser.parse_args()

    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    config = PipelineConfig(
        model_input_size=int(args.imgsz),
        topk=int(args.topk),
        iou_threshold=float(args.iou),
        score_threshold=float(args.conf),
        class_labels=tuple(str(i) for i in range(int(args.classes))),
    )
    greedy = GreedyBoxFilter()
    model_filter: Optional[ModelBoxFilter] = ModelBoxFilter(load_model(args.nms)) if args.nms else None

    timings: Dict[str, List[float]] = {"preprocess": [], "detector": [], "nms_greedy": [], "nms_model": [], "decode": []}

    if args.synthetic_boxes is not None:
        if args.synthetic_boxes < 1:
            raise ValueError("--synthetic-boxes must be >= 1")
        rows = _synthetic_rows(int(args.synthetic_boxes), int(args.classes), int(args.imgsz))
        frames: Iterable[Optional[np.ndarray]] = (None for _ in range(int(args.repeats) + int(args.warmup)))
        detector = None
    else:
        frames = _iter_frames(args)
        detector = load_model(args.detector)
        input_name = getattr(detector, "input_names", ("images",))[0]

    seen = 0
    for frame in frames:
        seen += 1
        sample: Dict[str, float] = {}

        if frame is not None:
            t0 = time.perf_counter()
            padded, transform = letterbox(frame, config.model_input_size, config.pad_value)
            blob = to_tensor(padded, config.model_input_size, config.input_color)
            t1 = time.perf_counter()
            outputs = detector.run({input_name: blob})
            rows = normalize_output(next(iter(outputs.values())), config.num_classes)
            t2 = time.perf_counter()
            sample["preprocess"] = t1 - t0
            sample["detector"] = t2 - t1
        else:
            transform = LetterboxTransform(1.0, 0.0, 0.0, int(args.imgsz), int(args.imgsz))

        t3 = time.perf_counter()
        selection = greedy.select(rows, config)
        t4 = time.perf_counter()
        sample["nms_greedy"] = t4 - t3

        if model_filter is not None:
            t5 = time.perf_counter()
            raw = model_filter.model.run(model_filter.build_inputs(rows, config))
            model_filter.parse_outputs(raw, rows, config)
            sample["nms_model"] = time.perf_counter() - t5

        t6 = time.perf_counter()
        list(decode(rows, selection, transform, config))
        sample["decode"] = time.perf_counter() - t6

        if seen <= int(args.warmup):
            continue
        for key, value in sample.items():
            timings[key].append(value)
        if args.max_frames and len(timings["nms_greedy"]) >= int(args.max_frames):
            break

    if not timings["nms_greedy"]:
        raise RuntimeError("No benchmark samples collected (check input source / max-frames / warmup).")

    for key, values in timings.items():
        if values:
            print(_stage_report(key, values))
    print(f"frames_seen={seen} samples_recorded={len(timings['nms_greedy'])} warmup={args.warmup}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
