from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import numpy as np

from .config import PipelineConfig
from .pipeline import DetectionPipeline

PathLike = Union[str, Path]

LOGGER = logging.getLogger(__name__)


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery, so `models/detector.onnx` resolves the
    same way whether scripts run from the repo root or from `Scripts/`.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        if any((parent / m).exists() for m in markers):
            return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Absolute paths are returned as-is; relative ones resolve against `root`
    (or the discovered project root when `root` is "auto"/None).
    """

    p = Path(path)
    if p.is_absolute():
        return p
    base = find_project_root() if root in ("auto", None) else Path(root).resolve()
    return (base / p).resolve()


def infer_backend(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix == ".onnx":
        return "onnxruntime"
    if suffix in {".torchscript", ".ts", ".pt"}:
        return "torchscript"
    raise ValueError(f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly.")


def load_model(
    path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
    torch_half: bool = False,
) -> Any:
    resolved = resolve_path(path, root=root)
    chosen = (backend or infer_backend(resolved)).lower()

    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeModel, OnnxRuntimeModelConfig

        return OnnxRuntimeModel(resolved, OnnxRuntimeModelConfig(providers=onnx_providers))

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptModel, TorchScriptModelConfig

        return TorchScriptModel(resolved, TorchScriptModelConfig(device=torch_device, half=torch_half))

    raise ValueError(f"Unsupported backend: {backend!r}")


def load_pipeline(
    detector_path: PathLike,
    nms_path: Optional[PathLike] = None,
    *,
    config: PipelineConfig,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
    torch_half: bool = False,
    warmup: bool = True,
) -> DetectionPipeline:
    """
    Load the detector (and the NMS network, if given), warm the detector up
    and return a ready pipeline.

    Typical usage:
        pipe = load_pipeline("models/yolov8n.onnx", "models/nms-yolov8.onnx", config=cfg)

    Without `nms_path`, NMS runs in-process (GreedyBoxFilter) with identical
    selection rules.
    """

    detector = load_model(
        detector_path,
        backend=backend,
        root=root,
        onnx_providers=onnx_providers,
        torch_device=torch_device,
        torch_half=torch_half,
    )
    if warmup:
        size = config.model_input_size
        if hasattr(detector, "input_names"):
            detector.warmup({detector.input_names[0]: np.zeros((1, 3, size, size), dtype=np.float32)})
        else:
            detector.warmup((1, 3, size, size))
        LOGGER.info("Detector warmed up at %dx%d", size, size)

    nms = None
    if nms_path is not None:
        # The NMS network is always an ONNX graph.
        nms = load_model(nms_path, backend="onnxruntime", root=root, onnx_providers=onnx_providers)

    input_name = getattr(detector, "input_names", ("images",))[0]
    return DetectionPipeline(detector, nms, config, detector_input_name=input_name)
