"""
On-device YOLO detection with a separate NMS network.

letterbox -> tensor -> detector -> NMS -> decode, plus a frame loop that keeps
at most one pipeline run in flight. Core pieces need only NumPy and OpenCV;
inference runtimes live in `yolo_live.backends`.
"""

from .config import PipelineConfig, load_pipeline_config
from .decode import decode
from .errors import InferenceError, LabelIndexError, ModelLoadError, PipelineError, ShapeError
from .frame_loop import FrameLoopController, LoopState, LoopStats
from .handles import ModelHandle
from .inference import InferenceOrchestrator, normalize_output
from .letterbox import letterbox
from .metadata import load_class_labels
from .nms import BoxFilter, GreedyBoxFilter, ModelBoxFilter, nms
from .pipeline import DetectionPipeline
from .runtime import find_project_root, load_model, load_pipeline, resolve_path
from .tensor import to_tensor
from .types import Box, Detection, LetterboxTransform, NMSFilterResult, count_by_class

__all__ = [
    "PipelineConfig",
    "load_pipeline_config",
    "decode",
    "InferenceError",
    "LabelIndexError",
    "ModelLoadError",
    "PipelineError",
    "ShapeError",
    "FrameLoopController",
    "LoopState",
    "LoopStats",
    "ModelHandle",
    "InferenceOrchestrator",
    "normalize_output",
    "letterbox",
    "load_class_labels",
    "BoxFilter",
    "GreedyBoxFilter",
    "ModelBoxFilter",
    "nms",
    "DetectionPipeline",
    "find_project_root",
    "load_model",
    "load_pipeline",
    "resolve_path",
    "to_tensor",
    "Box",
    "Detection",
    "LetterboxTransform",
    "NMSFilterResult",
    "count_by_class",
]
