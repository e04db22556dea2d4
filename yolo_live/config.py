from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

INPUT_COLORS = ("bgr", "rgb")


@dataclass(frozen=True)
class PipelineConfig:
    """
    Immutable settings for one pipeline instance.

    Changing any value means building a new pipeline; a running frame loop
    keeps the config it was started with.
    """

    class_labels: Tuple[str, ...]
    model_input_size: int = 640
    topk: int = 300
    iou_threshold: float = 0.45
    score_threshold: float = 0.25
    # Canvas fill used by letterbox (114 gray matches YOLO training padding).
    pad_value: int = 114
    # Channel order of 3-channel input frames. OpenCV decodes to BGR.
    input_color: str = "bgr"
    class_agnostic_nms: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.class_labels, str):
            raise ValueError("class_labels must be a sequence of names, not a single string")
        # Accept lists from JSON/CLI callers but store a tuple.
        object.__setattr__(self, "class_labels", tuple(str(s) for s in self.class_labels))
        if not self.class_labels:
            raise ValueError("class_labels must name at least one class")

        if self.model_input_size < 32:
            raise ValueError("model_input_size must be >= 32")
        if self.topk < 1:
            raise ValueError("topk must be >= 1")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        if not 0.0 <= self.score_threshold <= 1.0:
            raise ValueError("score_threshold must be within [0, 1]")
        if not 0 <= self.pad_value <= 255:
            raise ValueError("pad_value must be within [0, 255]")
        if self.input_color not in INPUT_COLORS:
            raise ValueError(f"input_color must be one of {INPUT_COLORS}")

    @property
    def num_classes(self) -> int:
        return len(self.class_labels)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _require_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_labels(value: object) -> Tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError("class_labels must be a list of strings")
    cleaned = [item.strip() for item in value]
    if any(not item for item in cleaned):
        raise ValueError("class_labels must not contain empty strings")
    return tuple(cleaned)


def load_pipeline_config(path: Path, class_labels: Optional[Sequence[str]] = None) -> PipelineConfig:
    """
    Load a PipelineConfig from a JSON object.

    `class_labels`, when given, replaces whatever the file holds (labels usually
    come from the model's metadata file).
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid pipeline config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Pipeline config must be a JSON object")

    int_keys = {"model_input_size", "topk", "pad_value"}
    float_keys = {"iou_threshold", "score_threshold"}
    allowed = int_keys | float_keys | {"class_labels", "input_color", "class_agnostic_nms"}
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown pipeline config keys: {unknown}")

    kwargs: Dict[str, Any] = {}
    for key in payload:
        if key in int_keys:
            kwargs[key] = _require_int(payload, key)
        elif key in float_keys:
            kwargs[key] = _require_number(payload, key)
        elif key == "class_labels":
            kwargs[key] = _require_labels(payload[key])
        elif key == "input_color":
            value = payload[key]
            if not isinstance(value, str):
                raise ValueError("input_color must be a string")
            kwargs[key] = value.strip().lower()
        elif key == "class_agnostic_nms":
            if not isinstance(payload[key], bool):
                raise ValueError("class_agnostic_nms must be a boolean")
            kwargs[key] = payload[key]

    if class_labels is not None:
        kwargs["class_labels"] = tuple(class_labels)
    if "class_labels" not in kwargs:
        raise ValueError(f"No class_labels in {path} and none passed in")

    return PipelineConfig(**kwargs)
