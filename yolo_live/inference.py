from __future__ import annotations

import inspect
import logging
from typing import Any, Mapping, Optional, Tuple

import numpy as np

from .config import PipelineConfig
from .errors import InferenceError, PipelineError, ShapeError
from .handles import ensure_ready, run_handle
from .nms import BoxFilter
from .types import NMSFilterResult

LOGGER = logging.getLogger(__name__)


def normalize_output(preds: np.ndarray, num_classes: Optional[int] = None) -> np.ndarray:
    """
    Bring detector output into row-major (num_boxes, 4 + C) float32.

    Accepted layouts (single image):
    - (1, 4 + C, N) / (4 + C, N): channels first, e.g. 84 x 8400 for YOLOv8
    - (1, N, 4 + C) / (N, 4 + C): rows first

    When `num_classes` is known the matching axis decides; otherwise the
    channel axis is assumed to be the smaller one.
    """

    p = np.asarray(preds)
    if p.ndim == 3:
        if p.shape[0] != 1:
            raise ShapeError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
        p = p[0]
    if p.ndim != 2:
        raise ShapeError(f"Unsupported detector output shape: {np.asarray(preds).shape}")

    h, w = p.shape
    expected = 4 + num_classes if num_classes else None
    if expected is not None and w == expected:
        rows = p
    elif expected is not None and h == expected:
        rows = p.T
    else:
        # Heuristic: channels dimension is small, anchors dimension is large.
        rows = p.T if h < w else p

    if rows.shape[1] < 5:
        raise ShapeError(f"Detector rows need 4 box values plus class scores, got {rows.shape[1]} columns")
    return np.ascontiguousarray(rows, dtype=np.float32)


class InferenceOrchestrator:
    """
    Two-stage inference: detector network, then the box filter (NMS).

    The detector and NMS handles are shared and only read; one orchestrator
    can serve overlapping runs.
    """

    def __init__(
        self,
        detector: Any,
        box_filter: BoxFilter,
        config: PipelineConfig,
        *,
        input_name: str = "images",
        output_name: Optional[str] = None,
    ):
        self.detector = detector
        self.box_filter = box_filter
        self.config = config
        self.input_name = input_name
        self.output_name = output_name

    def _pick_output(self, outputs: Mapping[str, Any]) -> np.ndarray:
        if not outputs:
            raise ShapeError("Detector returned no outputs")
        if self.output_name is not None:
            if self.output_name not in outputs:
                raise ShapeError(f"Detector output {self.output_name!r} not found. Available: {list(outputs)}")
            return np.asarray(outputs[self.output_name])
        # First output is the detection head (output0 for YOLO exports).
        return np.asarray(next(iter(outputs.values())))

    async def run(self, tensor: np.ndarray) -> Tuple[np.ndarray, NMSFilterResult]:
        """
        Returns the row-major detector output together with the selected rows.

        Raises ModelLoadError before touching the backend if a model is not
        ready, and wraps any backend failure in InferenceError.
        """

        ensure_ready(self.detector, "Detector")
        if self.box_filter is None:
            raise InferenceError("No box filter configured.")

        try:
            outputs = await run_handle(self.detector, {self.input_name: tensor})
            rows = normalize_output(self._pick_output(outputs), self.config.num_classes or None)

            result = self.box_filter.select(rows, self.config)
            if inspect.isawaitable(result):
                result = await result
        except PipelineError:
            raise
        except Exception as exc:
            raise InferenceError(f"Inference failed: {exc}") from exc

        LOGGER.debug("Detector produced %d rows, box filter kept %d", rows.shape[0], len(result))
        return rows, result
