from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Tuple, runtime_checkable

import numpy as np

from .config import PipelineConfig
from .errors import ShapeError
from .handles import ensure_ready, run_handle
from .types import NMSFilterResult


def cxcywh_to_xyxy(boxes: np.ndarray) -> np.ndarray:
    cx, cy, w_box, h_box = np.asarray(boxes, dtype=np.float64).T
    return np.stack([cx - w_box / 2, cy - h_box / 2, cx + w_box / 2, cy + h_box / 2], axis=1)


def box_iou(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    IoU of one xyxy box `a` (4,) against many boxes `b` (N, 4).
    """

    b = np.asarray(b, dtype=np.float64).reshape(-1, 4)
    xx1 = np.maximum(a[0], b[:, 0])
    yy1 = np.maximum(a[1], b[:, 1])
    xx2 = np.minimum(a[2], b[:, 2])
    yy2 = np.minimum(a[3], b[:, 3])

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    area_a = max(0.0, a[2] - a[0]) * max(0.0, a[3] - a[1])
    area_b = np.maximum(0.0, b[:, 2] - b[:, 0]) * np.maximum(0.0, b[:, 3] - b[:, 1])
    union = area_a + area_b - inter
    return inter / np.maximum(union, 1e-9)


def nms(boxes: np.ndarray, scores: np.ndarray, iou_threshold: float, max_detections: int) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of kept boxes, best first; equal scores keep the lower index first.
    A box survives only if its IoU with every kept box is strictly below `iou_threshold`.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    order = np.argsort(-np.asarray(scores), kind="stable")
    keep = []

    while order.size > 0 and len(keep) < max_detections:
        i = order[0]
        keep.append(i)
        if order.size == 1:
            break
        iou = box_iou(boxes[i], boxes[order[1:]])
        order = order[1:][iou < iou_threshold]

    return np.array(keep, dtype=np.int64)


def row_scores(rows: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Best class score and its class index for each (4 + C) row."""
    class_scores = rows[:, 4:]
    class_ids = np.argmax(class_scores, axis=1)
    scores = class_scores[np.arange(class_scores.shape[0]), class_ids]
    return scores, class_ids


def finalize_selection(rows: np.ndarray, indices: np.ndarray, config: PipelineConfig) -> NMSFilterResult:
    """
    Bring a candidate index list into canonical form: score floor applied,
    duplicates removed, ordered by score descending then index ascending,
    capped at `topk`.
    """

    indices = np.unique(np.asarray(indices, dtype=np.int64).reshape(-1))
    if indices.size and (indices.min() < 0 or indices.max() >= rows.shape[0]):
        raise ShapeError(f"Selected indices out of range for {rows.shape[0]} rows")
    if indices.size == 0:
        return NMSFilterResult.empty()

    scores, class_ids = row_scores(rows[indices])
    keep = scores >= config.score_threshold
    indices, scores, class_ids = indices[keep], scores[keep], class_ids[keep]

    order = np.lexsort((indices, -scores))[: config.topk]
    return NMSFilterResult(
        indices=indices[order],
        scores=scores[order].astype(np.float32),
        class_ids=class_ids[order].astype(np.int64),
    )


@runtime_checkable
class BoxFilter(Protocol):
    """
    Anything that turns row-major detector output into an NMSFilterResult.

    `select` may also be a coroutine function.
    """

    def select(self, rows: np.ndarray, config: PipelineConfig) -> NMSFilterResult:
        ...


class GreedyBoxFilter:
    """
    In-process greedy NMS over row-major (N, 4 + C) detector output.
    """

    def select(self, rows: np.ndarray, config: PipelineConfig) -> NMSFilterResult:
        if rows.shape[0] == 0:
            return NMSFilterResult.empty()

        scores, class_ids = row_scores(rows)
        # Score floor before sorting
        candidates = np.flatnonzero(scores >= config.score_threshold)
        if candidates.size == 0:
            return NMSFilterResult.empty()

        boxes = cxcywh_to_xyxy(rows[candidates, :4])
        cand_scores = scores[candidates]

        if config.class_agnostic_nms:
            keep = nms(boxes, cand_scores, config.iou_threshold, config.topk)
            return finalize_selection(rows, candidates[keep], config)

        cand_classes = class_ids[candidates]
        kept = []
        for cls in np.unique(cand_classes):
            local = np.flatnonzero(cand_classes == cls)
            keep_local = nms(boxes[local], cand_scores[local], config.iou_threshold, config.topk)
            kept.extend(candidates[local[keep_local]].tolist())
        return finalize_selection(rows, np.array(kept, dtype=np.int64), config)


class ModelBoxFilter:
    """
    Runs NMS as a separate network.

    Inputs fed to the model:
    - `detection`: (1, 4 + C, N) float32, the detector's native channel-first layout
    - `config`: [topk, iou_threshold, score_threshold] float32

    The `selected` output may hold either integer row indices (1-D, or ONNX
    NonMaxSuppression triplets [batch, class, box]) or the selected rows
    themselves (1, K, 4 + C), which are matched back to their row index.
    """

    def __init__(
        self,
        model: Any,
        *,
        input_name: str = "detection",
        config_name: str = "config",
        output_name: Optional[str] = "selected",
    ):
        self.model = model
        self.input_name = input_name
        self.config_name = config_name
        self.output_name = output_name

    def build_inputs(self, rows: np.ndarray, config: PipelineConfig) -> Mapping[str, np.ndarray]:
        detection = np.ascontiguousarray(rows.T[None, ...], dtype=np.float32)
        cfg = np.array([config.topk, config.iou_threshold, config.score_threshold], dtype=np.float32)
        return {self.input_name: detection, self.config_name: cfg}

    def parse_outputs(self, outputs: Mapping[str, Any], rows: np.ndarray, config: PipelineConfig) -> NMSFilterResult:
        if not outputs:
            raise ShapeError("NMS model returned no outputs")
        if self.output_name is not None and self.output_name in outputs:
            selected = np.asarray(outputs[self.output_name])
        else:
            selected = np.asarray(next(iter(outputs.values())))

        if selected.size == 0:
            return NMSFilterResult.empty()
        if np.issubdtype(selected.dtype, np.integer):
            indices = self._indices_from_ints(selected)
        else:
            indices = self._indices_from_rows(selected, rows)
        return finalize_selection(rows, indices, config)

    async def select(self, rows: np.ndarray, config: PipelineConfig) -> NMSFilterResult:
        if rows.shape[0] == 0:
            return NMSFilterResult.empty()
        ensure_ready(self.model, "NMS")
        outputs = await run_handle(self.model, self.build_inputs(rows, config))
        return self.parse_outputs(outputs, rows, config)

    @staticmethod
    def _indices_from_ints(selected: np.ndarray) -> np.ndarray:
        # [num_selected, 3] rows of (batch, class, box); anything else is a flat index list
        if selected.ndim == 2 and selected.shape[1] == 3:
            return selected[:, 2].astype(np.int64)
        return selected.reshape(-1).astype(np.int64)

    @staticmethod
    def _indices_from_rows(selected: np.ndarray, rows: np.ndarray) -> np.ndarray:
        cols = rows.shape[1]
        s = selected
        if s.ndim == 3:
            if s.shape[0] != 1:
                raise ShapeError(f"Batch > 1 is not supported (got shape {s.shape}).")
            s = s[0]
        if s.ndim == 1:
            s = s.reshape(1, -1)
        if s.shape[1] != cols and s.shape[0] == cols:
            s = s.T
        if s.shape[1] < cols:
            raise ShapeError(f"NMS rows have {s.shape[1]} columns, detector rows have {cols}")

        used = set()
        indices = []
        for row in s[:, :cols]:
            matches = np.flatnonzero(np.all(np.isclose(rows, row, rtol=0.0, atol=1e-5), axis=1))
            free = [int(m) for m in matches if int(m) not in used]
            if not free:
                raise ShapeError("NMS output row does not match any detector row")
            used.add(free[0])
            indices.append(free[0])
        return np.array(indices, dtype=np.int64)
