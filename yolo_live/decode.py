from __future__ import annotations

import logging
from typing import Iterator

import numpy as np

from .config import PipelineConfig
from .errors import LabelIndexError
from .nms import box_iou, cxcywh_to_xyxy
from .types import Box, Detection, LetterboxTransform, NMSFilterResult

LOGGER = logging.getLogger(__name__)


def _label_for(class_id: int, config: PipelineConfig) -> str:
    if not 0 <= class_id < config.num_classes:
        raise LabelIndexError(class_id, config.num_classes)
    return config.class_labels[class_id]


def decode(
    rows: np.ndarray,
    result: NMSFilterResult,
    transform: LetterboxTransform,
    config: PipelineConfig,
) -> Iterator[Detection]:
    """
    Turn selected rows into Detections in original image coordinates.

    Yields in the order of `result` (descending score). Entries below the
    score floor are skipped; an entry whose class index has no label is
    logged and dropped without stopping the rest.

    Clamping to the frame can push two kept boxes over the IoU threshold, so
    overlap is checked again on the clamped boxes (per class unless
    `config.class_agnostic_nms`).
    """

    if len(result) == 0:
        return

    boxes = cxcywh_to_xyxy(rows[result.indices, :4])
    boxes = transform.boxes_to_source(boxes)
    kept_boxes = []
    kept_classes = []

    for (x1, y1, x2, y2), score, class_id in zip(boxes, result.scores, result.class_ids):
        score = float(score)
        if score < config.score_threshold or score <= 0.0:
            continue
        try:
            label = _label_for(int(class_id), config)
        except LabelIndexError as exc:
            LOGGER.warning("Dropping detection: %s", exc)
            continue
        box_xyxy = np.array([x1, y1, x2, y2], dtype=np.float64)
        if kept_boxes:
            ious = box_iou(box_xyxy, np.stack(kept_boxes))
            if not config.class_agnostic_nms:
                ious = ious[np.asarray(kept_classes) == int(class_id)]
            if ious.size and float(ious.max()) >= config.iou_threshold:
                LOGGER.debug("Dropping detection overlapping a kept box after clamping")
                continue
        kept_boxes.append(box_xyxy)
        kept_classes.append(int(class_id))

        yield Detection(
            class_label=label,
            score=min(score, 1.0),
            box=Box(x1=float(x1), y1=float(y1), x2=float(x2), y2=float(y2)),
            class_id=int(class_id),
        )
