from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class Box:
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1


@dataclass(frozen=True)
class Detection:
    """
    One decoded detection in original image pixel coordinates.

    This is the only record handed to consumers (renderers, counters); it has
    no lifecycle beyond the pipeline run that produced it.
    """

    class_label: str
    score: float
    box: Box
    class_id: Optional[int] = None

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.box.x1, self.box.y1, self.box.x2, self.box.y2


@dataclass(frozen=True)
class LetterboxTransform:
    """
    Maps between original image pixels and model input pixels.

    `pad_x`/`pad_y` are the offsets of the resized content's top-left corner
    on the square canvas.
    """

    scale: float
    pad_x: float
    pad_y: float
    src_width: int
    src_height: int

    def to_model(self, x: float, y: float) -> Tuple[float, float]:
        return x * self.scale + self.pad_x, y * self.scale + self.pad_y

    def to_source(self, x: float, y: float) -> Tuple[float, float]:
        return (x - self.pad_x) / self.scale, (y - self.pad_y) / self.scale

    def boxes_to_source(self, boxes_xyxy: np.ndarray) -> np.ndarray:
        """
        Invert the letterbox for an (N, 4) xyxy array and clamp to the source frame.
        Returns a new array; the input is not modified.
        """

        out = np.asarray(boxes_xyxy, dtype=np.float64).copy()
        out[:, [0, 2]] = (out[:, [0, 2]] - self.pad_x) / self.scale
        out[:, [1, 3]] = (out[:, [1, 3]] - self.pad_y) / self.scale
        out[:, [0, 2]] = np.clip(out[:, [0, 2]], 0, self.src_width)
        out[:, [1, 3]] = np.clip(out[:, [1, 3]], 0, self.src_height)
        return out


@dataclass(frozen=True)
class NMSFilterResult:
    """
    Rows selected by the box filter, best first.

    `indices` point into the row-major raw detector output; `scores` and
    `class_ids` are parallel arrays.
    """

    indices: np.ndarray = field(default_factory=lambda: np.empty((0,), dtype=np.int64))
    scores: np.ndarray = field(default_factory=lambda: np.empty((0,), dtype=np.float32))
    class_ids: np.ndarray = field(default_factory=lambda: np.empty((0,), dtype=np.int64))

    def __post_init__(self) -> None:
        if not (len(self.indices) == len(self.scores) == len(self.class_ids)):
            raise ValueError(
                f"indices/scores/class_ids must have equal length "
                f"(got {len(self.indices)}, {len(self.scores)}, {len(self.class_ids)})"
            )

    def __len__(self) -> int:
        return int(len(self.indices))

    def __iter__(self) -> Iterator[Tuple[int, float, int]]:
        for idx, score, cls_id in zip(self.indices, self.scores, self.class_ids):
            yield int(idx), float(score), int(cls_id)

    @classmethod
    def empty(cls) -> "NMSFilterResult":
        return cls()


def count_by_class(detections: Iterable[Detection]) -> Dict[str, int]:
    """
    Per-class counts, most frequent first (ties keep label order of first appearance).
    """

    counts: Dict[str, int] = {}
    for det in detections:
        counts[det.class_label] = counts.get(det.class_label, 0) + 1
    return dict(sorted(counts.items(), key=lambda kv: kv[1], reverse=True))
