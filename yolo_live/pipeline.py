from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, List, Optional

import numpy as np

from .config import PipelineConfig
from .decode import decode
from .inference import InferenceOrchestrator
from .letterbox import letterbox
from .nms import BoxFilter, GreedyBoxFilter, ModelBoxFilter
from .tensor import to_tensor
from .types import Detection, LetterboxTransform


@dataclass(frozen=True)
class PreparedInput:
    tensor: np.ndarray
    transform: LetterboxTransform


def make_box_filter(nms: Any) -> BoxFilter:
    """
    `None` -> in-process greedy NMS; a BoxFilter is used as-is; anything else
    is treated as an NMS network handle.
    """

    if nms is None:
        return GreedyBoxFilter()
    if callable(getattr(nms, "select", None)):
        return nms
    return ModelBoxFilter(nms)


class DetectionPipeline:
    """
    Plug-and-play pipeline: letterbox -> tensor -> detector -> NMS -> decode.

    Expects images as `np.ndarray` (BGR by default, see PipelineConfig.input_color)
    and returns a list of `Detection` in original image coordinates.

    `nms=None` explicitly selects in-process greedy NMS. It is not a placeholder
    for an NMS network that is still loading: pass that handle instead, and
    `detect` raises ModelLoadError until its `ready` flag is set.
    """

    def __init__(
        self,
        detector: Any,
        nms: Any,
        config: PipelineConfig,
        *,
        detector_input_name: str = "images",
        detector_output_name: Optional[str] = None,
    ):
        self.config = config
        self.box_filter = make_box_filter(nms)
        self.orchestrator = InferenceOrchestrator(
            detector,
            self.box_filter,
            config,
            input_name=detector_input_name,
            output_name=detector_output_name,
        )

    @property
    def detector(self) -> Any:
        return self.orchestrator.detector

    def preprocess(self, image: np.ndarray) -> PreparedInput:
        padded, transform = letterbox(image, self.config.model_input_size, self.config.pad_value)
        tensor = to_tensor(padded, self.config.model_input_size, self.config.input_color)
        return PreparedInput(tensor=tensor, transform=transform)

    async def detect(self, image: np.ndarray) -> List[Detection]:
        prep = self.preprocess(image)
        rows, selection = await self.orchestrator.run(prep.tensor)
        return list(decode(rows, selection, prep.transform, self.config))

    def __call__(self, image: np.ndarray) -> List[Detection]:
        """
        Blocking wrapper for scripts. Do not call from inside a running event loop.
        """

        return asyncio.run(self.detect(image))
