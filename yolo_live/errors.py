from __future__ import annotations


class PipelineError(Exception):
    """
    Base class for failures raised by the detection pipeline.
    """


class ShapeError(PipelineError, ValueError):
    """Tensor or image dimensions do not match what the stage expects."""


class ModelLoadError(PipelineError, RuntimeError):
    """A model handle was used before it finished loading / warm-up."""


class InferenceError(PipelineError, RuntimeError):
    """The inference backend failed while running a model."""


class LabelIndexError(PipelineError, IndexError):
    def __init__(self, class_id: int, num_labels: int):
        super().__init__(f"Class index {class_id} is outside the label table (size {num_labels}).")
        self.class_id = class_id
        self.num_labels = num_labels
