import numpy as np

from .errors import ShapeError


def to_tensor(padded: np.ndarray, model_input_size: int, input_color: str = "bgr") -> np.ndarray:
    """
    Letterboxed HWC uint8 pixels -> (1, 3, S, S) float32 in [0, 1], RGB planes.
    """

    p = np.asarray(padded)
    expected = (model_input_size, model_input_size, 3)
    if p.shape != expected:
        raise ShapeError(f"Expected padded image of shape {expected}, got {p.shape}")

    if input_color == "bgr":
        p = p[:, :, ::-1]
    elif input_color != "rgb":
        raise ValueError(f"Unsupported input_color: {input_color!r}")

    # Normalize, HWC -> CHW, add batch
    blob = p.astype(np.float32) / 255.0
    blob = np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...])
    return blob
