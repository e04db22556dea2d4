from typing import Tuple

import numpy as np

from .errors import ShapeError
from .types import LetterboxTransform


def _as_three_channel(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return np.repeat(image[:, :, None], 3, axis=2)
    if image.ndim == 3 and image.shape[2] == 3:
        return image
    if image.ndim == 3 and image.shape[2] == 4:
        # Drop alpha; colour order of the first three channels is preserved.
        return image[:, :, :3]
    raise ShapeError(f"Expected image shape (H, W), (H, W, 3) or (H, W, 4), got {image.shape}")


def letterbox(
    image: np.ndarray,
    target_size: int = 640,
    pad_value: int = 114,
) -> Tuple[np.ndarray, LetterboxTransform]:
    """
    Resize with unchanged aspect ratio and pad to a `target_size` square.

    Returns:
        padded: (target_size, target_size, 3) uint8 canvas, resized image centred on it
        transform: scale and integer left/top offsets for mapping boxes back

    The input array is never modified. Shrinking uses INTER_AREA, enlarging
    uses INTER_LINEAR; left/top padding is floor(total / 2), the odd pixel goes
    right/bottom.
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    if image is None or not hasattr(image, "shape"):
        raise ShapeError("image must be a NumPy array.")
    image = _as_three_channel(np.asarray(image))

    h, w = image.shape[:2]
    if h == 0 or w == 0:
        raise ShapeError(f"Image has an empty dimension: {image.shape}")

    scale = min(target_size / w, target_size / h)
    resized_w = min(target_size, max(1, int(round(w * scale))))
    resized_h = min(target_size, max(1, int(round(h * scale))))

    if (w, h) != (resized_w, resized_h):
        interpolation = cv2.INTER_AREA if scale < 1.0 else cv2.INTER_LINEAR
        image = cv2.resize(image, (resized_w, resized_h), interpolation=interpolation)

    dw = target_size - resized_w
    dh = target_size - resized_h
    left, top = dw // 2, dh // 2
    right, bottom = dw - left, dh - top

    fill = (int(pad_value),) * 3
    padded = cv2.copyMakeBorder(
        np.ascontiguousarray(image), top, bottom, left, right, cv2.BORDER_CONSTANT, value=fill
    )

    transform = LetterboxTransform(
        scale=float(scale),
        pad_x=float(left),
        pad_y=float(top),
        src_width=int(w),
        src_height=int(h),
    )
    return padded, transform
