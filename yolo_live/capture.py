from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureInfo:
    fps: Optional[float]
    width: Optional[int]
    height: Optional[int]


def open_capture(*, video: Optional[str] = None, webcam: Optional[int] = None, rtsp: Optional[str] = None) -> Any:
    import cv2  # type: ignore

    sources = [video is not None, webcam is not None, rtsp is not None]
    if sum(bool(s) for s in sources) != 1:
        raise ValueError("Exactly one of video/webcam/rtsp must be provided.")

    if video is not None:
        cap = cv2.VideoCapture(video)
    elif rtsp is not None:
        cap = cv2.VideoCapture(rtsp)
    else:
        cap = cv2.VideoCapture(int(webcam))

    if not cap.isOpened():
        raise RuntimeError("Failed to open video source.")
    return cap


def get_capture_info(cap: Any) -> CaptureInfo:
    import cv2  # type: ignore

    fps = cap.get(cv2.CAP_PROP_FPS)
    w = cap.get(cv2.CAP_PROP_FRAME_WIDTH)
    h = cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
    return CaptureInfo(
        fps=float(fps) if fps and fps > 0 else None,
        width=int(w) if w and w > 0 else None,
        height=int(h) if h and h > 0 else None,
    )


class LatestFrameSource:
    """
    Reads a capture on a background thread and keeps only the newest frame.

    Calling the instance returns that frame (or None before the first read),
    which makes it a frame source for FrameLoopController: slow inference
    never builds a backlog of stale frames.
    """

    def __init__(self, cap: Any):
        self._cap = cap
        self._lock = threading.Lock()
        self._frame: Optional[np.ndarray] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.frames_read = 0
        self.exhausted = False

    def start(self) -> "LatestFrameSource":
        if self._thread is None:
            self._thread = threading.Thread(target=self._reader, name="latest-frame-reader", daemon=True)
            self._thread.start()
        return self

    def _reader(self) -> None:
        while not self._stop.is_set():
            ok, frame = self._cap.read()
            if not ok or frame is None:
                self.exhausted = True
                LOGGER.info("Capture ended after %d frames", self.frames_read)
                break
            with self._lock:
                self._frame = frame
                self.frames_read += 1

    def latest(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frame

    __call__ = latest

    def close(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        self._cap.release()
