"""
Stand-in model handles so pipeline tests run without model files.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np


def make_rows(boxes: Sequence[Sequence[float]], scores: Sequence[Sequence[float]]) -> np.ndarray:
    """Row-major (N, 4 + C) detector output from cxcywh boxes and per-class scores."""
    return np.hstack([np.asarray(boxes, dtype=np.float32), np.asarray(scores, dtype=np.float32)])


class FakeDetector:
    """Returns the same raw output for any input, in channel-first (1, 4 + C, N) layout."""

    def __init__(self, rows: np.ndarray, *, channels_first: bool = True, output_name: str = "output0"):
        rows = np.asarray(rows, dtype=np.float32)
        self.output = rows.T[None, ...] if channels_first else rows[None, ...]
        self.output_name = output_name
        self.calls: List[Dict[str, np.ndarray]] = []
        self.ready = True

    def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        self.calls.append(dict(inputs))
        return {self.output_name: self.output.copy()}


class AsyncFakeDetector(FakeDetector):
    async def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:  # type: ignore[override]
        await asyncio.sleep(0)
        return FakeDetector.run(self, inputs)


class FailingModel:
    def __init__(self, exc: Optional[Exception] = None):
        self.exc = exc or RuntimeError("backend exploded")
        self.ready = True

    def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        raise self.exc


class FakeNMSModel:
    """Returns a fixed `selected` output and records what it was fed."""

    def __init__(self, selected: np.ndarray, output_name: str = "selected"):
        self.selected = np.asarray(selected)
        self.output_name = output_name
        self.calls: List[Dict[str, np.ndarray]] = []
        self.ready = True

    def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        self.calls.append(dict(inputs))
        return {self.output_name: self.selected}
