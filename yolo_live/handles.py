from __future__ import annotations

import asyncio
import inspect
from typing import Any, Dict, Mapping, Protocol, runtime_checkable

import numpy as np

from .errors import ModelLoadError


@runtime_checkable
class ModelHandle(Protocol):
    """
    A loaded, warmed-up network: named input tensors in, named output tensors out.

    `run` may be a plain (blocking) method or a coroutine function. Handles that
    load asynchronously can expose a boolean `ready` attribute.
    """

    def run(self, inputs: Mapping[str, np.ndarray]) -> Mapping[str, np.ndarray]:
        ...


def ensure_ready(handle: Any, name: str) -> None:
    if handle is None:
        raise ModelLoadError(f"{name} model is not loaded.")
    if not callable(getattr(handle, "run", None)):
        raise ModelLoadError(f"{name} model has no run() method.")
    if getattr(handle, "ready", True) is False:
        raise ModelLoadError(f"{name} model has not finished loading/warm-up.")


async def run_handle(handle: Any, inputs: Mapping[str, np.ndarray]) -> Dict[str, Any]:
    """
    Run a handle without blocking the event loop.

    Coroutine handles are awaited; blocking handles run in a worker thread.
    """

    if inspect.iscoroutinefunction(handle.run):
        outputs = await handle.run(inputs)
    else:
        outputs = await asyncio.to_thread(handle.run, inputs)
    if not isinstance(outputs, Mapping):
        raise TypeError(f"Model run() must return a mapping of outputs, got {type(outputs).__name__}")
    return dict(outputs)
