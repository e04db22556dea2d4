from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

import numpy as np

from .types import Detection

LOGGER = logging.getLogger(__name__)

DetectFn = Callable[[np.ndarray], Awaitable[List[Detection]]]
FrameSource = Callable[[], Optional[np.ndarray]]
ResultCallback = Callable[[List[Detection]], None]
ErrorCallback = Callable[[BaseException], None]


class LoopState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class LoopStats:
    ticks: int = 0
    skipped: int = 0
    executions: int = 0
    failures: int = 0
    delivered: int = 0
    discarded: int = 0


class FrameLoopController:
    """
    Runs the detection pipeline once per tick while RUNNING.

    - At most one pipeline execution is in flight per controller; a tick that
      finds the previous execution still running is skipped, not queued.
    - `stop()` cancels future ticks only. An in-flight execution finishes, but
      its result is dropped when the loop is no longer running (or was
      restarted) by the time it completes.
    - Per-frame failures (frame source or pipeline) go to `on_error` and never
      end the loop.

    Must be started from inside a running asyncio event loop. Hosts with their
    own refresh callback can call `tick()` directly instead of `start()`-ing the
    built-in timer (pass `auto_tick=False`).
    """

    def __init__(
        self,
        detect: DetectFn,
        frame_source: FrameSource,
        on_result: ResultCallback,
        on_error: Optional[ErrorCallback] = None,
        *,
        interval: float = 1.0 / 60.0,
        auto_tick: bool = True,
    ):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        # Accept a pipeline object as well as a bare coroutine function.
        self._detect = getattr(detect, "detect", detect)
        self._frame_source = frame_source
        self._on_result = on_result
        self._on_error = on_error
        self.interval = float(interval)
        self.auto_tick = auto_tick

        self.stats = LoopStats()
        self._state = LoopState.IDLE
        self._busy = False
        self._generation = 0
        self._ticker: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._busy

    def start(self) -> None:
        if self._state is LoopState.RUNNING:
            return
        loop = asyncio.get_running_loop()
        self._generation += 1
        self._state = LoopState.RUNNING
        if self.auto_tick:
            self._ticker = loop.create_task(self._tick_forever())
        LOGGER.info("Frame loop started (interval=%.4fs)", self.interval)

    def stop(self) -> None:
        if self._state is LoopState.IDLE:
            return
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
        self._state = LoopState.STOPPING if self._busy else LoopState.IDLE
        LOGGER.info("Frame loop stopped")

    def tick(self) -> bool:
        """
        One scheduling step. Returns True when a pipeline execution was dispatched.
        Never waits for the pipeline.
        """

        self.stats.ticks += 1
        if self._state is not LoopState.RUNNING:
            return False
        if self._busy:
            self.stats.skipped += 1
            LOGGER.debug("Tick skipped: previous frame still in flight")
            return False

        try:
            frame = self._frame_source()
        except Exception as exc:
            self.stats.failures += 1
            LOGGER.warning("Frame source failed: %s", exc)
            if self._on_error is not None:
                self._deliver(self._on_error, exc)
            return False
        if frame is None:
            self.stats.skipped += 1
            return False

        # Set before the task can suspend so the next tick sees it.
        self._busy = True
        self._inflight = asyncio.get_running_loop().create_task(self._execute(frame, self._generation))
        return True

    async def wait_idle(self) -> None:
        """Wait for the in-flight execution (if any) to finish."""
        task = self._inflight
        if task is not None and not task.done():
            await asyncio.wait([task])

    def _is_current(self, generation: int) -> bool:
        return self._state is LoopState.RUNNING and generation == self._generation

    async def _execute(self, frame: np.ndarray, generation: int) -> None:
        self.stats.executions += 1
        try:
            detections = await self._detect(frame)
        except Exception as exc:
            self.stats.failures += 1
            LOGGER.warning("Frame skipped: %s", exc)
            if self._on_error is not None and self._is_current(generation):
                self._deliver(self._on_error, exc)
        else:
            if self._is_current(generation):
                self.stats.delivered += 1
                self._deliver(self._on_result, detections)
            else:
                self.stats.discarded += 1
        finally:
            self._busy = False
            if self._state is LoopState.STOPPING:
                self._state = LoopState.IDLE

    @staticmethod
    def _deliver(callback: Callable, payload: object) -> None:
        try:
            callback(payload)
        except Exception:
            LOGGER.exception("Frame loop consumer raised")

    async def _tick_forever(self) -> None:
        while self._state is LoopState.RUNNING:
            self.tick()
            await asyncio.sleep(self.interval)
