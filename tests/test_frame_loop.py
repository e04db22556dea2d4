import asyncio
import unittest

import numpy as np

from yolo_live.errors import InferenceError
from yolo_live.frame_loop import FrameLoopController, LoopState

FRAME = np.zeros((8, 8, 3), dtype=np.uint8)


class GatedDetect:
    """Detect coroutine that blocks until the test opens the gate."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.calls = 0

    async def __call__(self, frame):
        self.calls += 1
        await self.gate.wait()
        return ["done"]


class TestFrameLoopController(unittest.IsolatedAsyncioTestCase):
    async def test_busy_ticks_are_skipped_not_queued(self) -> None:
        calls = 0

        async def slow_detect(frame):
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.05)
            return []

        results = []
        ctrl = FrameLoopController(slow_detect, lambda: FRAME, results.append, auto_tick=False)
        ctrl.start()
        for _ in range(100):
            ctrl.tick()
            await asyncio.sleep(0.001)
        ctrl.stop()
        await ctrl.wait_idle()

        self.assertLess(calls, 100)
        self.assertGreater(ctrl.stats.skipped, 0)
        self.assertEqual(ctrl.stats.ticks, 100)
        self.assertEqual(ctrl.stats.executions + ctrl.stats.skipped, 100)

    async def test_busy_flag_set_before_suspension(self) -> None:
        detect = GatedDetect()
        ctrl = FrameLoopController(detect, lambda: FRAME, lambda r: None, auto_tick=False)
        ctrl.start()
        self.assertTrue(ctrl.tick())
        # Second tick in the same loop iteration, before the task has run at all.
        self.assertFalse(ctrl.tick())
        self.assertTrue(ctrl.busy)
        detect.gate.set()
        await ctrl.wait_idle()
        self.assertFalse(ctrl.busy)
        self.assertEqual(detect.calls, 1)

    async def test_result_discarded_after_stop(self) -> None:
        detect = GatedDetect()
        results = []
        ctrl = FrameLoopController(detect, lambda: FRAME, results.append, auto_tick=False)
        ctrl.start()
        ctrl.tick()
        await asyncio.sleep(0)
        ctrl.stop()
        self.assertIs(ctrl.state, LoopState.STOPPING)

        detect.gate.set()
        await ctrl.wait_idle()
        self.assertIs(ctrl.state, LoopState.IDLE)
        self.assertEqual(results, [])
        self.assertEqual(ctrl.stats.discarded, 1)

    async def test_result_from_previous_run_discarded_after_restart(self) -> None:
        detect = GatedDetect()
        results = []
        ctrl = FrameLoopController(detect, lambda: FRAME, results.append, auto_tick=False)
        ctrl.start()
        ctrl.tick()
        ctrl.stop()
        ctrl.start()
        self.assertIs(ctrl.state, LoopState.RUNNING)
        # Still busy with the old execution.
        self.assertFalse(ctrl.tick())

        detect.gate.set()
        await ctrl.wait_idle()
        self.assertEqual(results, [])
        self.assertTrue(ctrl.tick())
        await ctrl.wait_idle()
        self.assertEqual(results, [["done"]])
        ctrl.stop()

    async def test_stop_when_idle_goes_straight_to_idle(self) -> None:
        ctrl = FrameLoopController(GatedDetect(), lambda: FRAME, lambda r: None, auto_tick=False)
        ctrl.start()
        ctrl.stop()
        self.assertIs(ctrl.state, LoopState.IDLE)
        self.assertFalse(ctrl.tick())

    async def test_frame_errors_do_not_end_the_loop(self) -> None:
        outcomes = iter([InferenceError("backend down"), ["ok"]])

        async def flaky_detect(frame):
            item = next(outcomes)
            if isinstance(item, Exception):
                raise item
            return item

        results, errors = [], []
        ctrl = FrameLoopController(flaky_detect, lambda: FRAME, results.append, errors.append, auto_tick=False)
        ctrl.start()
        with self.assertLogs("yolo_live.frame_loop", level="WARNING"):
            ctrl.tick()
            await ctrl.wait_idle()
        self.assertIs(ctrl.state, LoopState.RUNNING)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], InferenceError)

        ctrl.tick()
        await ctrl.wait_idle()
        self.assertEqual(results, [["ok"]])
        self.assertEqual(ctrl.stats.failures, 1)
        ctrl.stop()

    async def test_consumer_exception_is_contained(self) -> None:
        async def detect(frame):
            return []

        def bad_consumer(dets):
            raise ValueError("renderer broke")

        ctrl = FrameLoopController(detect, lambda: FRAME, bad_consumer, auto_tick=False)
        ctrl.start()
        with self.assertLogs("yolo_live.frame_loop", level="ERROR"):
            ctrl.tick()
            await ctrl.wait_idle()
        self.assertFalse(ctrl.busy)
        self.assertTrue(ctrl.tick())
        await ctrl.wait_idle()
        ctrl.stop()

    async def test_missing_frame_skips_tick(self) -> None:
        ctrl = FrameLoopController(GatedDetect(), lambda: None, lambda r: None, auto_tick=False)
        ctrl.start()
        self.assertFalse(ctrl.tick())
        self.assertEqual(ctrl.stats.executions, 0)
        ctrl.stop()

    async def test_timer_drives_ticks_and_start_is_idempotent(self) -> None:
        async def detect(frame):
            return []

        results = []
        ctrl = FrameLoopController(detect, lambda: FRAME, results.append, interval=0.005)
        ctrl.start()
        ticker = ctrl._ticker
        ctrl.start()
        self.assertIs(ctrl._ticker, ticker)

        await asyncio.sleep(0.1)
        ctrl.stop()
        await ctrl.wait_idle()
        ticks = ctrl.stats.ticks
        self.assertGreater(ticks, 1)
        self.assertGreater(len(results), 0)

        await asyncio.sleep(0.03)
        self.assertEqual(ctrl.stats.ticks, ticks)

    async def test_frame_source_error_keeps_timer_running(self) -> None:
        reads = 0

        def flaky_source():
            nonlocal reads
            reads += 1
            if reads == 2:
                raise OSError("camera unplugged")
            return FRAME

        async def detect(frame):
            return []

        results, errors = [], []
        ctrl = FrameLoopController(detect, flaky_source, results.append, errors.append, interval=0.005)
        with self.assertLogs("yolo_live.frame_loop", level="WARNING"):
            ctrl.start()
            await asyncio.sleep(0.1)
        ticker = ctrl._ticker
        self.assertFalse(ticker.done())
        self.assertIs(ctrl.state, LoopState.RUNNING)
        self.assertGreater(ctrl.stats.ticks, 2)
        self.assertGreater(len(results), 1)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], OSError)
        self.assertEqual(ctrl.stats.failures, 1)

        ctrl.stop()
        await ctrl.wait_idle()

    async def test_frame_source_error_on_manual_tick(self) -> None:
        def broken_source():
            raise RuntimeError("no frame buffer")

        ctrl = FrameLoopController(GatedDetect(), broken_source, lambda r: None, auto_tick=False)
        ctrl.start()
        with self.assertLogs("yolo_live.frame_loop", level="WARNING"):
            self.assertFalse(ctrl.tick())
        self.assertFalse(ctrl.busy)
        self.assertEqual(ctrl.stats.executions, 0)
        ctrl.stop()

    async def test_accepts_pipeline_object(self) -> None:
        class Pipe:
            async def detect(self, frame):
                return ["pipe"]

        results = []
        ctrl = FrameLoopController(Pipe(), lambda: FRAME, results.append, auto_tick=False)
        ctrl.start()
        ctrl.tick()
        await ctrl.wait_idle()
        self.assertEqual(results, [["pipe"]])
        ctrl.stop()


class TestFrameLoopOutsideEventLoop(unittest.TestCase):
    def test_start_requires_running_loop(self) -> None:
        async def detect(frame):
            return []

        ctrl = FrameLoopController(detect, lambda: FRAME, lambda r: None)
        with self.assertRaises(RuntimeError):
            ctrl.start()
        self.assertIs(ctrl.state, LoopState.IDLE)

    def test_rejects_non_positive_interval(self) -> None:
        with self.assertRaises(ValueError):
            FrameLoopController(lambda f: None, lambda: FRAME, lambda r: None, interval=0)


if __name__ == "__main__":
    unittest.main()
