"""Cancellable scheduled callbacks, so round transitions can run on a simulated clock in tests."""
from typing import Awaitable, Callable, Optional, Set
import asyncio
import logging

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle:
    def __init__(self):
        self.cancelled = False
        self._timer: Optional[asyncio.TimerHandle] = None

    def cancel(self):
        self.cancelled = True
        if self._timer:
            self._timer.cancel()
            self._timer = None


class Scheduler:
    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    """Runs callbacks as tasks on the running event loop."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        handle = TimerHandle()
        loop = asyncio.get_running_loop()
        handle._timer = loop.call_later(delay, self._spawn, handle, callback)
        return handle

    def _spawn(self, handle: TimerHandle, callback: TimerCallback):
        if handle.cancelled:
            return
        handle._timer = None
        task = asyncio.ensure_future(self._run(callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _run(callback: TimerCallback):
        try:
            await callback()
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Scheduled callback failed")

    def cancel_all(self):
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
