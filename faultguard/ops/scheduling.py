"""
Schedulers behind IScheduler.

AsyncioScheduler keeps every callback on the event loop, ThreadScheduler uses
timers and daemon threads for scripts without a loop, and ManualScheduler is a
virtual clock that only moves when told to.
"""
import asyncio
import heapq
import itertools
import logging
import threading
from typing import Any, Callable, List, Optional, Tuple

from ..interfaces import IScheduler

logger = logging.getLogger(__name__)


def _run_task(task: Callable[[], Any], on_done: Optional[Callable[[Any], Any]]) -> None:
    try:
        result = task()
    except Exception as exc:
        logger.debug("Background task failed: %s", exc)
        return
    if on_done is not None:
        on_done(result)


class AsyncioScheduler(IScheduler):
    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop or asyncio.get_running_loop()

    def _on_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self.loop
        except RuntimeError:
            return False

    def _dispatch(self, fn: Callable[..., Any], *args) -> None:
        if self._on_loop_thread():
            fn(*args)
        else:
            self.loop.call_soon_threadsafe(fn, *args)

    def call_later(self, delay: float, callback: Callable[[], Any]) -> None:
        self._dispatch(self.loop.call_later, delay, callback)

    def spawn(self, task: Callable[[], Any], on_done: Optional[Callable[[Any], Any]] = None) -> None:
        self._dispatch(self._start, task, on_done)

    def _start(self, task: Callable[[], Any], on_done: Optional[Callable[[Any], Any]]) -> None:
        future = self.loop.run_in_executor(None, task)

        def _finished(fut: asyncio.Future) -> None:
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.debug("Background task failed: %s", exc)
                return
            if on_done is not None:
                on_done(fut.result())

        future.add_done_callback(_finished)


class ThreadScheduler(IScheduler):
    def call_later(self, delay: float, callback: Callable[[], Any]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer

    def spawn(self, task: Callable[[], Any], on_done: Optional[Callable[[Any], Any]] = None) -> None:
        worker = threading.Thread(target=_run_task, args=(task, on_done), daemon=True)
        worker.start()


class ManualScheduler(IScheduler):
    """
    Deterministic scheduler: timers fire only from advance(), spawned tasks run
    only from run_pending().
    """

    def __init__(self):
        self.now = 0.0
        self._timers: List[Tuple[float, int, Callable[[], Any]]] = []
        self._tasks: List[Tuple[Callable[[], Any], Optional[Callable[[Any], Any]]]] = []
        self._seq = itertools.count()
        self.delays: List[float] = []

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def call_later(self, delay: float, callback: Callable[[], Any]) -> None:
        self.delays.append(delay)
        heapq.heappush(self._timers, (self.now + delay, next(self._seq), callback))

    def spawn(self, task: Callable[[], Any], on_done: Optional[Callable[[Any], Any]] = None) -> None:
        self._tasks.append((task, on_done))

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every timer that comes due. Returns how many fired."""
        target = self.now + seconds
        fired = 0
        while self._timers and self._timers[0][0] <= target:
            due, _, callback = heapq.heappop(self._timers)
            self.now = due
            callback()
            fired += 1
        self.now = target
        return fired

    def run_pending(self) -> int:
        ran = 0
        while self._tasks:
            task, on_done = self._tasks.pop(0)
            _run_task(task, on_done)
            ran += 1
        return ran
