"""
Timer and clock abstraction for the lock lifecycle.

The lifecycle manager never touches the event loop clock or asyncio.sleep
directly; it asks a Scheduler for the current time and for periodic timers.
AsyncioScheduler runs on real time, ManualScheduler on virtual time that
tests advance explicitly.
"""

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional, Set

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Any]


class TimerHandle(ABC):
    """Handle returned by Scheduler.call_every"""

    @abstractmethod
    def cancel(self) -> None:
        ...

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        ...


class Scheduler(ABC):
    """Clock plus periodic timers plus fire-and-forget tasks."""

    @abstractmethod
    def now_ms(self) -> int:
        """Current time as epoch milliseconds."""

    @abstractmethod
    def call_every(self, interval_ms: int, callback: TimerCallback) -> TimerHandle:
        """Run `callback` every `interval_ms`; coroutine results are awaited."""

    @abstractmethod
    def spawn(self, coro: Awaitable) -> None:
        """Run a coroutine without waiting for it."""


async def _run_callback(callback: TimerCallback):
    result = callback()
    if inspect.isawaitable(result):
        await result


# ============================================================================
# Real time
# ============================================================================

class _TaskTimerHandle(TimerHandle):
    def __init__(self, task: asyncio.Task):
        self._task = task

    def cancel(self) -> None:
        self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled() or self._task.done()


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop and the wall clock."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def call_every(self, interval_ms: int, callback: TimerCallback) -> TimerHandle:
        async def _loop():
            while True:
                await asyncio.sleep(interval_ms / 1000)
                try:
                    await _run_callback(callback)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Timer callback failed: {e}", exc_info=True)

        return _TaskTimerHandle(self._track(asyncio.create_task(_loop())))

    def spawn(self, coro: Awaitable) -> None:
        self._track(asyncio.ensure_future(coro))


# ============================================================================
# Virtual time
# ============================================================================

class _ManualTimer(TimerHandle):
    def __init__(self, interval_ms: int, callback: TimerCallback, next_due: int, seq: int):
        self.interval_ms = interval_ms
        self.callback = callback
        self.next_due = next_due
        self.seq = seq
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """
    Deterministic virtual-time scheduler for tests.

    Time only moves inside `advance`, which fires every due timer in time
    order (ties in creation order) and awaits each callback and any spawned
    work before moving on.

    Usage:
        scheduler = ManualScheduler(start_ms=1_700_000_000_000)
        store = InMemoryLockStore(clock=scheduler.now_ms)
        await scheduler.advance(30_000)
    """

    def __init__(self, start_ms: int = 0):
        self._now = start_ms
        self._timers: List[_ManualTimer] = []
        self._pending: List[asyncio.Future] = []
        self._seq = 0

    def now_ms(self) -> int:
        return self._now

    def call_every(self, interval_ms: int, callback: TimerCallback) -> TimerHandle:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self._seq += 1
        timer = _ManualTimer(interval_ms, callback, self._now + interval_ms, self._seq)
        self._timers.append(timer)
        return timer

    def spawn(self, coro: Awaitable) -> None:
        self._pending.append(asyncio.ensure_future(coro))

    @property
    def active_timers(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def _next_due(self, until: int) -> Optional[_ManualTimer]:
        self._timers = [t for t in self._timers if not t.cancelled]
        due = [t for t in self._timers if t.next_due <= until]
        if not due:
            return None
        return min(due, key=lambda t: (t.next_due, t.seq))

    async def drain(self):
        """Wait for every spawned coroutine to finish."""
        while self._pending:
            pending, self._pending = self._pending, []
            await asyncio.gather(*pending)

    async def advance(self, ms: int):
        """Move virtual time forward by `ms`, firing due timers along the way."""
        if ms < 0:
            raise ValueError("Cannot move time backward")
        target = self._now + ms

        while True:
            timer = self._next_due(target)
            if timer is None:
                break
            self._now = timer.next_due
            timer.next_due += timer.interval_ms
            await _run_callback(timer.callback)
            await self.drain()

        self._now = target
        await self.drain()
