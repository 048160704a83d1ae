"""Schedulable tasks — one-shot and periodic timers with cancellation handles.

Architecture
~~~~~~~~~~~~
Every timer the engine needs (evaluation tick, staleness watchdog,
simulator period, wait suppression) is created through a
:class:`TaskScheduler` and returns a :class:`TaskHandle`.  Cancelling the
handle is immediate and idempotent.

Two implementations share the same contract:

* :class:`AsyncioTaskScheduler` — real time on the running asyncio loop
  (``loop.call_later``).
* :class:`ManualTaskScheduler` — virtual time advanced explicitly with
  :meth:`ManualTaskScheduler.advance`; used by tests and offline replays.

Callbacks are synchronous and run to completion one at a time.  A callback
that raises is logged and does not stop the timer or the scheduler.

Integration::

    scheduler = AsyncioTaskScheduler()
    handle = scheduler.call_every(3.0, orchestrator.evaluate_now, name="evaluation")
    ...
    handle.cancel()
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

import structlog

logger = structlog.get_logger(__name__)

TaskCallback = Callable[[], None]


class TaskHandle:
    """Cancellation token for a scheduled task."""

    __slots__ = ("name", "_cancelled", "_on_cancel")

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._cancelled = False
        self._on_cancel: Callable[[], object] | None = None

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()
            self._on_cancel = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"<TaskHandle {self.name or '?'} {state}>"


def _run_callback(handle: TaskHandle, callback: TaskCallback) -> None:
    try:
        callback()
    except Exception:
        logger.exception("scheduler.task_error", task=handle.name)


class TaskScheduler(ABC):
    """Contract for the engine's timer source."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds on this scheduler's clock."""

    @abstractmethod
    def call_later(self, delay: float, callback: TaskCallback, *, name: str = "") -> TaskHandle:
        """Run *callback* once after *delay* seconds."""

    @abstractmethod
    def call_every(
        self,
        interval: float,
        callback: TaskCallback,
        *,
        name: str = "",
        first_delay: float | None = None,
    ) -> TaskHandle:
        """Run *callback* every *interval* seconds until cancelled.

        The first run happens after *first_delay* (default: *interval*).
        """


# ── Virtual time ──────────────────────────────────────────────


@dataclass(order=True)
class _Timer:
    due: float
    seq: int
    handle: TaskHandle = field(compare=False)
    callback: TaskCallback = field(compare=False)
    interval: float | None = field(default=None, compare=False)


class ManualTaskScheduler(TaskScheduler):
    """Deterministic scheduler driven by :meth:`advance`.

    Timers due at the same instant fire in creation order.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[_Timer] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: TaskCallback, *, name: str = "") -> TaskHandle:
        handle = TaskHandle(name)
        self._push(self._now + max(0.0, delay), handle, callback, None)
        return handle

    def call_every(
        self,
        interval: float,
        callback: TaskCallback,
        *,
        name: str = "",
        first_delay: float | None = None,
    ) -> TaskHandle:
        if interval <= 0:
            raise ValueError("interval must be positive")
        handle = TaskHandle(name)
        delay = interval if first_delay is None else max(0.0, first_delay)
        self._push(self._now + delay, handle, callback, interval)
        return handle

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every timer that falls due.

        Returns the number of callbacks run.
        """
        target = self._now + max(0.0, seconds)
        fired = 0
        while self._queue and self._queue[0].due <= target:
            timer = heapq.heappop(self._queue)
            if timer.handle.cancelled:
                continue
            self._now = timer.due
            _run_callback(timer.handle, timer.callback)
            fired += 1
            if timer.interval is not None and not timer.handle.cancelled:
                self._push(timer.due + timer.interval, timer.handle, timer.callback, timer.interval)
        self._now = target
        return fired

    @property
    def pending(self) -> int:
        """Number of live (non-cancelled) timers."""
        return sum(1 for t in self._queue if not t.handle.cancelled)

    def _push(self, due: float, handle: TaskHandle, callback: TaskCallback, interval: float | None) -> None:
        heapq.heappush(self._queue, _Timer(due, next(self._seq), handle, callback, interval))


# ── Real time ─────────────────────────────────────────────────


class AsyncioTaskScheduler(TaskScheduler):
    """Scheduler backed by the asyncio event loop.

    Must be used from code running inside the loop (timers are armed with
    ``loop.call_later``).  The clock is ``time.monotonic()``, the same clock
    the default loop uses.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: TaskCallback, *, name: str = "") -> TaskHandle:
        handle = TaskHandle(name)
        timer = self._get_loop().call_later(max(0.0, delay), _run_callback, handle, callback)
        handle._on_cancel = timer.cancel
        return handle

    def call_every(
        self,
        interval: float,
        callback: TaskCallback,
        *,
        name: str = "",
        first_delay: float | None = None,
    ) -> TaskHandle:
        if interval <= 0:
            raise ValueError("interval must be positive")
        loop = self._get_loop()
        handle = TaskHandle(name)

        def _tick() -> None:
            _run_callback(handle, callback)
            if not handle.cancelled:
                handle._on_cancel = loop.call_later(interval, _tick).cancel

        delay = interval if first_delay is None else max(0.0, first_delay)
        handle._on_cancel = loop.call_later(delay, _tick).cancel
        return handle
