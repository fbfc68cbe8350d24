"""Cancellable asyncio timers for the sync engine.

- PeriodicTask: fires a coroutine callback on a fixed interval (auto-sync).
- RetryScheduler: fires a callback once after an exponential backoff delay.

Both hold a single timer task, so starting again replaces the previous
timer and ``cancel()`` deterministically stops it. The callback itself runs
in its own task, shielded from the timer: cancelling a timer never
interrupts a sync cycle that has already started. ``wait()`` awaits
callbacks still in flight.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

Callback = Callable[[], Awaitable[Any]]

_sleep = asyncio.sleep


def backoff_delay(retry_count: int, base: float = 2.0) -> float:
    """Delay in seconds before retry number ``retry_count`` (2s, 4s, 8s...)."""
    return base ** retry_count


class _Timer:
    """Timer task plus the callback tasks it has started."""

    error_event = "scheduler.callback_failed"

    def __init__(self, callback: Callback, name: str) -> None:
        self._callback = callback
        self._name = name
        self._task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def busy(self) -> bool:
        """True while a fired callback is still running."""
        return bool(self._inflight)

    async def wait(self) -> None:
        """Wait for callbacks already fired. Does not wait for the timer."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _invoke(self) -> None:
        try:
            await self._callback()
        except Exception as exc:
            logger.error(self.error_event, task=self._name, error=str(exc))

    async def _fire_callback(self) -> None:
        task = asyncio.get_running_loop().create_task(
            self._invoke(), name=f"{self._name}.callback"
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        await asyncio.shield(task)


class PeriodicTask(_Timer):
    """Runs ``callback`` every ``interval`` seconds until cancelled.

    Exceptions from a tick are logged and the loop keeps going.

    Args:
        callback: Coroutine function invoked on every tick.
        interval: Seconds between ticks.
        name: Task name for logs.
    """

    error_event = "scheduler.tick_failed"

    def __init__(self, callback: Callback, interval: float, name: str = "periodic") -> None:
        super().__init__(callback, name)
        self._interval = interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking. Any previously running timer is cancelled first."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=self._name
        )

    def cancel(self) -> None:
        """Stop ticking. A tick already running finishes on its own."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await _sleep(self._interval)
            await self._fire_callback()


class RetryScheduler(_Timer):
    """Schedules a single delayed retry of ``callback``.

    Scheduling while a retry is pending replaces it. A retry that
    reschedules from inside its own callback (a failed retry) only drops
    the finished timer; the running callback is unaffected.
    """

    error_event = "scheduler.retry_failed"

    def __init__(self, callback: Callback, name: str = "retry") -> None:
        super().__init__(callback, name)
        self.delay: float | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, delay: float) -> None:
        if self._task is not None:
            self._task.cancel()
        self.delay = delay
        self._task = asyncio.get_running_loop().create_task(
            self._fire(delay), name=self._name
        )

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
        self._task = None
        self.delay = None

    async def _fire(self, delay: float) -> None:
        await _sleep(delay)
        await self._fire_callback()
