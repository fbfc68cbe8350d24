"""Tests for the periodic auto-sync timer and the backoff retry scheduler.

The scheduler's sleep is replaced with a recording fake, so timers fire
on the next loop iteration instead of after real delays.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from src.leadsync.sync.scheduling import PeriodicTask, RetryScheduler, backoff_delay


class _FakeSleep:
    """Records requested delays and yields once.

    Once ``allowed`` sleeps have been taken, further sleeps block until
    cancelled, which caps how often a periodic timer ticks.
    """

    def __init__(self, allowed: int | None = None) -> None:
        self.delays: list[float] = []
        self.allowed = allowed

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.allowed is not None and len(self.delays) > self.allowed:
            await asyncio.Event().wait()
        await asyncio.sleep(0)


async def _spin_until(predicate, spins: int = 200) -> None:
    for _ in range(spins):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.fixture
def fake_sleep():
    sleeper = _FakeSleep()
    with patch("src.leadsync.sync.scheduling._sleep", new=sleeper):
        yield sleeper


@pytest.mark.parametrize("retry_count, expected", [(1, 2), (2, 4), (3, 8), (5, 32)])
def test_backoff_delay_doubles(retry_count, expected):
    assert backoff_delay(retry_count) == expected


class TestPeriodicTask:
    async def test_ticks_on_interval_until_cancelled(self, fake_sleep):
        fake_sleep.allowed = 3
        callback = AsyncMock()
        task = PeriodicTask(callback, interval=60)

        task.start()
        await _spin_until(lambda: callback.await_count == 3)
        task.cancel()
        await asyncio.sleep(0)

        assert len(fake_sleep.delays) >= 3
        assert set(fake_sleep.delays) == {60}
        assert callback.await_count == 3
        assert not task.running

    async def test_tick_errors_do_not_stop_the_loop(self, fake_sleep):
        fake_sleep.allowed = 2
        callback = AsyncMock(side_effect=RuntimeError("sync blew up"))
        task = PeriodicTask(callback, interval=1)

        task.start()
        await _spin_until(lambda: callback.await_count == 2)

        assert task.running
        task.cancel()

    async def test_cancel_during_tick_lets_callback_finish(self, fake_sleep):
        fake_sleep.allowed = 1
        gate = asyncio.Event()
        finished = []

        async def callback():
            await gate.wait()
            finished.append(True)

        task = PeriodicTask(callback, interval=1)
        task.start()
        await _spin_until(lambda: task.busy)

        task.cancel()
        gate.set()
        await task.wait()

        assert finished == [True]
        assert not task.running
        assert not task.busy

    async def test_restart_replaces_previous_timer(self):
        task = PeriodicTask(AsyncMock(), interval=10)

        task.start()
        first = task._task
        task.start()
        await asyncio.sleep(0)

        assert first.cancelled()
        assert task.running
        task.cancel()

    def test_not_running_before_start(self):
        assert not PeriodicTask(AsyncMock(), interval=1).running


class TestRetryScheduler:
    async def test_fires_once_after_delay(self, fake_sleep):
        callback = AsyncMock()
        retry = RetryScheduler(callback)

        retry.schedule(4)
        assert retry.pending
        assert retry.delay == 4
        await _spin_until(lambda: not retry.pending)

        callback.assert_awaited_once()
        assert fake_sleep.delays == [4]

    async def test_cancel_prevents_firing(self):
        callback = AsyncMock()
        retry = RetryScheduler(callback)

        retry.schedule(10)
        retry.cancel()
        await asyncio.sleep(0)

        callback.assert_not_awaited()
        assert not retry.pending
        assert retry.delay is None

    async def test_reschedule_replaces_pending_retry(self, fake_sleep):
        fake_sleep.allowed = 0
        callback = AsyncMock()
        retry = RetryScheduler(callback)

        retry.schedule(10)
        first = retry._task
        retry.schedule(2)
        await asyncio.sleep(0)

        assert first.cancelled()
        assert retry.delay == 2
        retry.cancel()

    async def test_callback_can_reschedule_itself(self, fake_sleep):
        """A failing retry scheduling the next one keeps running to completion."""
        fired = []

        async def callback():
            fired.append(len(fired))
            if len(fired) < 3:
                retry.schedule(backoff_delay(len(fired) + 1))

        retry = RetryScheduler(callback)
        retry.schedule(2)
        await _spin_until(lambda: len(fired) == 3 and not retry.pending)
        await retry.wait()

        assert fired == [0, 1, 2]
        assert fake_sleep.delays == [2, 4, 8]

    async def test_cancel_during_callback_lets_it_finish(self, fake_sleep):
        gate = asyncio.Event()
        finished = []

        async def callback():
            await gate.wait()
            finished.append(True)

        retry = RetryScheduler(callback)
        retry.schedule(2)
        await _spin_until(lambda: retry.busy)

        retry.cancel()
        gate.set()
        await retry.wait()

        assert finished == [True]
        assert not retry.pending

    async def test_callback_errors_are_logged_not_raised(self, fake_sleep):
        callback = AsyncMock(side_effect=RuntimeError("still offline"))
        retry = RetryScheduler(callback)

        retry.schedule(2)
        await _spin_until(lambda: callback.await_count == 1 and not retry.pending)
        await retry.wait()

        assert not retry.busy
