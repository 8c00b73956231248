"""Tests for the PeriodicTask start/stop/trigger lifecycle."""

import asyncio

import pytest

from folio.scheduling import PeriodicTask


class CountingTask(PeriodicTask):
    name = "counting"

    def __init__(self, interval: float = 0.01, fail: bool = False) -> None:
        super().__init__(interval)
        self.calls = 0
        self.fail = fail
        self.release = asyncio.Event()
        self.release.set()

    async def run_once(self) -> int:
        self.calls += 1
        await self.release.wait()
        if self.fail:
            raise RuntimeError("tick exploded")
        return self.calls


class TestPeriodicTask:
    @pytest.mark.asyncio
    async def test_runs_immediately_and_repeats(self) -> None:
        task = CountingTask()
        await task.start()
        await asyncio.sleep(0.05)
        await task.stop()

        assert task.calls >= 2
        assert task.is_running is False

    @pytest.mark.asyncio
    async def test_failing_tick_does_not_stop_loop(self) -> None:
        task = CountingTask(fail=True)
        await task.start()
        await asyncio.sleep(0.05)
        assert task.is_running is True
        await task.stop()
        assert task.calls >= 2

    @pytest.mark.asyncio
    async def test_double_start_is_ignored(self) -> None:
        task = CountingTask(interval=60)
        await task.start()
        first = task._task
        await task.start()
        assert task._task is first
        await task.stop()

    @pytest.mark.asyncio
    async def test_trigger_waits_for_running_tick(self) -> None:
        task = CountingTask(interval=60)
        task.release.clear()
        await task.start()
        await asyncio.sleep(0)

        triggered = asyncio.create_task(task.trigger())
        await asyncio.sleep(0.01)
        assert not triggered.done()
        assert task.calls == 1

        task.release.set()
        assert await triggered == 2
        await task.stop()

    @pytest.mark.asyncio
    async def test_slow_tick_spanning_intervals_does_not_overlap(self) -> None:
        task = CountingTask(interval=0.01)
        task.release.clear()
        await task.start()
        await asyncio.sleep(0.05)

        assert task.calls == 1
        task.release.set()
        await task.stop()

    @pytest.mark.asyncio
    async def test_timer_tick_skipped_while_trigger_holds_lock(self) -> None:
        task = CountingTask(interval=0.01)
        task.release.clear()
        triggered = asyncio.create_task(task.trigger())
        await asyncio.sleep(0)

        await task.start()
        await asyncio.sleep(0.05)
        assert task.calls == 1

        task.release.set()
        assert await triggered == 1
        await task.stop()

    @pytest.mark.asyncio
    async def test_after_holds_first_tick_until_other_task_ticked(self) -> None:
        first = CountingTask(interval=60)
        first.release.clear()
        second = CountingTask(interval=60)
        await first.start()
        await second.start(after=first)
        await asyncio.sleep(0.02)
        assert second.calls == 0

        first.release.set()
        await first.wait_first_tick()
        await asyncio.sleep(0.01)
        assert second.calls == 1

        await second.stop()
        await first.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self) -> None:
        task = CountingTask()
        await task.stop()
        assert task.is_running is False
