"""Periodic background task base used by the importer, snapshots and price refresh.

Each task runs once immediately on start, then every interval seconds. Ticks
of the same task never overlap: a timer tick that finds a run in progress is
skipped, while a manual trigger waits for the running tick and then runs.

A task started with after=<other task> holds its first tick until the other
task has finished its own first tick, successfully or not.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from folio.logging import get_logger

logger = get_logger(__name__)


class PeriodicTask(ABC):
    """Start/stop lifecycle around a repeating run_once() coroutine."""

    name: str = "periodic_task"

    def __init__(self, interval_seconds: float) -> None:
        self._interval = interval_seconds
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._lock = asyncio.Lock()
        self._first_tick_done = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def interval(self) -> float:
        return self._interval

    async def wait_first_tick(self) -> None:
        """Block until the loop has finished its first tick."""
        await self._first_tick_done.wait()

    async def start(self, after: "PeriodicTask | None" = None) -> None:
        """Begin running in the background."""
        if self._running:
            logger.warning("periodic_task_already_running", task=self.name)
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(after))
        logger.info(
            "periodic_task_started",
            task=self.name,
            interval=self._interval,
            after=after.name if after is not None else None,
        )

    async def stop(self) -> None:
        """Stop the loop gracefully, cancelling any sleep in progress."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("periodic_task_stopped", task=self.name)

    async def _loop(self, after: "PeriodicTask | None" = None) -> None:
        if after is not None:
            await after.wait_first_tick()
        while self._running:
            if self._lock.locked():
                logger.info("periodic_tick_skipped", task=self.name)
            else:
                try:
                    async with self._lock:
                        await self.run_once()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.error("periodic_tick_failed", task=self.name, exc_info=True)
                finally:
                    self._first_tick_done.set()
            if self._running:
                await asyncio.sleep(self._interval)

    async def trigger(self) -> Any:
        """Run one tick on demand, waiting for any tick already in progress."""
        async with self._lock:
            return await self.run_once()

    @abstractmethod
    async def run_once(self) -> Any:
        """Perform one tick of work."""
        ...
