"""
Fixed-interval polling scheduler.

Runs one awaited tick at startup, then keeps ticking in a background task
until stopped. A failing tick never stops the schedule.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pricefeed.config.constants import DEFAULT_POLL_INTERVAL
from pricefeed.telemetry.metrics import POLL_FAILURES, MetricsCollector


logger = logging.getLogger(__name__)

TickFunc = Callable[[], Awaitable[object]]


class PollingScheduler:
    """
    Periodic driver for an async tick function.

    Ticks never overlap: the next sleep starts only after the previous tick
    finished.
    """

    def __init__(
        self,
        tick: TickFunc,
        interval: float = DEFAULT_POLL_INTERVAL,
        metrics: MetricsCollector | None = None,
        name: str = "poller",
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            tick: Coroutine function run on every tick.
            interval: Seconds between the end of one tick and the next.
            metrics: Collector for failure counters.
            name: Label used in log messages.
        """
        self._tick = tick
        self._interval = interval
        self._metrics = metrics or MetricsCollector()
        self._name = name
        self._task: asyncio.Task[None] | None = None
        self._tick_count = 0

    async def start(self) -> None:
        """Run the first tick immediately, then schedule the rest."""
        if self._task is not None:
            return

        await self._run_tick()
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Scheduler {self._name} started ({self._interval:.0f}s interval)")

    async def stop(self) -> None:
        """Cancel the background task. Safe to call more than once."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Scheduler {self._name} stopped after {self._tick_count} ticks")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self._run_tick()

    async def _run_tick(self) -> None:
        self._tick_count += 1
        try:
            await self._tick()
        except Exception as e:
            self._metrics.increment_counter(POLL_FAILURES)
            logger.error(f"Scheduler {self._name} tick failed: {e}")

    @property
    def is_running(self) -> bool:
        return self._task is not None

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def interval(self) -> float:
        return self._interval
