"""
Scheduler loop: drives a Syncer on a fixed interval until stopped.

Passes never overlap: the next tick is only awaited once the previous pass
has finished, whatever its outcome. A failing pass is logged by the syncer's
observer and retried on the next tick; only a stop request ends the loop.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Callable, Optional, Sequence

from headsync.common.errors import ConfigError
from headsync.common.types import Height
from headsync.sync.syncer import PassOutcome, Syncer

logger = logging.getLogger(__name__)


class IntervalTicker:
    """Fixed-period ticker.

    The first tick fires immediately. Each tick schedules the next one
    `interval` seconds later; when a pass overruns, the next tick fires at
    once and the schedule restarts from there.
    """

    def __init__(self, interval: float, clock: Optional[Callable[[], float]] = None) -> None:
        if not math.isfinite(interval) or interval <= 0:
            raise ConfigError(f"interval must be a finite number > 0, got {interval}")
        self.interval = interval
        self._clock = clock or time.monotonic
        self._next: Optional[float] = None

    def delay(self) -> float:
        """Seconds until the next tick is due."""
        if self._next is None:
            return 0.0
        return max(0.0, self._next - self._clock())

    async def wait(self, stop_event: asyncio.Event) -> bool:
        """Wait for the next tick. Returns False if a stop was requested first."""
        delay = self.delay()
        if delay > 0:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
                return False
            except asyncio.TimeoutError:
                pass
        if stop_event.is_set():
            return False
        self._next = self._clock() + self.interval
        return True


class SchedulerLoop:
    """Runs one syncer pass per tick until stopped."""

    def __init__(
        self,
        syncer: Syncer,
        interval: float,
        start_height: Optional[Height] = None,
        ticker: Optional[IntervalTicker] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        if not math.isfinite(interval) or interval <= 0:
            raise ConfigError(f"{syncer.name}: interval must be a finite number > 0, got {interval}")
        self.syncer = syncer
        self.interval = interval
        self.ticker = ticker or IntervalTicker(interval)
        self.stop_event = stop_event or asyncio.Event()
        # Consumed by the first pass, whatever its outcome; the store cursor takes over
        self._start_override = start_height
        self.ticks = 0
        self.running = False
        self.last_outcome: Optional[PassOutcome] = None

    @property
    def name(self) -> str:
        return self.syncer.name

    @property
    def pending_start_height(self) -> Optional[Height]:
        return self._start_override

    def stop(self) -> None:
        """Request the loop to stop. A running pass stops before its next height."""
        self.stop_event.set()

    async def run(self, max_ticks: Optional[int] = None) -> None:
        """Tick until stopped, or until `max_ticks` passes have run."""
        if self.running:
            raise RuntimeError(f"{self.name}: scheduler loop already running")
        self.running = True
        logger.info("%s: sync loop started (interval %.1fs)", self.name, self.interval)
        try:
            while not self.stop_event.is_set():
                if max_ticks is not None and self.ticks >= max_ticks:
                    break
                if not await self.ticker.wait(self.stop_event):
                    break
                self.ticks += 1
                start, self._start_override = self._start_override, None
                self.last_outcome = await self.syncer.run_pass(start, self.stop_event)
        finally:
            self.running = False
            logger.info("%s: sync loop stopped after %d ticks", self.name, self.ticks)


async def run_syncers(loops: Sequence[SchedulerLoop], max_ticks: Optional[int] = None) -> None:
    """Run several independent scheduler loops concurrently."""
    results = await asyncio.gather(
        *(loop.run(max_ticks=max_ticks) for loop in loops),
        return_exceptions=True,
    )
    for loop, result in zip(loops, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            logger.error("%s: sync loop crashed: %r", loop.name, result, exc_info=result)
