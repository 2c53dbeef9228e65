"""
scheduler.py — RecurringJob, the timer behind the aggregator and broadcaster.

A RecurringJob owns its own state (task handle, stop event) instead of
closing over module globals. Semantics:

  start()  idempotent — a second call while running is a no-op and returns False
  stop()   cancels future runs; an in-flight run is allowed to finish
           (await it with wait=True) but no further run is scheduled
  run      one immediate run at start (unless run_immediately=False), then
           one run every `interval` seconds measured from the end of the
           previous run, so runs never overlap

Exceptions raised by the job are logged and never stop the schedule.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RecurringJob:
    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], Awaitable[object]],
        *,
        run_immediately: bool = True,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self._func = func
        self._run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return (
            self._task is not None
            and not self._task.done()
            and self._stop_event is not None
            and not self._stop_event.is_set()
        )

    def start(self) -> bool:
        """Schedule the job on the running event loop. Returns False if already running."""
        if self.running:
            logger.debug("%s already running — start ignored", self.name)
            return False
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(self._stop_event), name=f"job:{self.name}")
        logger.info("%s started (every %.1fs)", self.name, self.interval)
        return True

    async def stop(self, *, wait: bool = False) -> None:
        """Stop scheduling further runs; optionally wait for an in-flight run."""
        if self._stop_event is None or self._task is None:
            return
        self._stop_event.set()
        task = self._task
        if wait and not task.done():
            await asyncio.gather(task, return_exceptions=True)
        logger.info("%s stopped", self.name)

    async def _loop(self, stop_event: asyncio.Event) -> None:
        if not self._run_immediately and await self._sleep(stop_event):
            return
        while not stop_event.is_set():
            try:
                await self._func()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s run failed", self.name)
            self.runs += 1
            if await self._sleep(stop_event):
                return

    async def _sleep(self, stop_event: asyncio.Event) -> bool:
        """Wait one interval. Returns True when woken by stop()."""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            return True
        except asyncio.TimeoutError:
            return False
