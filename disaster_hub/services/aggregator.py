"""
aggregator.py — One aggregation cycle every 30 seconds.

A cycle:
  1. settle_all(adapters) — every adapter runs concurrently; a failed or
     timed-out adapter yields an empty list for its variant and a log line
  2. Snapshot.build() — merged collections + total / high-priority counters
  3. store.set() — publish to the in-memory store, unconditionally
  4. cache.set("realtime_data", ...) — best-effort persistence under its
     own timeout; a PersistenceFailure is logged and never undoes step 3

Stop semantics: stop() cancels future runs and lets an in-flight cycle run
to completion, but a cycle that was started before stop() does not publish.
Each cycle captures the aggregator's generation number when it starts;
stop() bumps the generation, so a late result is discarded.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from disaster_hub.core.config import settings
from disaster_hub.core.errors import PersistenceFailure
from disaster_hub.models.alerts import Snapshot
from disaster_hub.services.scheduler import RecurringJob
from disaster_hub.services.snapshot_store import SnapshotStore
from disaster_hub.sources.base import SourceAdapter, SourceOutcome, settle_all

logger = logging.getLogger(__name__)

SNAPSHOT_CACHE_KEY = "realtime_data"

_VARIANTS = ("weather_alerts", "earthquakes", "social_media_alerts", "news_alerts")


class Aggregator:
    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        store: SnapshotStore,
        cache=None,
        *,
        interval: Optional[float] = None,
        cache_timeout: Optional[float] = None,
        cache_ttl: Optional[int] = None,
    ) -> None:
        unknown = [a.variant for a in adapters if a.variant not in _VARIANTS]
        if unknown:
            raise ValueError(f"Adapters produce unknown variants: {unknown}")
        self.adapters = list(adapters)
        self.store = store
        self.cache = cache
        self.cache_timeout = cache_timeout if cache_timeout is not None else settings.cache_timeout_seconds
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.snapshot_cache_ttl_seconds
        self._job = RecurringJob(
            "aggregator",
            interval if interval is not None else settings.aggregation_interval_seconds,
            self.run_cycle,
        )
        self._generation = 0
        self.last_outcomes: list[SourceOutcome] = []

    @property
    def running(self) -> bool:
        return self._job.running

    @property
    def cycles(self) -> int:
        return self._job.runs

    def start(self) -> bool:
        """Run one cycle now and then every interval. No-op if already running."""
        return self._job.start()

    async def stop(self, *, wait: bool = False) -> None:
        self._generation += 1
        await self._job.stop(wait=wait)

    async def run_cycle(self) -> Optional[Snapshot]:
        """
        Run one cycle and return the published snapshot.

        Returns None when the aggregator was stopped while the adapters were
        in flight; the result is dropped and the store is left untouched.
        """
        generation = self._generation
        cycle_started = datetime.now(tz=timezone.utc)

        outcomes = await settle_all(self.adapters)

        if generation != self._generation:
            logger.info("Cycle %s finished after stop — result discarded", cycle_started.isoformat())
            return None

        collections: dict[str, tuple] = {variant: () for variant in _VARIANTS}
        for outcome in outcomes:
            if outcome.ok:
                collections[outcome.variant] = collections[outcome.variant] + outcome.alerts
            else:
                logger.warning(
                    "Source %s failed in cycle %s (%.2fs): %s",
                    outcome.source, cycle_started.isoformat(), outcome.elapsed, outcome.error,
                )
        self.last_outcomes = outcomes

        snapshot = Snapshot.build(last_updated=cycle_started, **collections)
        self.store.set(snapshot)
        logger.info(
            "Cycle %s published: %d alerts (%d high priority), %d/%d sources ok",
            cycle_started.isoformat(), snapshot.total_alerts, snapshot.high_priority_count,
            sum(1 for o in outcomes if o.ok), len(outcomes),
        )

        try:
            await self._persist(snapshot)
        except PersistenceFailure as exc:
            logger.warning("Cycle %s snapshot not persisted: %s", cycle_started.isoformat(), exc)

        return snapshot

    async def refresh(self) -> Optional[Snapshot]:
        """Run a cycle immediately, outside the schedule."""
        return await self.run_cycle()

    async def _persist(self, snapshot: Snapshot) -> None:
        if self.cache is None:
            return
        try:
            await asyncio.wait_for(
                self.cache.set(SNAPSHOT_CACHE_KEY, snapshot.model_dump(mode="json"), self.cache_ttl),
                timeout=self.cache_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise PersistenceFailure(f"cache write timed out after {self.cache_timeout:.1f}s") from exc
        except Exception as exc:
            raise PersistenceFailure(repr(exc)) from exc
