"""
runtime.py — Composition root for the pipeline.

build_runtime() wires every component with explicit constructor injection
and returns a Runtime that owns their lifecycle. Nothing starts on import:
main.py's lifespan calls runtime.start() / runtime.stop().

With MongoDB reachable:
  MongoCache + MongoChangeFeed + MongoActiveDisasters
  (InMemoryChangeFeed instead when the server is not a replica set)
Degraded (no database):
  MemoryCache (purged every minute) + InMemoryChangeFeed + StaticActiveDisasters
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from motor.motor_asyncio import AsyncIOMotorDatabase

from disaster_hub.core.config import Settings
from disaster_hub.services.aggregator import Aggregator
from disaster_hub.services.broadcaster import (
    ActiveDisasterSource,
    MongoActiveDisasters,
    PeriodicBroadcaster,
    StaticActiveDisasters,
)
from disaster_hub.services.cache import MemoryCache, MongoCache
from disaster_hub.services.change_feed import InMemoryChangeFeed, MongoChangeFeed
from disaster_hub.services.change_relay import ChangeRelay
from disaster_hub.services.hub import ConnectionHub
from disaster_hub.services.official_updates import OfficialUpdatesProvider
from disaster_hub.services.scheduler import RecurringJob
from disaster_hub.services.snapshot_store import SnapshotStore
from disaster_hub.services.social_feed import SocialFeed
from disaster_hub.sources.news import NewsAdapter
from disaster_hub.sources.seismic import SeismicAdapter
from disaster_hub.sources.social import SocialAdapter
from disaster_hub.sources.weather import WeatherAdapter

logger = logging.getLogger(__name__)

CACHE_PURGE_INTERVAL_SECONDS = 60.0


@dataclass
class Runtime:
    store: SnapshotStore
    cache: Union[MemoryCache, MongoCache]
    aggregator: Aggregator
    hub: ConnectionHub
    broadcaster: PeriodicBroadcaster
    change_feed: Union[InMemoryChangeFeed, MongoChangeFeed]
    relay: ChangeRelay
    active_source: ActiveDisasterSource
    change_feed_enabled: bool = True
    _purge_job: Optional[RecurringJob] = field(default=None, repr=False)

    @property
    def change_feed_status(self) -> str:
        return self.change_feed.name if self.change_feed_enabled else "disabled"

    async def start(self) -> None:
        if isinstance(self.cache, MongoCache):
            try:
                await self.cache.ensure_indexes()
            except Exception as exc:
                logger.warning("Could not create cache indexes: %s", exc)
        else:
            self._purge_job = RecurringJob(
                "cache-purge", CACHE_PURGE_INTERVAL_SECONDS, self._purge, run_immediately=False
            )
            self._purge_job.start()

        if self.change_feed_enabled:
            await self.change_feed.start()
        self.aggregator.start()
        self.broadcaster.start()
        logger.info(
            "Runtime started (cache: %s, change feed: %s, active disasters: %s)",
            type(self.cache).__name__, self.change_feed_status, self.active_source.name,
        )

    async def stop(self) -> None:
        """
        Stop every component and wait for in-flight runs, so nothing touches
        the database after main.py closes the client.
        """
        await self.broadcaster.stop(wait=True)
        await self.aggregator.stop(wait=True)
        await self.change_feed.stop()
        if self._purge_job is not None:
            await self._purge_job.stop(wait=True)
        logger.info("Runtime stopped")

    async def _purge(self) -> None:
        purged = self.cache.purge_expired()
        if purged:
            logger.debug("Purged %d expired cache entries", purged)


def build_runtime(
    settings: Settings,
    db: Optional[AsyncIOMotorDatabase] = None,
    *,
    change_streams: bool = True,
) -> Runtime:
    """
    Wire the pipeline. `db` is None in degraded mode; `change_streams` is
    False when the server cannot watch collections (not a replica set).
    """
    cache = MongoCache(db) if db is not None else MemoryCache()

    adapter_opts = {"timeout": settings.adapter_timeout_seconds, "mock_mode": settings.sources_mock_mode}
    adapters = [
        WeatherAdapter(**adapter_opts),
        SeismicAdapter(min_magnitude=settings.min_earthquake_magnitude, **adapter_opts),
        SocialAdapter(**adapter_opts),
        NewsAdapter(**adapter_opts),
    ]
    store = SnapshotStore()
    aggregator = Aggregator(
        adapters,
        store,
        cache,
        interval=settings.aggregation_interval_seconds,
        cache_timeout=settings.cache_timeout_seconds,
        cache_ttl=settings.snapshot_cache_ttl_seconds,
    )

    hub = ConnectionHub(delivery_timeout=settings.delivery_timeout_seconds)

    active_source: ActiveDisasterSource = (
        MongoActiveDisasters(db) if db is not None else StaticActiveDisasters()
    )
    broadcaster = PeriodicBroadcaster(
        hub,
        active_source,
        SocialFeed(cache, ttl_seconds=settings.social_cache_ttl_seconds),
        OfficialUpdatesProvider(cache, ttl_seconds=settings.official_cache_ttl_seconds),
        interval=settings.broadcast_interval_seconds,
        limit=settings.active_disaster_limit,
        urgency_threshold=settings.priority_urgency_threshold,
    )

    change_feed = MongoChangeFeed(db) if db is not None and change_streams else InMemoryChangeFeed()
    relay = ChangeRelay(hub)
    relay.attach(change_feed)

    return Runtime(
        store=store,
        cache=cache,
        aggregator=aggregator,
        hub=hub,
        broadcaster=broadcaster,
        change_feed=change_feed,
        relay=relay,
        active_source=active_source,
        change_feed_enabled=settings.change_feed_enabled,
    )
