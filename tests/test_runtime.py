"""
test_runtime.py — Composition root wiring, shutdown ordering, and the
MongoDB connect handshake that decides whether change streams are used.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

from disaster_hub.core import database as db_module
from disaster_hub.core.config import settings
from disaster_hub.core.database import close_mongo_connection, connect_to_mongo
from disaster_hub.core.runtime import build_runtime
from disaster_hub.services.broadcaster import MongoActiveDisasters, StaticActiveDisasters
from disaster_hub.services.cache import MemoryCache, MongoCache
from disaster_hub.services.change_feed import InMemoryChangeFeed, MongoChangeFeed


class SlowActiveSource:
    name = "slow"

    def __init__(self):
        self.entered = asyncio.Event()
        self.finished = False

    async def list_active(self, limit):
        self.entered.set()
        await asyncio.sleep(0.1)
        self.finished = True
        return []


def _fake_client(hello=None, error=None):
    client = MagicMock()
    client.admin.command = AsyncMock(return_value=hello, side_effect=error)
    return client


# ── Wiring ────────────────────────────────────────────────────────────────────

class TestBuildRuntime:
    def test_degraded_mode_uses_memory_components(self):
        runtime = build_runtime(settings, None)

        assert isinstance(runtime.cache, MemoryCache)
        assert isinstance(runtime.change_feed, InMemoryChangeFeed)
        assert isinstance(runtime.active_source, StaticActiveDisasters)

    def test_replica_set_gets_mongo_change_feed(self):
        runtime = build_runtime(settings, MagicMock())

        assert isinstance(runtime.cache, MongoCache)
        assert isinstance(runtime.change_feed, MongoChangeFeed)
        assert isinstance(runtime.active_source, MongoActiveDisasters)
        assert runtime.change_feed_status == "mongodb"

    def test_standalone_server_keeps_mongo_cache_but_memory_feed(self):
        runtime = build_runtime(settings, MagicMock(), change_streams=False)

        assert isinstance(runtime.cache, MongoCache)
        assert isinstance(runtime.change_feed, InMemoryChangeFeed)


# ── Lifecycle ─────────────────────────────────────────────────────────────────

class TestLifecycle:
    async def test_stop_waits_for_in_flight_broadcast(self, runtime):
        source = SlowActiveSource()
        runtime.broadcaster.active_source = source

        await runtime.start()
        await asyncio.wait_for(source.entered.wait(), timeout=1)
        await runtime.stop()

        assert source.finished is True
        assert runtime.broadcaster.running is False
        assert runtime.aggregator.running is False


# ── MongoDB handshake ─────────────────────────────────────────────────────────

class TestConnect:
    async def test_replica_set_enables_change_streams(self):
        client = _fake_client(hello={"isWritablePrimary": True, "setName": "rs0"})

        with patch("disaster_hub.core.database.AsyncIOMotorClient", return_value=client):
            await connect_to_mongo()

        assert db_module.db_client.client is client
        assert db_module.get_db() is not None
        assert db_module.change_streams_available() is True

    async def test_standalone_server_disables_change_streams(self):
        client = _fake_client(hello={"isWritablePrimary": True})

        with patch("disaster_hub.core.database.AsyncIOMotorClient", return_value=client):
            await connect_to_mongo()

        assert db_module.get_db() is not None
        assert db_module.change_streams_available() is False

    async def test_unreachable_server_leaves_degraded_mode(self):
        client = _fake_client(error=RuntimeError("no servers found"))

        with patch("disaster_hub.core.database.AsyncIOMotorClient", return_value=client):
            await connect_to_mongo()

        assert db_module.get_db() is None
        assert db_module.change_streams_available() is False
        client.close.assert_called_once()

    async def test_close_resets_state(self):
        client = _fake_client(hello={"setName": "rs0"})

        with patch("disaster_hub.core.database.AsyncIOMotorClient", return_value=client):
            await connect_to_mongo()
        await close_mongo_connection()

        client.close.assert_called_once()
        assert db_module.get_db() is None
