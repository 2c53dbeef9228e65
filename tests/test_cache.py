"""
test_cache.py — MemoryCache TTL behaviour and the MongoCache query shape.

MongoCache runs against an AsyncMock collection; no MongoDB needed.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from disaster_hub.services.cache import MemoryCache, MongoCache


class TestMemoryCache:
    async def test_set_then_get(self):
        cache = MemoryCache()
        await cache.set("k", {"a": 1}, ttl_seconds=60)
        assert await cache.get("k") == {"a": 1}

    async def test_miss_returns_none(self):
        assert await MemoryCache().get("nope") is None

    async def test_entry_unreadable_after_expiry(self):
        cache = MemoryCache()
        await cache.set("k", "v", ttl_seconds=0.01)
        await asyncio.sleep(0.03)

        assert await cache.get("k") is None
        assert len(cache) == 0  # lazily evicted on read

    async def test_overwrite_resets_value(self):
        cache = MemoryCache()
        await cache.set("k", 1)
        await cache.set("k", 2)
        assert await cache.get("k") == 2

    async def test_purge_expired(self):
        cache = MemoryCache()
        await cache.set("old", 1, ttl_seconds=0.01)
        await cache.set("fresh", 2, ttl_seconds=60)
        await asyncio.sleep(0.03)

        assert cache.purge_expired() == 1
        assert len(cache) == 1
        assert await cache.get("fresh") == 2

    async def test_delete_and_clear(self):
        cache = MemoryCache()
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.delete("a")
        assert await cache.get("a") is None
        await cache.clear()
        assert len(cache) == 0


def _fake_db(collection):
    db = MagicMock()
    db.__getitem__.return_value = collection
    return db


class TestMongoCache:
    async def test_get_filters_out_expired_rows(self):
        col = MagicMock()
        col.find_one = AsyncMock(return_value={"value": {"x": 1}})
        cache = MongoCache(_fake_db(col))

        assert await cache.get("realtime_data") == {"x": 1}
        query = col.find_one.call_args.args[0]
        assert query["key"] == "realtime_data"
        assert "$gt" in query["expires_at"]

    async def test_get_miss(self):
        col = MagicMock()
        col.find_one = AsyncMock(return_value=None)
        assert await MongoCache(_fake_db(col)).get("k") is None

    async def test_set_upserts_with_expiry(self):
        col = MagicMock()
        col.update_one = AsyncMock()
        await MongoCache(_fake_db(col)).set("k", [1, 2], ttl_seconds=30)

        filter_, update = col.update_one.call_args.args
        assert filter_ == {"key": "k"}
        assert update["$set"]["value"] == [1, 2]
        assert "expires_at" in update["$set"]
        assert col.update_one.call_args.kwargs["upsert"] is True

    async def test_ensure_indexes(self):
        col = MagicMock()
        col.create_index = AsyncMock()
        await MongoCache(_fake_db(col)).ensure_indexes()

        assert col.create_index.await_count == 2
