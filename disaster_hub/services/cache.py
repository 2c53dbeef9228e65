"""
cache.py — Key/value cache with TTL, used to persist the snapshot and the
per-topic derived payloads.

Two backends with the same async interface:

  MemoryCache  process-local dict; expiry is checked lazily on read and
               purge_expired() can be run periodically
  MongoCache   `cache` collection: {key, value, expires_at}; an expired row
               is a miss even before MongoDB's TTL monitor deletes it

Values must be JSON-compatible (dicts, lists, scalars). Callers wrap writes
in a timeout and treat failures as PersistenceFailure; neither backend
retries.
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class MemoryCache:
    def __init__(self) -> None:
        self._items: dict[str, tuple[Any, float]] = {}

    async def get(self, key: str) -> Optional[Any]:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if time.monotonic() > expires_at:
            self._items.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._items[key] = (value, time.monotonic() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    async def clear(self) -> None:
        self._items.clear()

    def purge_expired(self) -> int:
        now = time.monotonic()
        expired = [k for k, (_, exp) in self._items.items() if now > exp]
        for key in expired:
            del self._items[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._items)


class MongoCache:
    """
    Cache backed by a MongoDB collection.

    Call ensure_indexes() once at startup: a unique index on `key` and a TTL
    index on `expires_at` so MongoDB eventually deletes stale rows.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection: str = "cache") -> None:
        self._col = db[collection]

    async def ensure_indexes(self) -> None:
        await self._col.create_index("key", unique=True)
        await self._col.create_index("expires_at", expireAfterSeconds=0)

    async def get(self, key: str) -> Optional[Any]:
        doc = await self._col.find_one(
            {"key": key, "expires_at": {"$gt": datetime.now(tz=timezone.utc)}},
            {"value": 1},
        )
        return doc["value"] if doc else None

    async def set(self, key: str, value: Any, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        expires_at = datetime.now(tz=timezone.utc) + timedelta(seconds=ttl_seconds)
        await self._col.update_one(
            {"key": key},
            {"$set": {"value": value, "expires_at": expires_at}},
            upsert=True,
        )

    async def delete(self, key: str) -> None:
        await self._col.delete_one({"key": key})
