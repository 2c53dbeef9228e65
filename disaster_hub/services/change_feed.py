"""
change_feed.py — Storage change notifications for disasters / resources / reports.

Both feeds expose the same surface: subscribe(callback), start(), stop().
A callback receives one ChangeEvent at a time and is awaited; a failing
callback is logged and does not stop the feed.

  InMemoryChangeFeed  process-local; anything (tests, degraded mode, the API
                      itself) can publish() a ChangeEvent
  MongoChangeFeed     one Motor change stream per table (requires a replica
                      set). Update events carry the post-image
                      (full_document="updateLookup"); delete events carry the
                      pre-image when the collection has pre-images enabled,
                      otherwise only the raw documentKey, which the relay
                      cannot route
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import OperationFailure, PyMongoError

from disaster_hub.models.realtime import ChangeEvent

logger = logging.getLogger(__name__)

WATCHED_TABLES = ("disasters", "resources", "reports")

ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]

# "The $changeStream stage is only supported on replica sets"
_NOT_REPLICA_SET = 40573
# "BSON field ... is an unknown field"
_UNKNOWN_FIELD = 40415


class _Feed:
    name = "feed"

    def __init__(self) -> None:
        self._callbacks: list[ChangeCallback] = []

    def subscribe(self, callback: ChangeCallback) -> None:
        self._callbacks.append(callback)

    async def _dispatch(self, event: ChangeEvent) -> None:
        for callback in list(self._callbacks):
            try:
                await callback(event)
            except Exception:
                logger.exception("Change callback failed for %s %s", event.operation, event.table)

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class InMemoryChangeFeed(_Feed):
    name = "memory"

    async def publish(self, event: ChangeEvent) -> None:
        await self._dispatch(event)


def _row(document: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if document is None:
        return None
    row = dict(document)
    if "id" not in row and "_id" in row:
        row["id"] = str(row["_id"])
    return row


def to_change_event(table: str, change: dict[str, Any]) -> Optional[ChangeEvent]:
    """Translate a raw MongoDB change document; None for ops we do not relay."""
    op = change.get("operationType")
    if op == "insert":
        return ChangeEvent(operation="insert", table=table, new_row=_row(change.get("fullDocument")))
    if op in ("update", "replace"):
        return ChangeEvent(
            operation="update",
            table=table,
            new_row=_row(change.get("fullDocument")),
            old_row=_row(change.get("fullDocumentBeforeChange")),
        )
    if op == "delete":
        old = change.get("fullDocumentBeforeChange")
        if old is not None:
            return ChangeEvent(operation="delete", table=table, old_row=_row(old))
        # Without a pre-image only the storage key is known; it is not the
        # row's id, so the relay has nothing to resolve a topic from.
        key = change.get("documentKey") or {}
        return ChangeEvent(operation="delete", table=table, old_row=dict(key) or None)
    return None


class MongoChangeFeed(_Feed):
    name = "mongodb"

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        tables: Sequence[str] = WATCHED_TABLES,
        *,
        retry_delay: float = 5.0,
    ) -> None:
        super().__init__()
        self._db = db
        self._tables = tuple(tables)
        self._retry_delay = retry_delay
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._watch(table), name=f"watch:{table}") for table in self._tables
        ]
        logger.info("Watching change streams on %s", ", ".join(self._tables))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def _watch(self, table: str) -> None:
        pre_images = True
        while True:
            options = {"full_document": "updateLookup"}
            if pre_images:
                options["full_document_before_change"] = "whenAvailable"
            try:
                async with self._db[table].watch(**options) as stream:
                    async for change in stream:
                        event = to_change_event(table, change)
                        if event is not None:
                            await self._dispatch(event)
            except OperationFailure as exc:
                if exc.code == _NOT_REPLICA_SET:
                    logger.error("Change streams unavailable on %s (not a replica set), giving up", table)
                    return
                if pre_images and _pre_images_unsupported(exc):
                    logger.warning("Server rejects pre-images on %s, watching without them: %s", table, exc)
                    pre_images = False
                    continue
                logger.warning("Change stream on %s failed: %s, retrying in %.0fs", table, exc, self._retry_delay)
            except PyMongoError as exc:
                logger.warning("Change stream on %s failed: %s, retrying in %.0fs", table, exc, self._retry_delay)
            await asyncio.sleep(self._retry_delay)


def _pre_images_unsupported(exc: OperationFailure) -> bool:
    """MongoDB < 6.0 rejects fullDocumentBeforeChange as an unknown field."""
    return exc.code == _UNKNOWN_FIELD or "fullDocumentBeforeChange" in str(exc)
