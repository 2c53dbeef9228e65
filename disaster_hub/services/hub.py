"""
hub.py — Connection Hub: live connections, topic memberships, delivery.

Addressing is explicit at every call site:

  broadcast(event, payload)                 every live connection
  publish_to_topic(topic, event, payload)   only connections that joined `topic`

Topics are "disaster:<id>" room names. A connection starts with no
subscriptions; disconnect() removes the connection and all its memberships.

Delivery isolation: each send runs under its own timeout inside one
asyncio.gather, so a slow or dead connection never blocks or aborts delivery
to the others. A failed send is logged as a DeliveryFailure and that
connection is dropped: removed from the hub and its transport closed, so
the client sees the close and can reconnect. Target sets are copied before
sending, so a join or leave arriving mid-publish cannot corrupt iteration;
a connection that disconnected after the copy is skipped silently.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional

from bson import ObjectId
from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from disaster_hub.core.config import settings
from disaster_hub.core.errors import DeliveryFailure

logger = logging.getLogger(__name__)

SendFunc = Callable[[str, Any], Awaitable[None]]
CloseFunc = Callable[[], Awaitable[None]]

# "internal error": the server gave up on this client
CLOSE_DROPPED = 1011


def encode_frame(event: str, payload: Any) -> str:
    """Server → client frame: {"event": <name>, "data": <payload>}."""
    return json.dumps(jsonable_encoder({"event": event, "data": payload}, custom_encoder={ObjectId: str}))


class Connection:
    """
    One live client channel.

    `send` is the transport callable; sends on one connection are serialised
    with a lock so frames from the hub's two timers never interleave.
    `close` shuts the transport down when the hub drops the connection.
    """

    def __init__(
        self,
        send: SendFunc,
        conn_id: Optional[str] = None,
        close: Optional[CloseFunc] = None,
    ) -> None:
        self.id = conn_id or uuid.uuid4().hex
        self._send = send
        self._close = close
        self._lock = asyncio.Lock()

    async def send(self, event: str, payload: Any) -> None:
        async with self._lock:
            await self._send(event, payload)

    async def close(self) -> None:
        if self._close is not None:
            await self._close()


class WebSocketConnection(Connection):
    def __init__(self, websocket: WebSocket, conn_id: Optional[str] = None) -> None:
        super().__init__(self._send_frame, conn_id, close=self._close_socket)
        self.websocket = websocket

    async def _send_frame(self, event: str, payload: Any) -> None:
        await self.websocket.send_text(encode_frame(event, payload))

    async def _close_socket(self) -> None:
        await self.websocket.close(code=CLOSE_DROPPED)


class ConnectionHub:
    def __init__(self, delivery_timeout: Optional[float] = None) -> None:
        self.delivery_timeout = (
            delivery_timeout if delivery_timeout is not None else settings.delivery_timeout_seconds
        )
        self._connections: dict[str, Connection] = {}
        self._topics: dict[str, set[str]] = {}
        self._memberships: dict[str, set[str]] = {}

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def connect(self, connection: Connection) -> Connection:
        self._connections[connection.id] = connection
        self._memberships[connection.id] = set()
        logger.info("Connection %s opened (%d live)", connection.id, len(self._connections))
        return connection

    def disconnect(self, conn_id: str) -> None:
        if self._connections.pop(conn_id, None) is None:
            return
        for topic in self._memberships.pop(conn_id, set()):
            members = self._topics.get(topic)
            if members is not None:
                members.discard(conn_id)
                if not members:
                    del self._topics[topic]
        logger.info("Connection %s closed (%d live)", conn_id, len(self._connections))

    # ── Membership ────────────────────────────────────────────────────────────

    def join(self, conn_id: str, topic: str) -> bool:
        if conn_id not in self._connections:
            return False
        self._topics.setdefault(topic, set()).add(conn_id)
        self._memberships[conn_id].add(topic)
        logger.debug("Connection %s joined %s", conn_id, topic)
        return True

    def leave(self, conn_id: str, topic: str) -> bool:
        members = self._topics.get(topic)
        if members is None or conn_id not in members:
            return False
        members.discard(conn_id)
        if not members:
            del self._topics[topic]
        self._memberships.get(conn_id, set()).discard(topic)
        logger.debug("Connection %s left %s", conn_id, topic)
        return True

    def topics_of(self, conn_id: str) -> set[str]:
        return set(self._memberships.get(conn_id, ()))

    def subscribers(self, topic: str) -> set[str]:
        return set(self._topics.get(topic, ()))

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # ── Delivery ──────────────────────────────────────────────────────────────

    async def broadcast(self, event: str, payload: Any) -> int:
        """Send to every live connection. Returns the number of successful sends."""
        return await self._deliver(list(self._connections), event, payload)

    async def publish_to_topic(self, topic: str, event: str, payload: Any) -> int:
        """Send only to connections subscribed to `topic`."""
        return await self._deliver(list(self._topics.get(topic, ())), event, payload)

    async def _deliver(self, conn_ids: list[str], event: str, payload: Any) -> int:
        if not conn_ids:
            return 0
        results = await asyncio.gather(
            *(self._send_one(conn_id, event, payload) for conn_id in conn_ids),
            return_exceptions=True,
        )
        delivered = 0
        for result in results:
            if result is True:
                delivered += 1
            elif isinstance(result, DeliveryFailure):
                logger.warning("Dropping %s after failed %s: %s", result.conn_id, event, result)
                await self._drop(result.conn_id)
            elif isinstance(result, BaseException):
                logger.error("Unexpected delivery error for %s: %r", event, result)
        return delivered

    async def _drop(self, conn_id: str) -> None:
        """Forget the connection and close its transport so the client sees it."""
        connection = self._connections.get(conn_id)
        self.disconnect(conn_id)
        if connection is None:
            return
        try:
            await asyncio.wait_for(connection.close(), timeout=self.delivery_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.debug("Closing dropped connection %s failed: %r", conn_id, exc)

    async def _send_one(self, conn_id: str, event: str, payload: Any) -> bool:
        connection = self._connections.get(conn_id)
        if connection is None:
            return False
        try:
            await asyncio.wait_for(connection.send(event, payload), timeout=self.delivery_timeout)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError as exc:
            raise DeliveryFailure(conn_id, f"send timed out after {self.delivery_timeout:.1f}s") from exc
        except Exception as exc:
            if conn_id not in self._connections:
                # disconnected while the send was in flight
                return False
            raise DeliveryFailure(conn_id, repr(exc)) from exc
        return True
