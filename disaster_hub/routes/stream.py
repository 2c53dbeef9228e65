"""
stream.py — WebSocket delivery transport.

  WS /ws

Server → client frames (JSON text):
  {"event": "disaster_updated", "data": {...}}

Client → server control frames:
  {"action": "join",  "topic": "disaster:42"}    → {"event": "joined", "data": {"topic": ...}}
  {"action": "leave", "disaster_id": "42"}       → {"event": "left",   "data": {"topic": ...}}
  {"action": "ping"}                             → {"event": "pong",   "data": {"timestamp": ...}}

A malformed frame gets an "error" frame back; the socket stays open.
On disconnect the hub drops the connection and all its memberships. A join
on a connection the hub has already dropped gets an "error" frame and the
socket is closed with 1011.

  # Manual test (install wscat: npm i -g wscat):
  wscat -c ws://localhost:8000/ws
  > {"action": "join", "disaster_id": "nyc-flood"}
"""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from disaster_hub.models.realtime import ClientCommand
from disaster_hub.services.hub import ConnectionHub, WebSocketConnection

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/ws")
async def stream(websocket: WebSocket):
    runtime = getattr(websocket.app.state, "runtime", None)
    if runtime is None:
        await websocket.close(code=1013)  # try again later
        return

    hub: ConnectionHub = runtime.hub
    await websocket.accept()
    connection = hub.connect(WebSocketConnection(websocket))
    try:
        while True:
            raw = await websocket.receive_text()
            if not await _handle_frame(hub, connection, raw):
                break
    except WebSocketDisconnect:
        # Client closed the tab or navigated away — this is normal, not an error
        logger.debug("WebSocket %s disconnected", connection.id)
    except Exception as exc:
        logger.warning("WebSocket %s error: %s", connection.id, exc)
    finally:
        hub.disconnect(connection.id)


async def _handle_frame(hub: ConnectionHub, connection: WebSocketConnection, raw: str) -> bool:
    """Answer one control frame. Returns False once the socket has been closed."""
    try:
        command = ClientCommand.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as exc:
        await connection.send("error", {"message": "Malformed frame", "detail": str(exc)[:200]})
        return True

    if command.action == "ping":
        await connection.send("pong", {"timestamp": datetime.now(tz=timezone.utc)})
        return True

    topic = command.resolved_topic()
    if topic is None:
        await connection.send("error", {"message": f"'{command.action}' needs a topic or disaster_id"})
        return True

    if command.action == "join":
        if not hub.join(connection.id, topic):
            # the hub already dropped this connection after a failed delivery
            await connection.send("error", {"message": "Connection is no longer registered; reconnect"})
            await connection.close()
            return False
        await connection.send("joined", {"topic": topic})
    else:
        hub.leave(connection.id, topic)
        await connection.send("left", {"topic": topic})
    return True
