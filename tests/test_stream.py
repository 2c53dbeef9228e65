"""
test_stream.py — WebSocket /ws protocol and hub integration.

Uses Starlette's TestClient (not entered as a context manager, so the
lifespan never runs). Server-side pushes are triggered through the
session's portal so they execute on the app's event loop.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect


@pytest.fixture()
def ws_client(runtime):
    from disaster_hub.main import app

    app.state.runtime = runtime
    yield TestClient(app)
    app.state.runtime = None


class TestProtocol:
    def test_ping_pong(self, ws_client):
        with ws_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "ping"})
            frame = ws.receive_json()
        assert frame["event"] == "pong"
        assert "timestamp" in frame["data"]

    def test_join_by_topic(self, ws_client, runtime):
        with ws_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "topic": "disaster:42"})
            assert ws.receive_json() == {"event": "joined", "data": {"topic": "disaster:42"}}
            assert runtime.hub.subscribers("disaster:42")

    def test_join_by_disaster_id_then_leave(self, ws_client, runtime):
        with ws_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "disaster_id": "7"})
            assert ws.receive_json()["data"] == {"topic": "disaster:7"}
            ws.send_json({"action": "leave", "disaster_id": "7"})
            assert ws.receive_json() == {"event": "left", "data": {"topic": "disaster:7"}}
            assert runtime.hub.subscribers("disaster:7") == set()

    def test_malformed_frame_gets_error_not_disconnect(self, ws_client):
        with ws_client.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            assert ws.receive_json()["event"] == "error"
            ws.send_json({"action": "dance"})
            assert ws.receive_json()["event"] == "error"
            ws.send_json({"action": "join"})
            assert ws.receive_json()["event"] == "error"
            ws.send_json({"action": "ping"})
            assert ws.receive_json()["event"] == "pong"

    def test_disconnect_removes_connection(self, ws_client, runtime):
        with ws_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "topic": "disaster:1"})
            ws.receive_json()
            assert runtime.hub.connection_count == 1
        assert runtime.hub.connection_count == 0
        assert runtime.hub.subscribers("disaster:1") == set()

    def test_join_after_hub_dropped_connection_closes_socket(self, ws_client, runtime):
        with ws_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "topic": "disaster:1"})
            ws.receive_json()
            (conn_id,) = runtime.hub.subscribers("disaster:1")
            ws.portal.call(runtime.hub.disconnect, conn_id)

            ws.send_json({"action": "join", "topic": "disaster:2"})
            frame = ws.receive_json()
            assert frame["event"] == "error"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert exc_info.value.code == 1011
        assert runtime.hub.subscribers("disaster:2") == set()

    def test_closed_when_runtime_missing(self):
        from disaster_hub.main import app

        app.state.runtime = None
        with pytest.raises(WebSocketDisconnect):
            with TestClient(app).websocket_connect("/ws"):
                pass


class TestDelivery:
    def test_topic_event_reaches_joined_socket(self, ws_client, runtime):
        with ws_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "topic": "disaster:42"})
            ws.receive_json()

            delivered = ws.portal.call(
                runtime.hub.publish_to_topic, "disaster:42", "resource_created", {"id": "r1"}
            )

            assert delivered == 1
            assert ws.receive_json() == {"event": "resource_created", "data": {"id": "r1"}}

    def test_relayed_change_reaches_joined_socket(self, ws_client, runtime):
        from disaster_hub.models.realtime import ChangeEvent

        event = ChangeEvent(operation="update", table="disasters", new_row={"id": "42", "status": "resolved"})
        with ws_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "disaster_id": "42"})
            ws.receive_json()

            ws.portal.call(runtime.change_feed.publish, event)

            assert ws.receive_json() == {
                "event": "disaster_updated",
                "data": {"id": "42", "status": "resolved"},
            }

    def test_failed_delivery_closes_socket(self, ws_client, runtime):
        from disaster_hub.services.hub import Connection

        async def broken(event, payload):
            raise ConnectionResetError("peer gone")

        with ws_client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "topic": "disaster:42"})
            ws.receive_json()
            (conn_id,) = runtime.hub.subscribers("disaster:42")
            # make the next send on this connection fail, keep its real close
            runtime.hub._connections[conn_id]._send = broken

            delivered = ws.portal.call(runtime.hub.publish_to_topic, "disaster:42", "resource_created", {})

            assert delivered == 0
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert exc_info.value.code == 1011
        assert runtime.hub.connection_count == 0
