"""
test_hub.py — Connection Hub addressing, membership and delivery isolation.

Connections are RecordingConnection objects (see conftest) that capture
frames in memory instead of writing to a socket.
"""

import asyncio
import json

from disaster_hub.services.hub import Connection, ConnectionHub, encode_frame


# ── Addressing ────────────────────────────────────────────────────────────────

class TestAddressing:
    async def test_topic_publish_reaches_only_members(self, make_conn):
        hub = ConnectionHub()
        conn1 = make_conn("conn1", hub)
        conn2 = make_conn("conn2", hub)
        conn3 = make_conn("conn3", hub)
        hub.join("conn1", "disaster:42")
        hub.join("conn3", "disaster:7")

        delivered = await hub.publish_to_topic("disaster:42", "resource_created", {"id": "r1"})

        assert delivered == 1
        assert conn1.frames == [("resource_created", {"id": "r1"})]
        assert conn2.frames == []
        assert conn3.frames == []

    async def test_broadcast_reaches_everyone(self, make_conn):
        hub = ConnectionHub()
        conns = [make_conn(f"c{i}", hub) for i in range(3)]
        hub.join("c0", "disaster:1")

        delivered = await hub.broadcast("priority_alerts", {"count": 1})

        assert delivered == 3
        for conn in conns:
            assert conn.events("priority_alerts") == [{"count": 1}]

    async def test_publish_to_empty_topic_is_a_no_op(self, make_conn):
        hub = ConnectionHub()
        conn = make_conn("c1", hub)
        assert await hub.publish_to_topic("disaster:none", "x", {}) == 0
        assert conn.frames == []

    async def test_leave_stops_topic_delivery(self, make_conn):
        hub = ConnectionHub()
        conn = make_conn("c1", hub)
        hub.join("c1", "disaster:42")
        assert hub.leave("c1", "disaster:42") is True

        await hub.publish_to_topic("disaster:42", "report_created", {"id": "p"})
        assert conn.frames == []
        assert hub.subscribers("disaster:42") == set()

    async def test_double_join_delivers_once(self, make_conn):
        hub = ConnectionHub()
        conn = make_conn("c1", hub)
        hub.join("c1", "disaster:42")
        hub.join("c1", "disaster:42")

        await hub.publish_to_topic("disaster:42", "disaster_updated", {"id": "42"})
        assert len(conn.frames) == 1


# ── Membership ────────────────────────────────────────────────────────────────

class TestMembership:
    def test_new_connection_has_no_topics(self, make_conn):
        hub = ConnectionHub()
        make_conn("c1", hub)
        assert hub.topics_of("c1") == set()
        assert hub.connection_count == 1

    def test_join_unknown_connection_is_rejected(self):
        hub = ConnectionHub()
        assert hub.join("ghost", "disaster:1") is False
        assert hub.subscribers("disaster:1") == set()

    def test_leave_unjoined_topic(self, make_conn):
        hub = ConnectionHub()
        make_conn("c1", hub)
        assert hub.leave("c1", "disaster:1") is False

    def test_disconnect_clears_memberships(self, make_conn):
        hub = ConnectionHub()
        make_conn("c1", hub)
        hub.join("c1", "disaster:1")
        hub.join("c1", "disaster:2")

        hub.disconnect("c1")

        assert hub.connection_count == 0
        assert hub.subscribers("disaster:1") == set()
        assert hub.topics_of("c1") == set()
        hub.disconnect("c1")  # second disconnect is harmless


# ── Failure isolation ─────────────────────────────────────────────────────────

class TestIsolation:
    async def test_failed_send_does_not_abort_others(self, make_conn):
        hub = ConnectionHub()
        good = make_conn("good", hub)
        make_conn("bad", hub, fail=True)
        hub.join("good", "disaster:42")
        hub.join("bad", "disaster:42")

        delivered = await hub.publish_to_topic("disaster:42", "disaster_updated", {"id": "42"})

        assert delivered == 1
        assert good.events("disaster_updated") == [{"id": "42"}]
        # the dead connection is dropped
        assert hub.subscribers("disaster:42") == {"good"}

    async def test_dropped_connection_is_closed(self, make_conn):
        hub = ConnectionHub()
        good = make_conn("good", hub)
        bad = make_conn("bad", hub, fail=True)

        await hub.broadcast("tick", {})

        assert bad.closed is True
        assert good.closed is False
        assert hub.join("bad", "disaster:1") is False

    async def test_slow_send_times_out(self):
        hub = ConnectionHub(delivery_timeout=0.05)
        received = []

        async def hang(event, payload):
            await asyncio.sleep(5)

        async def record(event, payload):
            received.append(event)

        closed = []

        async def close_slow():
            closed.append("slow")

        hub.connect(Connection(hang, conn_id="slow", close=close_slow))
        hub.connect(Connection(record, conn_id="fast"))

        delivered = await asyncio.wait_for(hub.broadcast("tick", {}), timeout=1)

        assert delivered == 1
        assert received == ["tick"]
        assert hub.connection_count == 1
        assert closed == ["slow"]
        assert await hub.publish_to_topic("disaster:1", "x", {}) == 0

    async def test_disconnect_mid_publish_is_silent(self, make_conn):
        hub = ConnectionHub()
        survivor = make_conn("survivor", hub)

        async def leave_then_fail(event, payload):
            hub.disconnect("leaving")
            raise ConnectionResetError("gone")

        hub.connect(Connection(leave_then_fail, conn_id="leaving"))

        assert await hub.broadcast("tick", {"n": 1}) == 1
        assert await hub.broadcast("tick", {"n": 2}) == 1
        assert survivor.events("tick") == [{"n": 1}, {"n": 2}]

    async def test_join_during_broadcast_does_not_crash(self, make_conn):
        hub = ConnectionHub()
        make_conn("late", hub)

        async def join_other(event, payload):
            hub.join("late", "disaster:1")

        hub.connect(Connection(join_other, conn_id="joiner"))
        hub.join("joiner", "disaster:1")

        assert await hub.publish_to_topic("disaster:1", "x", {}) == 1
        assert await hub.publish_to_topic("disaster:1", "x", {}) == 2


def test_encode_frame_envelope():
    frame = json.loads(encode_frame("joined", {"topic": "disaster:1"}))
    assert frame == {"event": "joined", "data": {"topic": "disaster:1"}}
