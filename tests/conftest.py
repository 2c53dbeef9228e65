"""
pytest configuration and shared fixtures for the Disaster Response Hub tests.

Key concern: tests must not require a live MongoDB or network access.
We achieve this by:
  1. Patching connect_to_mongo / close_mongo_connection to no-ops so
     FastAPI's lifespan doesn't try to reach a real database.
  2. Setting db_client.client = None (disconnected) so health checks
     correctly report "disconnected" — a valid test-mode state.
  3. Ensuring SOURCES_MOCK_MODE=true so adapters return canned alerts.

httpx's ASGITransport does not run the lifespan, so route tests install a
degraded-mode runtime (in-memory cache and change feed) on app.state
directly. Its timers are never started; tests drive cycles by hand.
"""

import os
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SOURCES_MOCK_MODE", "true")


class RecordingConnection:
    """Hub connection that records every frame instead of writing to a socket."""

    def __init__(self, conn_id: str, fail: bool = False):
        from disaster_hub.services.hub import Connection

        self.frames: list[tuple[str, Any]] = []
        self.fail = fail
        self.closed = False
        self.connection = Connection(self._record, conn_id=conn_id, close=self._close)
        self.id = conn_id

    async def _record(self, event: str, payload: Any) -> None:
        if self.fail:
            raise ConnectionResetError("socket closed")
        self.frames.append((event, payload))

    async def _close(self) -> None:
        self.closed = True

    def events(self, name: str) -> list[Any]:
        return [payload for event, payload in self.frames if event == name]


@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test.

    - connect_to_mongo → no-op AsyncMock (startup doesn't attempt real connection)
    - close_mongo_connection → no-op AsyncMock
    - db_client.client / db_client.db / db_client.replica_set → None
    """
    with (
        patch("disaster_hub.core.database.connect_to_mongo", new_callable=AsyncMock),
        patch("disaster_hub.core.database.close_mongo_connection", new_callable=AsyncMock),
    ):
        import disaster_hub.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db
        original_replica_set = db_module.db_client.replica_set

        db_module.db_client.client = None
        db_module.db_client.db = None
        db_module.db_client.replica_set = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db
        db_module.db_client.replica_set = original_replica_set


@pytest.fixture()
def make_conn():
    """Factory: make_conn("c1", hub) registers a RecordingConnection on `hub`."""
    def _make(conn_id: str, hub=None, fail: bool = False) -> RecordingConnection:
        recorder = RecordingConnection(conn_id, fail=fail)
        if hub is not None:
            hub.connect(recorder.connection)
        return recorder

    return _make


@pytest.fixture()
def runtime(mock_db):  # noqa: ARG001 — mock_db must run first
    from disaster_hub.core.config import settings
    from disaster_hub.core.runtime import build_runtime

    return build_runtime(settings, None)


@pytest.fixture()
async def client(runtime):
    """
    HTTPX async test client wired to the FastAPI app, with `runtime`
    installed on app.state and the rate limiter reset.
    """
    from disaster_hub.core.rate_limit import limiter
    from disaster_hub.main import app

    limiter.reset()
    app.state.runtime = runtime
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.state.runtime = None
