"""
MongoDB connection for the pipeline, using Motor (async driver).

One DatabaseClient per process. main.py's lifespan opens it, then hands
get_db() to build_runtime(): the snapshot cache, the active-disaster query
and the change feed all share the one client.

The startup handshake uses `hello` rather than a bare ping so we also learn
the deployment topology. Change streams need a replica set (Atlas always is;
a local `mongod` only with --replSet). On a standalone server the runtime
keeps the Mongo cache but relays changes through the in-memory feed.

Local dev: the Docker Compose mongo container.
Production: MongoDB Atlas (same code, different URI).
"""

import logging
import re
from typing import Optional

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from disaster_hub.core.config import settings

logger = logging.getLogger(__name__)


class DatabaseClient:
    """Motor client, selected database and what the server told us at connect."""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None
    replica_set: Optional[str] = None


db_client = DatabaseClient()


async def connect_to_mongo() -> None:
    """
    Open the client and run the `hello` handshake.

    Never raises: an unreachable server leaves db_client empty and the
    runtime falls back to its in-memory cache and change feed.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    client = AsyncIOMotorClient(
        settings.mongo_uri,
        serverSelectionTimeoutMS=5000,
        tlsCAFile=certifi.where(),
    )
    try:
        hello = await client.admin.command("hello")
    except Exception as exc:
        logger.warning("MongoDB unavailable at startup: %s. Pipeline runs without persistence.", exc)
        client.close()
        db_client.client = db_client.db = db_client.replica_set = None
        return

    db_client.client = client
    db_client.db = client[settings.mongo_db_name]
    db_client.replica_set = hello.get("setName")
    if db_client.replica_set:
        logger.info("MongoDB connected (db: %s, replica set: %s)", settings.mongo_db_name, db_client.replica_set)
    else:
        logger.warning(
            "MongoDB connected (db: %s) but it is not a replica set; change streams are off",
            settings.mongo_db_name,
        )


async def close_mongo_connection() -> None:
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")
    db_client.client = db_client.db = db_client.replica_set = None


async def ping() -> bool:
    """True when the server answers right now. Used by the health routes."""
    if db_client.client is None:
        return False
    try:
        await db_client.client.admin.command("ping")
    except Exception as exc:
        logger.warning("DB ping failed: %s", exc)
        return False
    return True


def get_db() -> Optional[AsyncIOMotorDatabase]:
    """The selected database, or None in degraded mode."""
    return db_client.db


def change_streams_available() -> bool:
    return db_client.db is not None and bool(db_client.replica_set)


def _redact_uri(uri: str) -> str:
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
