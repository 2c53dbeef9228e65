"""
Health check endpoint.

Liveness only: returns 200 whenever the process is up, plus MongoDB
connectivity so callers can tell "API down" from "API up but DB
unreachable". Pipeline freshness lives at /api/v1/realtime/health.
"""

from fastapi import APIRouter
from pydantic import BaseModel

from disaster_hub.core import database as db_module
from disaster_hub.core.config import settings

router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    database: str  # "connected" | "disconnected"
    environment: str


async def database_status() -> str:
    # module reference so tests can patch db_module.db_client
    return "connected" if await db_module.ping() else "disconnected"


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="ok",
        version="0.1.0",
        database=await database_status(),
        environment=settings.environment,
    )
