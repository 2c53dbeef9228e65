"""
Disaster Response Hub — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups, and owns
the pipeline lifecycle: connect MongoDB → build the runtime → start the
aggregator, broadcaster and change feed; stop them in reverse on shutdown.

Run locally:
  uvicorn disaster_hub.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from disaster_hub.core import database as db_module
from disaster_hub.core.config import settings
from disaster_hub.core.rate_limit import limiter
from disaster_hub.core.runtime import build_runtime
from disaster_hub.routes.health import router as health_router
from disaster_hub.routes.realtime import router as realtime_router
from disaster_hub.routes.stream import router as stream_router

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Disaster Response Hub (env: %s)", settings.environment)
    await db_module.connect_to_mongo()
    runtime = build_runtime(
        settings,
        db_module.get_db(),
        change_streams=db_module.change_streams_available(),
    )
    app.state.runtime = runtime
    await runtime.start()
    yield
    logger.info("Shutting down Disaster Response Hub")
    await runtime.stop()
    await db_module.close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Disaster Response Hub",
    description=(
        "Real-time aggregation of weather, seismic, social and news alerts, "
        "with topic-scoped fan-out over WebSocket."
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(realtime_router)
app.include_router(stream_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "Disaster Response Hub",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
        "websocket": "/ws",
    }
