"""
realtime.py — Read-only query surface over the latest Snapshot.

Routes:
  GET  /api/v1/realtime/data            — whole snapshot (404 until the first cycle)
  GET  /api/v1/realtime/weather-alerts  — ?severity=&limit=
  GET  /api/v1/realtime/earthquakes     — ?min_magnitude=&limit=  (strongest first)
  GET  /api/v1/realtime/social-alerts   — ?type=&verified=&min_urgency=&limit=  (most urgent first)
  GET  /api/v1/realtime/news-alerts     — ?category=&severity=&limit=  (newest first)
  GET  /api/v1/realtime/stats           — counters, severity breakdown, freshness
  POST /api/v1/realtime/refresh         — run one aggregation cycle now (rate limited)
  GET  /api/v1/realtime/health          — healthy / degraded by snapshot age

Every handler reads the store once and filters its own copy; the
aggregator may publish a new snapshot mid-request without affecting it.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from disaster_hub.core.config import settings
from disaster_hub.core.rate_limit import limiter
from disaster_hub.core.runtime import Runtime
from disaster_hub.models.alerts import NewsSeverity, Snapshot, WeatherSeverity
from disaster_hub.models.realtime import (
    Breakdown,
    ComponentStatus,
    EarthquakeList,
    NewsAlertList,
    RealtimeHealth,
    RefreshResponse,
    SnapshotResponse,
    SocialAlertList,
    StatsResponse,
    WeatherAlertList,
)
from disaster_hub.routes.health import database_status

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/realtime", tags=["realtime"])

_NO_DATA = "No real-time data available yet — the first aggregation cycle has not completed"


def get_runtime(request: Request) -> Runtime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Pipeline not started")
    return runtime


def _latest(request: Request) -> Snapshot:
    snapshot = get_runtime(request).store.get()
    if snapshot is None:
        raise HTTPException(status_code=404, detail=_NO_DATA)
    return snapshot


# ── Snapshot views ────────────────────────────────────────────────────────────

@router.get("/data", response_model=SnapshotResponse)
async def get_data(request: Request):
    snapshot = _latest(request)
    return SnapshotResponse(data=snapshot, message="Real-time data retrieved successfully")


@router.get("/weather-alerts", response_model=WeatherAlertList)
async def get_weather_alerts(
    request: Request,
    severity: Optional[WeatherSeverity] = Query(None),
    limit: int = Query(50, ge=1, le=500),
):
    snapshot = _latest(request)
    alerts = [a for a in snapshot.weather_alerts if severity is None or a.severity == severity]
    return WeatherAlertList(
        alerts=alerts[:limit],
        total=len(alerts),
        last_updated=snapshot.last_updated,
        filters={"severity": severity, "limit": limit},
    )


@router.get("/earthquakes", response_model=EarthquakeList)
async def get_earthquakes(
    request: Request,
    min_magnitude: float = Query(0.0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    snapshot = _latest(request)
    quakes = sorted(
        (e for e in snapshot.earthquakes if e.magnitude >= min_magnitude),
        key=lambda e: e.magnitude,
        reverse=True,
    )
    return EarthquakeList(
        earthquakes=quakes[:limit],
        total=len(quakes),
        last_updated=snapshot.last_updated,
        filters={"min_magnitude": min_magnitude, "limit": limit},
    )


@router.get("/social-alerts", response_model=SocialAlertList)
async def get_social_alerts(
    request: Request,
    type: Optional[str] = Query(None, pattern="^(need|offer|alert|general)$"),
    verified: Optional[bool] = Query(None),
    min_urgency: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    snapshot = _latest(request)
    alerts = [
        a for a in snapshot.social_media_alerts
        if (type is None or a.type == type)
        and (verified is None or a.verified == verified)
        and a.urgency_score >= min_urgency
    ]
    alerts.sort(key=lambda a: a.urgency_score, reverse=True)
    return SocialAlertList(
        alerts=alerts[:limit],
        total=len(alerts),
        last_updated=snapshot.last_updated,
        filters={"type": type, "verified": verified, "min_urgency": min_urgency, "limit": limit},
    )


@router.get("/news-alerts", response_model=NewsAlertList)
async def get_news_alerts(
    request: Request,
    category: Optional[str] = Query(None),
    severity: Optional[NewsSeverity] = Query(None),
    limit: int = Query(50, ge=1, le=500),
):
    snapshot = _latest(request)
    alerts = [
        a for a in snapshot.news_alerts
        if (category is None or a.category == category)
        and (severity is None or a.severity == severity)
    ]
    alerts.sort(key=lambda a: a.published_at, reverse=True)
    return NewsAlertList(
        alerts=alerts[:limit],
        total=len(alerts),
        last_updated=snapshot.last_updated,
        filters={"category": category, "severity": severity, "limit": limit},
    )


# ── Stats ─────────────────────────────────────────────────────────────────────

def severity_breakdown(snapshot: Snapshot) -> dict[str, dict[str, int]]:
    weather = {s: 0 for s in ("minor", "moderate", "severe", "extreme")}
    for alert in snapshot.weather_alerts:
        weather[alert.severity] += 1

    quakes = {"minor": 0, "light": 0, "moderate": 0, "strong": 0}
    for event in snapshot.earthquakes:
        if event.magnitude < 3:
            quakes["minor"] += 1
        elif event.magnitude < 4:
            quakes["light"] += 1
        elif event.magnitude < 5:
            quakes["moderate"] += 1
        else:
            quakes["strong"] += 1

    social = {"low": 0, "medium": 0, "high": 0}
    for alert in snapshot.social_media_alerts:
        if alert.urgency_score <= 2:
            social["low"] += 1
        elif alert.urgency_score <= 4:
            social["medium"] += 1
        else:
            social["high"] += 1

    news = {"low": 0, "medium": 0, "high": 0}
    for alert in snapshot.news_alerts:
        news[alert.severity] += 1

    return {"weather": weather, "earthquakes": quakes, "social_media": social, "news": news}


@router.get("/stats", response_model=StatsResponse)
async def get_stats(request: Request):
    snapshot = _latest(request)
    return StatsResponse(
        total_alerts=snapshot.total_alerts,
        high_priority_count=snapshot.high_priority_count,
        breakdown=Breakdown(
            weather_alerts=len(snapshot.weather_alerts),
            earthquakes=len(snapshot.earthquakes),
            social_media_alerts=len(snapshot.social_media_alerts),
            news_alerts=len(snapshot.news_alerts),
        ),
        severity_breakdown=severity_breakdown(snapshot),
        last_updated=snapshot.last_updated,
        data_freshness_ms=int(snapshot.age_seconds() * 1000),
    )


# ── Manual refresh ────────────────────────────────────────────────────────────

@router.post("/refresh", response_model=RefreshResponse)
@limiter.limit("6/minute")
async def refresh(request: Request):
    """Run one aggregation cycle immediately, outside the 30s schedule."""
    runtime = get_runtime(request)
    snapshot = await runtime.aggregator.refresh()
    if snapshot is None:
        return RefreshResponse(
            success=False,
            message="Aggregator stopped during refresh — result discarded",
            refreshed_at=datetime.now(tz=timezone.utc),
        )
    logger.info("Manual refresh published %d alerts", snapshot.total_alerts)
    return RefreshResponse(
        success=True,
        message="Real-time data refreshed successfully",
        data=snapshot,
        refreshed_at=datetime.now(tz=timezone.utc),
    )


# ── Pipeline health ───────────────────────────────────────────────────────────

@router.get("/health", response_model=RealtimeHealth)
async def realtime_health(request: Request):
    """
    Snapshot staleness is the primary signal: "degraded" when no snapshot
    exists yet or the latest one is older than STALE_AFTER_SECONDS.
    Always HTTP 200 so monitors can read the body.
    """
    runtime = get_runtime(request)
    snapshot = runtime.store.get()
    services = ComponentStatus(
        aggregator="running" if runtime.aggregator.running else "stopped",
        broadcaster="running" if runtime.broadcaster.running else "stopped",
        change_feed=runtime.change_feed_status,
        database=await database_status(),
        connections=runtime.hub.connection_count,
    )
    if snapshot is None:
        return RealtimeHealth(status="degraded", services=services)

    age = snapshot.age_seconds()
    return RealtimeHealth(
        status="healthy" if age <= settings.stale_after_seconds else "degraded",
        last_update=snapshot.last_updated,
        data_age_ms=int(age * 1000),
        total_alerts=snapshot.total_alerts,
        services=services,
    )
