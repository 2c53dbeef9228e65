"""
realtime.py — Pydantic schemas for the real-time query surface, the change
feed and the WebSocket protocol.

WeatherAlertList / EarthquakeList / SocialAlertList / NewsAlertList — filtered views
StatsResponse        — counters + severity breakdown + freshness
RealtimeHealth       — snapshot staleness and component status
ChangeEvent          — one row change from the storage change feed
ActiveDisaster       — an entry of the active-topic working set
ClientCommand        — a control frame sent by a WebSocket client
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from disaster_hub.models.alerts import NewsAlert, SeismicEvent, Snapshot, SocialAlert, WeatherAlert


# ── Query surface ─────────────────────────────────────────────────────────────

class SnapshotResponse(BaseModel):
    """Response body for GET /api/v1/realtime/data."""
    success: bool = True
    data: Snapshot
    message: str


class WeatherAlertList(BaseModel):
    alerts: list[WeatherAlert]
    total: int
    last_updated: datetime
    filters: dict[str, Any] = Field(default_factory=dict)


class EarthquakeList(BaseModel):
    earthquakes: list[SeismicEvent]
    total: int
    last_updated: datetime
    filters: dict[str, Any] = Field(default_factory=dict)


class SocialAlertList(BaseModel):
    alerts: list[SocialAlert]
    total: int
    last_updated: datetime
    filters: dict[str, Any] = Field(default_factory=dict)


class NewsAlertList(BaseModel):
    alerts: list[NewsAlert]
    total: int
    last_updated: datetime
    filters: dict[str, Any] = Field(default_factory=dict)


class Breakdown(BaseModel):
    weather_alerts: int
    earthquakes: int
    social_media_alerts: int
    news_alerts: int


class StatsResponse(BaseModel):
    """Response body for GET /api/v1/realtime/stats."""
    total_alerts: int
    high_priority_count: int
    breakdown: Breakdown
    # weather: minor/moderate/severe/extreme
    # earthquakes: minor (<3) / light (3-4) / moderate (4-5) / strong (>=5)
    # social: low (<=2) / medium (3-4) / high (>=5)
    severity_breakdown: dict[str, dict[str, int]]
    last_updated: datetime
    data_freshness_ms: int


class RefreshResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Snapshot] = None
    refreshed_at: datetime


class ComponentStatus(BaseModel):
    aggregator: str   # "running" | "stopped"
    broadcaster: str  # "running" | "stopped"
    change_feed: str  # "mongodb" | "memory" | "disabled"
    database: str     # "connected" | "disconnected"
    connections: int


class RealtimeHealth(BaseModel):
    """Response body for GET /api/v1/realtime/health."""
    status: Literal["healthy", "degraded"]
    last_update: Optional[datetime] = None
    data_age_ms: Optional[int] = None
    total_alerts: int = 0
    services: ComponentStatus


# ── Change feed ───────────────────────────────────────────────────────────────

ChangeOperation = Literal["insert", "update", "delete"]


class ChangeEvent(BaseModel):
    """A row change delivered by the storage change feed."""
    operation: ChangeOperation
    table: str
    new_row: Optional[dict[str, Any]] = None
    old_row: Optional[dict[str, Any]] = None


# ── Active-topic working set ──────────────────────────────────────────────────

class ActiveDisaster(BaseModel):
    id: str
    title: str
    status: str = "active"
    severity: str = "medium"
    location_name: str = ""
    type: str = "general"
    tags: list[str] = Field(default_factory=list)

    @property
    def topic(self) -> str:
        return f"disaster:{self.id}"


# ── WebSocket protocol ────────────────────────────────────────────────────────

class ClientCommand(BaseModel):
    """
    Control frame sent by a client over /ws.

      {"action": "join",  "topic": "disaster:42"}
      {"action": "leave", "disaster_id": "42"}
      {"action": "ping"}
    """
    action: Literal["join", "leave", "ping"]
    topic: Optional[str] = None
    disaster_id: Optional[str] = None

    def resolved_topic(self) -> Optional[str]:
        if self.topic:
            return self.topic
        if self.disaster_id:
            return f"disaster:{self.disaster_id}"
        return None
