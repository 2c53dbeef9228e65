"""
alerts.py — Alert variants and the aggregated Snapshot.

Four typed alert models, one per source, each tagged with a `kind` literal so
a mixed list can still be discriminated without isinstance checks. The
Snapshot keeps them in four explicit collections rather than one
polymorphic list.

All models are frozen and the Snapshot stores tuples, so a reader holding a
snapshot never observes a mutation after the aggregator publishes the next
one.

High-priority predicates (used for `high_priority_count`):
  weather  severity in {"severe", "extreme"}
  seismic  magnitude >= 5.0
  social   urgency_score >= 4
  news     severity == "high"
"""

from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

WeatherSeverity = Literal["minor", "moderate", "severe", "extreme"]
NewsSeverity = Literal["low", "medium", "high"]

HIGH_PRIORITY_MAGNITUDE = 5.0
HIGH_PRIORITY_URGENCY = 4


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class WeatherAlert(BaseModel):
    """A weather warning/watch from NWS or NOAA."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["weather"] = "weather"
    id: str
    title: str
    description: str = ""
    severity: WeatherSeverity
    area: str = ""
    coordinates: Optional[Coordinates] = None
    effective: datetime
    expires: Optional[datetime] = None
    source: str = "NWS"
    urgency: Literal["immediate", "expected", "future", "past", "unknown"] = "unknown"

    @property
    def is_high_priority(self) -> bool:
        return self.severity in ("severe", "extreme")


class SeismicEvent(BaseModel):
    """An earthquake reported by the USGS feed."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["seismic"] = "seismic"
    id: str
    magnitude: float
    location: str = ""
    coordinates: Coordinates
    depth: float = 0.0
    time: datetime
    source: str = "USGS"
    significance: int = 0
    tsunami: bool = False

    @property
    def is_high_priority(self) -> bool:
        return self.magnitude >= HIGH_PRIORITY_MAGNITUDE


class SocialAlert(BaseModel):
    """A social media post scored for urgency."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["social"] = "social"
    id: str
    platform: Literal["twitter", "facebook", "instagram", "reddit", "bluesky"]
    content: str
    author: str
    location: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    timestamp: datetime
    urgency_score: int = Field(default=0, ge=0)
    type: Literal["need", "offer", "alert", "general"] = "general"
    verified: bool = False

    @property
    def is_high_priority(self) -> bool:
        return self.urgency_score >= HIGH_PRIORITY_URGENCY


class NewsAlert(BaseModel):
    """A news or situation report item."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["news"] = "news"
    id: str
    title: str
    description: str = ""
    source: str
    url: str = ""
    published_at: datetime
    location: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    category: Literal["emergency", "weather", "earthquake", "fire", "flood", "general"] = "general"
    severity: NewsSeverity = "low"

    @property
    def is_high_priority(self) -> bool:
        return self.severity == "high"


# Tagged union over the four variants
Alert = Annotated[
    Union[WeatherAlert, SeismicEvent, SocialAlert, NewsAlert],
    Field(discriminator="kind"),
]


class Snapshot(BaseModel):
    """
    Immutable merged result of one aggregation cycle.

    Build with Snapshot.build() so the derived counters always agree with
    the collections.
    """

    model_config = ConfigDict(frozen=True)

    weather_alerts: tuple[WeatherAlert, ...] = ()
    earthquakes: tuple[SeismicEvent, ...] = ()
    social_media_alerts: tuple[SocialAlert, ...] = ()
    news_alerts: tuple[NewsAlert, ...] = ()
    last_updated: datetime
    total_alerts: int = 0
    high_priority_count: int = 0

    @classmethod
    def build(
        cls,
        weather_alerts=(),
        earthquakes=(),
        social_media_alerts=(),
        news_alerts=(),
        last_updated: Optional[datetime] = None,
    ) -> "Snapshot":
        collections = (
            tuple(weather_alerts),
            tuple(earthquakes),
            tuple(social_media_alerts),
            tuple(news_alerts),
        )
        total = sum(len(c) for c in collections)
        high = sum(1 for c in collections for alert in c if alert.is_high_priority)
        return cls(
            weather_alerts=collections[0],
            earthquakes=collections[1],
            social_media_alerts=collections[2],
            news_alerts=collections[3],
            last_updated=last_updated or datetime.now(tz=timezone.utc),
            total_alerts=total,
            high_priority_count=high,
        )

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(tz=timezone.utc)
        return (now - self.last_updated).total_seconds()
