"""
news.py — Situation reports and news items.

Real mode reads the latest ReliefWeb reports. ReliefWeb carries no
severity field, so severity is inferred from the headline: casualty or
evacuation language → "high", warnings → "medium", otherwise "low".
Category comes from the report's first disaster type.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from disaster_hub.core.config import settings
from disaster_hub.core.errors import SourceUnavailable
from disaster_hub.models.alerts import Coordinates, NewsAlert
from disaster_hub.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

_HIGH_TERMS = ("emergency", "evacuat", "killed", "dead", "deaths", "casualt", "catastroph")
_MEDIUM_TERMS = ("warning", "alert", "watch", "threat", "damage")

_CATEGORY_BY_TYPE = {
    "flood": "flood",
    "flash flood": "flood",
    "earthquake": "earthquake",
    "wild fire": "fire",
    "fire": "fire",
    "tropical cyclone": "weather",
    "storm surge": "weather",
    "severe local storm": "weather",
    "cold wave": "weather",
    "epidemic": "emergency",
}


def infer_severity(title: str) -> str:
    lower = title.lower()
    if any(term in lower for term in _HIGH_TERMS):
        return "high"
    if any(term in lower for term in _MEDIUM_TERMS):
        return "medium"
    return "low"


class NewsAdapter(SourceAdapter):
    name = "news"
    variant = "news_alerts"

    def __init__(self, *, limit: int = 20, **kwargs) -> None:
        super().__init__(**kwargs)
        self.limit = limit

    async def _fetch(self) -> list[NewsAlert]:
        if self.mock_mode:
            return _mock_news()

        data = await self._get_json(
            settings.reliefweb_url,
            params={
                "appname": settings.reliefweb_appname,
                "limit": self.limit,
                "sort[]": "date:desc",
                "fields[include][]": [
                    "title", "url", "date.created", "source.name",
                    "primary_country.name", "primary_country.location", "disaster_type.name",
                ],
            },
        )
        items = data.get("data") if isinstance(data, dict) else None
        if items is None:
            raise SourceUnavailable(self.name, "response has no 'data' array")

        alerts: list[NewsAlert] = []
        for item in items:
            try:
                alerts.append(_item_to_alert(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug("Skipping malformed ReliefWeb item: %s", exc)
        return alerts


def _item_to_alert(item: dict[str, Any]) -> NewsAlert:
    fields = item["fields"]
    title = fields["title"]
    sources = fields.get("source") or []
    country = fields.get("primary_country") or {}
    types = fields.get("disaster_type") or []
    first_type = (types[0].get("name", "") if types else "").lower()

    return NewsAlert(
        id=f"reliefweb_{item['id']}",
        title=title,
        source=sources[0].get("name", "ReliefWeb") if sources else "ReliefWeb",
        url=fields.get("url") or "",
        published_at=fields["date"]["created"],
        location=country.get("name"),
        coordinates=_location(country.get("location")),
        category=_CATEGORY_BY_TYPE.get(first_type, "general"),
        severity=infer_severity(title),
    )


def _location(loc: Optional[dict[str, Any]]) -> Optional[Coordinates]:
    if not loc or loc.get("lat") is None or loc.get("lon") is None:
        return None
    return Coordinates(lat=loc["lat"], lng=loc["lon"])


def _mock_news() -> list[NewsAlert]:
    now = datetime.now(tz=timezone.utc)
    stamp = int(now.timestamp() * 1000)
    return [
        NewsAlert(
            id=f"news_{stamp}_1",
            title="Emergency Shelters Opened as Hurricane Approaches Gulf Coast",
            description=(
                "Local authorities have opened emergency shelters in preparation for the hurricane "
                "approaching the Gulf Coast. Residents in evacuation zones are urged to leave immediately."
            ),
            source="Emergency Management Agency",
            url="https://example.com/hurricane-shelters",
            published_at=now,
            location="Gulf Coast, FL",
            coordinates=Coordinates(lat=27.7663, lng=-82.6404),
            category="emergency",
            severity="high",
        ),
        NewsAlert(
            id=f"news_{stamp}_2",
            title="Wildfire Containment Efforts Continue in Northern California",
            description="Firefighters are making progress containing the wildfire that has burned over 10,000 acres.",
            source="Cal Fire",
            url="https://example.com/wildfire-update",
            published_at=now - timedelta(minutes=20),
            location="Northern California",
            coordinates=Coordinates(lat=39.1612, lng=-121.6077),
            category="fire",
            severity="medium",
        ),
    ]
