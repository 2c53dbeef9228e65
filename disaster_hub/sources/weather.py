"""
weather.py — Weather warnings from the US National Weather Service.

Real mode calls the NWS active alerts endpoint (GeoJSON). Each feature's
polygon is reduced to a centroid so the alert can be pinned on the map;
alerts without geometry keep `coordinates=None`.

Filtering policy: only `status=actual` alerts; "Unknown" severity is
reported as "minor".
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from disaster_hub.core.config import settings
from disaster_hub.core.errors import SourceUnavailable
from disaster_hub.models.alerts import Coordinates, WeatherAlert
from disaster_hub.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

_SEVERITY = {"minor": "minor", "moderate": "moderate", "severe": "severe", "extreme": "extreme"}
_URGENCY = {"immediate", "expected", "future", "past"}


class WeatherAdapter(SourceAdapter):
    name = "weather"
    variant = "weather_alerts"

    async def _fetch(self) -> list[WeatherAlert]:
        if self.mock_mode:
            return _mock_alerts()

        data = await self._get_json(settings.nws_alerts_url, params={"status": "actual"})
        features = data.get("features") if isinstance(data, dict) else None
        if features is None:
            raise SourceUnavailable(self.name, "response has no 'features' array")

        alerts: list[WeatherAlert] = []
        for feature in features:
            try:
                alerts.append(_feature_to_alert(feature))
            except (KeyError, TypeError, ValueError) as exc:
                # One malformed feature must not fail the whole batch
                logger.debug("Skipping malformed NWS feature: %s", exc)
        return alerts


def _feature_to_alert(feature: dict[str, Any]) -> WeatherAlert:
    props = feature["properties"]
    severity = _SEVERITY.get(str(props.get("severity", "")).lower(), "minor")
    urgency = str(props.get("urgency", "")).lower()
    return WeatherAlert(
        id=str(props.get("id") or feature["id"]),
        title=props.get("event") or props.get("headline") or "Weather alert",
        description=(props.get("headline") or props.get("description") or "")[:2000],
        severity=severity,
        area=props.get("areaDesc") or "",
        coordinates=_centroid(feature.get("geometry")),
        effective=props.get("effective") or props.get("sent"),
        expires=props.get("expires"),
        source="NWS",
        urgency=urgency if urgency in _URGENCY else "unknown",
    )


def _centroid(geometry: Optional[dict[str, Any]]) -> Optional[Coordinates]:
    """Average of the outer ring's vertices; good enough for a map pin."""
    if not geometry:
        return None
    coords = geometry.get("coordinates") or []
    if geometry.get("type") == "Polygon" and coords:
        ring = coords[0]
    elif geometry.get("type") == "MultiPolygon" and coords and coords[0]:
        ring = coords[0][0]
    else:
        return None
    if not ring:
        return None
    lng = sum(p[0] for p in ring) / len(ring)
    lat = sum(p[1] for p in ring) / len(ring)
    return Coordinates(lat=lat, lng=lng)


def _mock_alerts() -> list[WeatherAlert]:
    now = datetime.now(tz=timezone.utc)
    stamp = int(now.timestamp() * 1000)
    return [
        WeatherAlert(
            id=f"weather_{stamp}_1",
            title="Flash Flood Warning",
            description="Flash flooding is occurring or imminent in the warned area. Move to higher ground immediately.",
            severity="severe",
            area="New York City, NY",
            coordinates=Coordinates(lat=40.7128, lng=-74.0060),
            effective=now,
            expires=now + timedelta(hours=6),
            source="NWS",
            urgency="immediate",
        ),
        WeatherAlert(
            id=f"weather_{stamp}_2",
            title="Severe Thunderstorm Watch",
            description="Conditions are favorable for severe thunderstorms with damaging winds and large hail.",
            severity="moderate",
            area="Los Angeles County, CA",
            coordinates=Coordinates(lat=34.0522, lng=-118.2437),
            effective=now,
            expires=now + timedelta(hours=4),
            source="NOAA",
            urgency="expected",
        ),
    ]
