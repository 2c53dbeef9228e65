"""
seismic.py — Earthquakes from the USGS real-time GeoJSON feed.

Filtering policy: events below `min_magnitude` (default 2.0) are dropped, as
are features with no magnitude. An unreachable feed is an error for this
cycle (empty list in the snapshot) — there is no canned fallback in real
mode, so a stale map never looks live.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from disaster_hub.core.config import settings
from disaster_hub.core.errors import SourceUnavailable
from disaster_hub.models.alerts import Coordinates, SeismicEvent
from disaster_hub.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


class SeismicAdapter(SourceAdapter):
    name = "seismic"
    variant = "earthquakes"

    def __init__(self, *, min_magnitude: Optional[float] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.min_magnitude = (
            settings.min_earthquake_magnitude if min_magnitude is None else min_magnitude
        )

    async def _fetch(self) -> list[SeismicEvent]:
        if self.mock_mode:
            return self.filter_events(_mock_events())

        data = await self._get_json(settings.usgs_feed_url)
        features = data.get("features") if isinstance(data, dict) else None
        if features is None:
            raise SourceUnavailable(self.name, "response has no 'features' array")

        events: list[SeismicEvent] = []
        for feature in features:
            try:
                event = _feature_to_event(feature)
            except (KeyError, IndexError, TypeError, ValueError) as exc:
                logger.debug("Skipping malformed USGS feature: %s", exc)
                continue
            if event is not None:
                events.append(event)
        return self.filter_events(events)

    def filter_events(self, events: list[SeismicEvent]) -> list[SeismicEvent]:
        return [e for e in events if e.magnitude >= self.min_magnitude]


def _feature_to_event(feature: dict[str, Any]) -> Optional[SeismicEvent]:
    props = feature["properties"]
    mag = props.get("mag")
    if mag is None:
        return None
    lng, lat, depth = feature["geometry"]["coordinates"][:3]
    return SeismicEvent(
        id=str(feature["id"]),
        magnitude=float(mag),
        location=props.get("place") or "",
        coordinates=Coordinates(lat=lat, lng=lng),
        depth=float(depth or 0.0),
        # USGS reports epoch milliseconds
        time=datetime.fromtimestamp(props["time"] / 1000, tz=timezone.utc),
        significance=int(props.get("sig") or 0),
        tsunami=props.get("tsunami") == 1,
    )


def _mock_events() -> list[SeismicEvent]:
    now = datetime.now(tz=timezone.utc)
    return [
        SeismicEvent(
            id="us7000mock1",
            magnitude=3.2,
            location="15km NE of San Francisco, CA",
            coordinates=Coordinates(lat=37.7749, lng=-122.4194),
            depth=8.5,
            time=now,
            significance=150,
        ),
        SeismicEvent(
            id="us7000mock2",
            magnitude=5.4,
            location="42km SW of Ridgecrest, CA",
            coordinates=Coordinates(lat=35.4, lng=-117.9),
            depth=10.2,
            time=now,
            significance=449,
        ),
        SeismicEvent(
            id="us7000mock3",
            magnitude=1.6,
            location="5km N of The Geysers, CA",
            coordinates=Coordinates(lat=38.82, lng=-122.8),
            depth=2.1,
            time=now,
            significance=39,
        ),
    ]
