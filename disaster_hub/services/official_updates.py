"""
official_updates.py — Official agency updates for an active disaster.

No scraping: updates come from a canned catalogue grouped by disaster type
(FEMA / Red Cross for floods, USGS for earthquakes, InciWeb for fires, ...).
Each candidate is scored for relevance against the disaster and the list is
ranked by relevance, then newest first.

Relevance
─────────
    +2  per disaster-title word (longer than 3 chars) that appears in the update title
    +3  per disaster tag that appears in the update title
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel

from disaster_hub.core.config import settings
from disaster_hub.models.realtime import ActiveDisaster

logger = logging.getLogger(__name__)

MAX_UPDATES = 10


class OfficialUpdate(BaseModel):
    id: str
    disaster_id: str
    source: str
    title: str
    description: str = ""
    url: str
    published_at: datetime
    relevance: int = 0


# type → [(source, title, description, url, age in hours)]
_CATALOGUE: dict[str, list[tuple[str, str, str, str, int]]] = {
    "flood": [
        ("FEMA", "Federal Disaster Declaration for Recent Flooding",
         "The President has declared a federal emergency for the affected region.",
         "https://www.fema.gov/disaster/current", 2),
        ("Red Cross", "Emergency Shelters Open for Flood Victims",
         "The Red Cross has opened emergency shelters in the affected area.",
         "https://www.redcross.org/about-us/news-and-events/news.html", 4),
        ("NOAA", "Flash Flood Warning Extended Through Tomorrow",
         "River levels are expected to keep rising; avoid low-lying roads.",
         "https://www.weather.gov/safety/flood", 1),
    ],
    "earthquake": [
        ("USGS", "Aftershock Forecast Issued Following Earthquake",
         "Aftershocks of magnitude 3 or higher are likely over the next week.",
         "https://earthquake.usgs.gov/earthquakes/map/", 1),
        ("FEMA", "Earthquake Safety: Drop, Cover and Hold On",
         "Residents should inspect homes for structural damage before re-entering.",
         "https://www.ready.gov/earthquakes", 6),
    ],
    "fire": [
        ("InciWeb", "Wildfire Containment Reaches 35 Percent",
         "Crews continue to strengthen containment lines on the northern flank.",
         "https://inciweb.nwcg.gov/", 3),
        ("Cal Fire", "Evacuation Orders Expanded for Fire Zones A-C",
         "Residents in zones A through C must leave immediately.",
         "https://www.fire.ca.gov/incidents", 1),
    ],
    "hurricane": [
        ("National Hurricane Center", "Hurricane Warning in Effect for Gulf Coast",
         "Hurricane conditions expected within 36 hours; storm surge up to 20 feet.",
         "https://www.nhc.noaa.gov/", 2),
        ("FEMA", "Hurricane Evacuation Routes and Shelter Locations",
         "Follow posted evacuation routes and check shelter availability before travelling.",
         "https://www.ready.gov/hurricanes", 5),
    ],
    "default": [
        ("ReliefWeb", "Situation Report: Emergency Response Plan Activated",
         "Local authorities have activated emergency response protocols.",
         "https://reliefweb.int/updates", 3),
        ("Local Government", "Emergency Operations Center Activated",
         "The city emergency operations center is coordinating the response.",
         "https://www.nyc.gov/site/em/index.page", 8),
    ],
}

_TYPE_ALIASES = {"wildfire": "fire", "flash flood": "flood", "tropical storm": "hurricane"}


def relevance_score(disaster: ActiveDisaster, update_title: str) -> int:
    update_lower = update_title.lower()
    update_words = set(update_lower.split())
    score = 0
    for word in disaster.title.lower().split():
        if len(word) > 3 and word in update_words:
            score += 2
    for tag in disaster.tags:
        if tag.lower() in update_lower:
            score += 3
    return score


def _candidates(disaster: ActiveDisaster) -> list[tuple[str, str, str, str, int]]:
    kinds = {_TYPE_ALIASES.get(disaster.type.lower(), disaster.type.lower())}
    kinds.update(_TYPE_ALIASES.get(t.lower(), t.lower()) for t in disaster.tags)
    rows = [row for kind in kinds for row in _CATALOGUE.get(kind, [])]
    return rows or _CATALOGUE["default"]


class OfficialUpdatesProvider:
    """
    Ranked official updates per disaster, cached under `official_updates_<id>`.

    A cache hit is returned as-is; a cache read or write failure is logged
    and the updates are recomputed.
    """

    def __init__(self, cache=None, ttl_seconds: Optional[int] = None) -> None:
        self._cache = cache
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.official_cache_ttl_seconds

    @staticmethod
    def cache_key(disaster_id: str) -> str:
        return f"official_updates_{disaster_id}"

    async def get_updates(self, disaster: ActiveDisaster, now: Optional[datetime] = None) -> list[OfficialUpdate]:
        cached = await self._load(disaster.id)
        if cached is not None:
            return cached

        updates = self.rank(disaster, now)
        await self._store(disaster.id, updates)
        return updates

    def rank(self, disaster: ActiveDisaster, now: Optional[datetime] = None) -> list[OfficialUpdate]:
        now = now or datetime.now(tz=timezone.utc)
        updates = [
            OfficialUpdate(
                id=f"{disaster.id}-{i}",
                disaster_id=disaster.id,
                source=source,
                title=title,
                description=description,
                url=url,
                published_at=now - timedelta(hours=age_hours),
                relevance=relevance_score(disaster, title),
            )
            for i, (source, title, description, url, age_hours) in enumerate(_candidates(disaster), start=1)
        ]
        updates.sort(key=lambda u: (u.relevance, u.published_at), reverse=True)
        return updates[:MAX_UPDATES]

    async def _load(self, disaster_id: str) -> Optional[list[OfficialUpdate]]:
        if self._cache is None:
            return None
        try:
            cached = await self._cache.get(self.cache_key(disaster_id))
        except Exception as exc:
            logger.warning("Reading cached official updates for %s failed: %s", disaster_id, exc)
            return None
        if cached is None:
            return None
        return [OfficialUpdate.model_validate(item) for item in cached]

    async def _store(self, disaster_id: str, updates: list[OfficialUpdate]) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(
                self.cache_key(disaster_id),
                [u.model_dump(mode="json") for u in updates],
                self._ttl,
            )
        except Exception as exc:
            logger.warning("Caching official updates for %s failed: %s", disaster_id, exc)
