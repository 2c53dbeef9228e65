"""
social_feed.py — Social media posts and keyword-based urgency analysis.

There is no live social API behind this module: posts come from a canned
catalogue whose timestamps are refreshed whenever a disaster's cache entry
is rebuilt, so the feed looks current. The interesting part is
`analyze_post()`, the urgency heuristic shared by the social adapter
(aggregator) and the periodic broadcaster (priority alerts).

Urgency score
─────────────
    +3  any priority keyword ("urgent", "trapped", "sos", ...)
    +2  two or more exclamation marks
    +1  an ALL-CAPS word of three or more letters
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field

from disaster_hub.core.config import settings
from disaster_hub.models.realtime import ActiveDisaster

logger = logging.getLogger(__name__)

PRIORITY_KEYWORDS = [
    "urgent", "emergency", "sos", "help", "trapped", "injured", "medical emergency",
    "evacuation", "immediate", "critical", "life threatening", "rescue needed",
    "stranded", "missing person", "casualties", "severe", "dangerous",
]

DISASTER_KEYWORDS = [
    "flood", "earthquake", "fire", "disaster", "emergency", "hurricane", "tornado", "wildfire",
]

_CAPS_WORD = re.compile(r"\b[A-Z]{3,}\b")


@dataclass(frozen=True)
class PostAnalysis:
    is_urgent: bool
    keywords: list[str]
    urgency_score: int


def analyze_post(content: str) -> PostAnalysis:
    """Score a post for urgency and extract the disaster keywords it mentions."""
    lower = content.lower()
    has_priority = any(kw in lower for kw in PRIORITY_KEYWORDS)
    has_punctuation = content.count("!") >= 2
    has_caps = bool(_CAPS_WORD.search(content))

    keywords = [kw for kw in dict.fromkeys(PRIORITY_KEYWORDS + DISASTER_KEYWORDS) if kw in lower]
    return PostAnalysis(
        is_urgent=has_priority or has_punctuation or has_caps,
        keywords=keywords,
        urgency_score=(3 if has_priority else 0) + (2 if has_punctuation else 0) + (1 if has_caps else 0),
    )


class SocialPost(BaseModel):
    id: str
    user: str
    platform: str = "twitter"
    content: str
    timestamp: datetime
    location: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    is_urgent: bool = False
    keywords: list[str] = Field(default_factory=list)
    verified: bool = False
    type: str = "general"


class SocialFeedPage(BaseModel):
    disaster_id: str
    data: list[SocialPost]
    total: int
    limit: int
    offset: int


# (id, user, platform, content, location, lat, lng, is_urgent, keywords, verified, type)
_CATALOGUE: list[tuple] = [
    ("1", "citizen1", "twitter",
     "URGENT! Heavy flooding in downtown Manhattan! Streets are completely underwater. People trapped on 2nd floor! #flood #emergency #help",
     "Manhattan, NYC", 40.7831, -73.9712, True, ["flood", "emergency", "water", "help", "urgent", "trapped"], False, "need"),
    ("2", "local_news_nyc", "twitter",
     "Emergency shelters opened in Brooklyn and Queens due to severe flooding. More info at nyc.gov #nycflood",
     "Brooklyn, NYC", 40.6782, -73.9442, False, ["shelter", "flood", "emergency", "help"], True, "alert"),
    ("3", "cal_fire_official", "twitter",
     "CRITICAL! Wildfire spreading rapidly near Napa Valley! IMMEDIATE EVACUATION required for zones A-C! #wildfire #evacuation #critical",
     "Napa Valley, CA", 38.5025, -122.2654, True, ["wildfire", "evacuation", "critical", "immediate", "fire"], True, "alert"),
    ("4", "resident_napa", "facebook",
     "Smoke everywhere! Can barely see 10 feet ahead. Roads blocked by fallen trees. Need help evacuating elderly neighbors! #wildfire #help",
     "Napa Valley, CA", 38.2975, -122.2869, True, ["smoke", "help", "evacuation", "elderly", "wildfire"], False, "need"),
    ("5", "weather_service", "twitter",
     "Hurricane Category 4 approaching Gulf Coast! Storm surge 15-20 feet expected. EVACUATE NOW if in evacuation zones! #hurricane #evacuation",
     "Gulf Coast, FL", 27.7663, -82.6404, True, ["hurricane", "evacuation", "storm surge", "emergency"], True, "alert"),
    ("6", "florida_resident", "instagram",
     "Boarding up windows and heading inland. Hurricane winds already picking up. Stay safe everyone! #hurricane #safety",
     "Tampa, FL", 27.9506, -82.4572, False, ["hurricane", "safety", "winds"], False, "general"),
    ("7", "usgs_earthquake", "twitter",
     "EARTHQUAKE ALERT: 6.2 magnitude earthquake detected near Los Angeles. Aftershocks expected. Check for injuries and damage! #earthquake #alert",
     "Los Angeles, CA", 34.0522, -118.2437, True, ["earthquake", "alert", "magnitude", "aftershocks", "injuries"], True, "alert"),
    ("8", "la_resident", "reddit",
     "Building shaking stopped but car alarms going off everywhere. Checking on neighbors now. #earthquake #community",
     "Los Angeles, CA", 34.0407, -118.2468, False, ["earthquake", "community", "neighbors"], False, "general"),
    ("9", "storm_chaser", "twitter",
     "TORNADO ON GROUND! Large tornado confirmed near Oklahoma City! Take shelter immediately! #tornado #shelter #emergency",
     "Oklahoma City, OK", 35.4676, -97.5164, True, ["tornado", "shelter", "emergency", "immediate"], False, "alert"),
    ("10", "ok_emergency", "facebook",
     "Tornado warning in effect until 8 PM. Seek shelter in interior room on lowest floor. #tornado #warning #safety",
     "Oklahoma City, OK", 35.4823, -97.5350, True, ["tornado", "warning", "shelter", "safety"], True, "alert"),
    ("11", "denver_weather", "twitter",
     "Blizzard conditions with 60+ mph winds and zero visibility. DO NOT TRAVEL! Multiple vehicles stranded on I-25! #blizzard #travel",
     "Denver, CO", 39.7392, -104.9903, True, ["blizzard", "travel", "stranded", "emergency"], True, "alert"),
    ("12", "colorado_resident", "facebook",
     "Power out for 6 hours now. Running low on heating fuel. Anyone know when crews can get through? #blizzard #power #help",
     "Denver, CO", 39.7294, -104.8319, False, ["power", "heating", "help", "blizzard"], False, "need"),
    ("13", "emergency_responder", "twitter",
     "SOS! Medical emergency at Central Hospital. Need ambulance access through flood zone!!! #medical #emergency #sos",
     "Central Hospital, NYC", 40.7580, -73.9855, True, ["medical", "emergency", "sos", "ambulance", "hospital", "flood"], False, "need"),
    ("14", "family_alert", "twitter",
     "Family of 4 stranded on rooftop at 123 Oak Street. RESCUE NEEDED ASAP! Water still rising! #rescue #stranded #family",
     "123 Oak Street, NYC", 40.7128, -74.0060, True, ["rescue", "stranded", "family", "rooftop", "flood"], False, "need"),
    ("15", "volunteer_network", "facebook",
     "Volunteers needed for flood relief in Lower East Side. DM for details. #volunteer #nycflood",
     "Lower East Side, NYC", 40.7150, -73.9843, False, ["volunteer", "help needed", "flood", "relief"], False, "offer"),
    ("16", "red_cross", "twitter",
     "Mobile blood drive cancelled due to severe weather. Rescheduling for next week. #redcross #blood #weather",
     "Dallas, TX", 32.7767, -96.7970, False, ["blood", "weather", "cancelled", "storm"], True, "general"),
]

# Disaster type → catalogue keyword that marks a post as relevant
_TYPE_KEYWORDS = {
    "flood": "flood",
    "wildfire": "wildfire",
    "fire": "fire",
    "hurricane": "hurricane",
    "earthquake": "earthquake",
    "tornado": "tornado",
    "blizzard": "blizzard",
    "storm": "storm",
}


def catalogue_posts(now: Optional[datetime] = None) -> list[SocialPost]:
    """All canned posts, stamped at five-minute steps back from `now`."""
    now = now or datetime.now(tz=timezone.utc)
    posts = []
    for i, row in enumerate(_CATALOGUE):
        (id_, user, platform, content, location, lat, lng,
         is_urgent, keywords, verified, type_) = row
        posts.append(SocialPost(
            id=id_, user=user, platform=platform, content=content,
            timestamp=now - timedelta(minutes=5 * i), location=location,
            lat=lat, lng=lng, is_urgent=is_urgent, keywords=keywords,
            verified=verified, type=type_,
        ))
    return posts


class SocialFeed:
    """
    Per-disaster social feed, cached under `social_media_<id>`.

    The cache holds the disaster's relevant posts before filtering and
    paging, so every query shape is served from one entry. `cache` is any
    object with async get(key) / set(key, value, ttl_seconds); a cache read
    or write failure is logged and the posts are recomputed.
    """

    def __init__(self, cache=None, ttl_seconds: Optional[int] = None) -> None:
        self._cache = cache
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.social_cache_ttl_seconds

    @staticmethod
    def cache_key(disaster_id: str) -> str:
        return f"social_media_{disaster_id}"

    async def get_posts(
        self,
        disaster: Optional[ActiveDisaster] = None,
        *,
        limit: int = 10,
        offset: int = 0,
        is_urgent: Optional[bool] = None,
        keywords: Optional[list[str]] = None,
    ) -> SocialFeedPage:
        disaster_id = disaster.id if disaster is not None else "general"
        posts = await self._load(disaster_id)
        if posts is None:
            posts = catalogue_posts()
            if disaster is not None:
                posts = _relevant_to(posts, disaster)
            await self._store(disaster_id, posts)

        if is_urgent is not None:
            posts = [p for p in posts if p.is_urgent == is_urgent]
        if keywords:
            wanted = {k.lower() for k in keywords}
            posts = [p for p in posts if wanted.intersection(k.lower() for k in p.keywords)]

        return SocialFeedPage(
            disaster_id=disaster_id,
            data=posts[offset:offset + limit],
            total=len(posts),
            limit=limit,
            offset=offset,
        )

    async def _load(self, disaster_id: str) -> Optional[list[SocialPost]]:
        if self._cache is None:
            return None
        try:
            cached = await self._cache.get(self.cache_key(disaster_id))
        except Exception as exc:
            logger.warning("Reading cached social feed for %s failed: %s", disaster_id, exc)
            return None
        if cached is None:
            return None
        return [SocialPost.model_validate(item) for item in cached["posts"]]

    async def _store(self, disaster_id: str, posts: list[SocialPost]) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(
                self.cache_key(disaster_id),
                {"disaster_id": disaster_id, "posts": [p.model_dump(mode="json") for p in posts]},
                self._ttl,
            )
        except Exception as exc:
            logger.warning("Caching social feed for %s failed: %s", disaster_id, exc)


def _relevant_to(posts: list[SocialPost], disaster: ActiveDisaster) -> list[SocialPost]:
    """Posts mentioning the disaster's type or sharing its city; all posts if none match."""
    keyword = _TYPE_KEYWORDS.get(disaster.type.lower())
    city = disaster.location_name.split(",")[0].strip().lower()
    tags = {t.lower() for t in disaster.tags}

    matched = []
    for post in posts:
        post_keywords = {k.lower() for k in post.keywords}
        if keyword and keyword in post_keywords:
            matched.append(post)
        elif city and city in post.location.lower():
            matched.append(post)
        elif tags and tags & post_keywords:
            matched.append(post)
    return matched or posts
