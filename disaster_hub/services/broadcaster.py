"""
broadcaster.py — The hub's 10-second push cycle.

Each cycle, over the working set of active disasters:

  global   active_disasters_updated     {disasters, count, timestamp}
  topic    social_media_updated         per disaster:<id>
  topic    official_updates_updated     per disaster:<id>
  global   priority_alerts              {alerts, count, message, timestamp}
                                        only when at least one post meets the
                                        urgency threshold; collected across all
                                        active disasters, sent once
  global   social_media_global_update   {posts, count, timestamp}

Which disasters are "active" is a pluggable ActiveDisasterSource:
MongoActiveDisasters queries the disasters collection; StaticActiveDisasters
serves a fixed sample when no database is reachable.

A failure while computing one disaster's payloads is logged and the cycle
moves on to the next disaster.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from motor.motor_asyncio import AsyncIOMotorDatabase

from disaster_hub.core.config import settings
from disaster_hub.models.realtime import ActiveDisaster
from disaster_hub.services.hub import ConnectionHub
from disaster_hub.services.official_updates import OfficialUpdatesProvider
from disaster_hub.services.scheduler import RecurringJob
from disaster_hub.services.social_feed import SocialFeed, analyze_post

logger = logging.getLogger(__name__)


# ── Active-topic strategies ───────────────────────────────────────────────────

class ActiveDisasterSource(Protocol):
    name: str

    async def list_active(self, limit: int) -> list[ActiveDisaster]: ...


DEFAULT_SAMPLE = [
    ActiveDisaster(id="nyc-flood", title="NYC Flood Emergency", severity="high",
                   location_name="Manhattan, NYC", type="flood", tags=["flood", "urgent"]),
    ActiveDisaster(id="napa-wildfire", title="Napa Valley Wildfire", severity="critical",
                   location_name="Napa Valley, CA", type="wildfire", tags=["wildfire", "evacuation"]),
    ActiveDisaster(id="gulf-hurricane", title="Gulf Coast Hurricane", severity="critical",
                   location_name="Gulf Coast, FL", type="hurricane", tags=["hurricane", "storm surge"]),
    ActiveDisaster(id="la-earthquake", title="Los Angeles Earthquake", severity="high",
                   location_name="Los Angeles, CA", type="earthquake", tags=["earthquake"]),
]


class StaticActiveDisasters:
    name = "static"

    def __init__(self, disasters: Optional[list[ActiveDisaster]] = None) -> None:
        self._disasters = list(DEFAULT_SAMPLE if disasters is None else disasters)

    async def list_active(self, limit: int) -> list[ActiveDisaster]:
        return self._disasters[:limit]


class MongoActiveDisasters:
    """Disasters with status "active", newest first."""

    name = "mongodb"

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._col = db["disasters"]

    async def list_active(self, limit: int) -> list[ActiveDisaster]:
        cursor = self._col.find({"status": "active"}).sort("created_at", -1).limit(limit)
        return [_to_active(doc) async for doc in cursor]


def _to_active(doc: dict[str, Any]) -> ActiveDisaster:
    tags = [str(t) for t in doc.get("tags") or []]
    return ActiveDisaster(
        id=str(doc.get("id") or doc["_id"]),
        title=doc.get("title", ""),
        status=doc.get("status", "active"),
        severity=doc.get("severity", "medium"),
        location_name=doc.get("location_name", ""),
        type=doc.get("type") or (tags[0] if tags else "general"),
        tags=tags,
    )


# ── Broadcaster ───────────────────────────────────────────────────────────────

class PeriodicBroadcaster:
    def __init__(
        self,
        hub: ConnectionHub,
        active_source: ActiveDisasterSource,
        social_feed: SocialFeed,
        official_updates: OfficialUpdatesProvider,
        *,
        interval: Optional[float] = None,
        limit: Optional[int] = None,
        urgency_threshold: Optional[int] = None,
    ) -> None:
        self.hub = hub
        self.active_source = active_source
        self.social_feed = social_feed
        self.official_updates = official_updates
        self.limit = limit if limit is not None else settings.active_disaster_limit
        self.urgency_threshold = (
            urgency_threshold if urgency_threshold is not None else settings.priority_urgency_threshold
        )
        self._job = RecurringJob(
            "broadcaster",
            interval if interval is not None else settings.broadcast_interval_seconds,
            self.run_cycle,
        )

    @property
    def running(self) -> bool:
        return self._job.running

    def start(self) -> bool:
        return self._job.start()

    async def stop(self, *, wait: bool = False) -> None:
        await self._job.stop(wait=wait)

    async def run_cycle(self) -> list[str]:
        """Push one round of updates. Returns the topics that were pushed to."""
        now = datetime.now(tz=timezone.utc)
        try:
            disasters = await self.active_source.list_active(self.limit)
        except Exception as exc:
            logger.warning("Active disaster query (%s) failed at %s: %s",
                           self.active_source.name, now.isoformat(), exc)
            return []

        await self.hub.broadcast("active_disasters_updated", {
            "disasters": [d.model_dump() for d in disasters],
            "count": len(disasters),
            "timestamp": now,
        })

        pushed: list[str] = []
        priority: dict[str, dict[str, Any]] = {}
        for disaster in disasters:
            try:
                await self._push_topic(disaster, now, priority)
                pushed.append(disaster.topic)
            except Exception:
                logger.exception("Push cycle %s failed for %s", now.isoformat(), disaster.topic)

        if priority:
            alerts = sorted(priority.values(), key=lambda a: a["urgency_score"], reverse=True)
            await self.hub.broadcast("priority_alerts", {
                "alerts": alerts,
                "count": len(alerts),
                "message": f"{len(alerts)} high-priority alert(s) across {len(disasters)} active disaster(s)",
                "timestamp": now,
            })

        try:
            page = await self.social_feed.get_posts(limit=10)
            await self.hub.broadcast("social_media_global_update", {
                "posts": [p.model_dump() for p in page.data],
                "count": len(page.data),
                "timestamp": now,
            })
        except Exception:
            logger.exception("Global social update failed in cycle %s", now.isoformat())

        return pushed

    async def _push_topic(
        self,
        disaster: ActiveDisaster,
        now: datetime,
        priority: dict[str, dict[str, Any]],
    ) -> None:
        page = await self.social_feed.get_posts(disaster, limit=20)
        await self.hub.publish_to_topic(disaster.topic, "social_media_updated", {
            "disaster_id": disaster.id,
            "posts": [p.model_dump() for p in page.data],
            "total": page.total,
            "timestamp": now,
        })

        for post in page.data:
            analysis = analyze_post(post.content)
            if analysis.urgency_score >= self.urgency_threshold and post.id not in priority:
                priority[post.id] = {
                    "disaster_id": disaster.id,
                    "disaster_title": disaster.title,
                    "post": post.model_dump(),
                    "urgency_score": analysis.urgency_score,
                    "keywords": analysis.keywords,
                }

        updates = await self.official_updates.get_updates(disaster, now)
        await self.hub.publish_to_topic(disaster.topic, "official_updates_updated", {
            "disaster_id": disaster.id,
            "updates": [u.model_dump() for u in updates],
            "count": len(updates),
            "timestamp": now,
        })
