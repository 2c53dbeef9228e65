"""
social.py — Social media alerts for the aggregated snapshot.

Reads the social feed catalogue and scores every post with analyze_post().
Filtering policy: posts with urgency score 0 (no priority keyword, no
shouting, no "!!") are not alerts and are dropped.
"""

import logging

from disaster_hub.models.alerts import Coordinates, SocialAlert
from disaster_hub.services.social_feed import analyze_post, catalogue_posts
from disaster_hub.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


class SocialAdapter(SourceAdapter):
    name = "social"
    variant = "social_media_alerts"

    async def _fetch(self) -> list[SocialAlert]:
        alerts: list[SocialAlert] = []
        for post in catalogue_posts():
            analysis = analyze_post(post.content)
            if analysis.urgency_score == 0:
                continue
            coordinates = None
            if post.lat is not None and post.lng is not None:
                coordinates = Coordinates(lat=post.lat, lng=post.lng)
            alerts.append(SocialAlert(
                id=f"social_{post.id}",
                platform=post.platform,
                content=post.content,
                author=f"@{post.user}",
                location=post.location,
                coordinates=coordinates,
                timestamp=post.timestamp,
                urgency_score=analysis.urgency_score,
                type=post.type,
                verified=post.verified,
            ))
        return alerts
