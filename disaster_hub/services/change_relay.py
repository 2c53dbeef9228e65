"""
change_relay.py — Storage row changes → topic-scoped client events.

    disasters  insert → disaster_created   topic = disaster:<row.id>
    resources  update → resource_updated   topic = disaster:<row.disaster_id>
    reports    delete → report_deleted     topic = disaster:<old_row.disaster_id>

The payload is the new row (the old row on delete), passed through untouched.
An event with no resolvable disaster id is dropped with a log line.
"""

import logging
from typing import Optional

from disaster_hub.core.errors import SubscriptionResolutionFailure
from disaster_hub.models.realtime import ChangeEvent
from disaster_hub.services.hub import ConnectionHub

logger = logging.getLogger(__name__)

ENTITY_BY_TABLE = {
    "disasters": "disaster",
    "resources": "resource",
    "reports": "report",
}

SUFFIX_BY_OPERATION = {
    "insert": "created",
    "update": "updated",
    "delete": "deleted",
}


def resolve_disaster_id(table: str, row: Optional[dict]) -> str:
    if not row:
        raise SubscriptionResolutionFailure(f"{table} change carried no row")
    value = row.get("id") if table == "disasters" else row.get("disaster_id")
    if value is None or value == "":
        field = "id" if table == "disasters" else "disaster_id"
        raise SubscriptionResolutionFailure(f"{table} row has no {field}")
    return str(value)


class ChangeRelay:
    def __init__(self, hub: ConnectionHub) -> None:
        self.hub = hub
        self.relayed = 0
        self.dropped = 0

    def attach(self, feed) -> None:
        feed.subscribe(self.handle)

    async def handle(self, event: ChangeEvent) -> Optional[str]:
        """Relay one change. Returns the topic it was published to, or None if dropped."""
        entity = ENTITY_BY_TABLE.get(event.table)
        if entity is None:
            logger.debug("Ignoring change on unwatched table %s", event.table)
            self.dropped += 1
            return None

        row = event.old_row if event.operation == "delete" else event.new_row
        try:
            disaster_id = resolve_disaster_id(event.table, row)
        except SubscriptionResolutionFailure as exc:
            logger.warning("Dropping %s %s change: %s", event.operation, event.table, exc)
            self.dropped += 1
            return None

        topic = f"disaster:{disaster_id}"
        name = f"{entity}_{SUFFIX_BY_OPERATION[event.operation]}"
        delivered = await self.hub.publish_to_topic(topic, name, row)
        self.relayed += 1
        logger.debug("Relayed %s to %s (%d connections)", name, topic, delivered)
        return topic
