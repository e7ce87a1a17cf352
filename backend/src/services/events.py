"""
Outbound event publishing.

Emails, push notifications and analytics are delivered by separate workers.
Request handlers only enqueue a JSON job onto a Redis list
(``<prefix>:<queue>``) and move on; delivery, retries and templates are the
workers' concern.
"""
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, UTC
from enum import StrEnum
from typing import Any, Protocol, TYPE_CHECKING
from uuid import uuid4

if TYPE_CHECKING:
    from core.redis import RedisClient

logger = logging.getLogger(__name__)


class EventQueue(StrEnum):
    """Worker queues an event can be sent to."""

    EMAIL = "email"
    NOTIFICATION = "notification"
    ANALYTICS = "analytics"


@dataclass
class OutboundEvent:
    """A job for a background worker."""

    queue: EventQueue
    name: str
    payload: dict[str, Any]
    priority: int = 5
    attempts: int = 3
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_json(self) -> str:
        """Serialize for the queue."""
        return json.dumps(asdict(self), default=str)


class EventPublisher(Protocol):
    """Anything that can hand an event to the worker tier."""

    async def publish(self, event: OutboundEvent) -> bool:
        """Enqueue an event. Returns False if it could not be enqueued; never raises."""
        ...


class RedisEventPublisher:
    """Publishes events by pushing them onto Redis lists."""

    def __init__(self, redis_client: "RedisClient", prefix: str = "queue") -> None:
        self._redis = redis_client
        self._prefix = prefix

    def queue_key(self, queue: EventQueue) -> str:
        """Redis list key for a queue."""
        return f"{self._prefix}:{queue.value}"

    async def publish(self, event: OutboundEvent) -> bool:
        """Push the event onto its queue. Failures are logged, not raised."""
        ok = await self._redis.lpush(self.queue_key(event.queue), event.to_json())
        if ok:
            logger.debug("event_enqueued queue=%s name=%s", event.queue.value, event.name)
        else:
            logger.warning(
                "event_enqueue_failed",
                extra={"queue": event.queue.value, "event": event.name, "event_id": event.id},
            )
        return ok


class NullEventPublisher:
    """Drops every event. Used when events are disabled."""

    async def publish(self, event: OutboundEvent) -> bool:
        """Discard the event."""
        logger.debug("event_dropped queue=%s name=%s", event.queue.value, event.name)
        return False

