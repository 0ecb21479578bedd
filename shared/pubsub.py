import os
import logging
from abc import ABC, abstractmethod

import redis

from .events import Event, EventType

logger = logging.getLogger(__name__)


class EventSink(ABC):
    """Receives organization-scoped lifecycle events for real-time UI sync."""

    @abstractmethod
    def publish(self, organization_id, kind: EventType, payload: dict) -> None:
        raise NotImplementedError


class RedisEventSink(EventSink):
    def __init__(self, redis_client: redis.Redis = None, redis_url: str = None):
        if redis_client is None:
            redis_url = redis_url or os.getenv('REDIS_URL', 'redis://localhost:6379')
            redis_client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
        self.redis = redis_client

    def publish(self, organization_id, kind: EventType, payload: dict) -> None:
        event = Event(type=kind, organization_id=organization_id, data=payload)
        try:
            self.redis.publish(event.channel, event.to_json())
        except redis.RedisError as e:
            logger.warning("Could not publish %s on %s: %s", event.type.value, event.channel, e)


class LogEventSink(EventSink):
    """Used when no Redis is configured; events only reach the log."""

    def publish(self, organization_id, kind: EventType, payload: dict) -> None:
        event = Event(type=kind, organization_id=organization_id, data=payload)
        logger.info("Event %s for organization %s", event.type.value, event.organization_id)


def create_event_sink(backend: str, redis_url: str = None) -> EventSink:
    if backend == 'redis':
        return RedisEventSink(redis_url=redis_url)
    if backend == 'log':
        return LogEventSink()
    raise ValueError(f"Unknown event sink backend: {backend}")


def publish_safely(sink: EventSink, organization_id, kind: EventType, payload: dict) -> None:
    """Fire-and-forget publish; a failing sink never aborts the caller."""
    if sink is None:
        return
    try:
        sink.publish(organization_id, kind, payload)
    except Exception:
        logger.exception("Event sink failed for %s (organization %s)", kind.value, organization_id)
