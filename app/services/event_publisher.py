"""Real-time appointment events over Redis pub/sub."""

import asyncio
import json
from typing import Any

import redis
import structlog

logger = structlog.get_logger(__name__)


class RedisEventPublisher:
    """Publishes JSON events to per-patient Redis channels."""

    def __init__(self, redis_client: redis.Redis):
        """Initialize publisher with Redis client."""
        self.redis = redis_client

    async def publish(self, channel: str, event: dict[str, Any]) -> None:
        """
        Publish an event to a channel.

        Args:
            channel: Channel name, e.g. ``patient:<id>``
            event: JSON-serializable payload
        """
        payload = json.dumps(event, default=str)
        receivers = await asyncio.to_thread(self.redis.publish, channel, payload)
        logger.info(
            "realtime_event_published",
            channel=channel,
            event=event.get("event"),
            receivers=receivers,
        )
