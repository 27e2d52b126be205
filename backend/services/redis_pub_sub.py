# backend/services/redis_pub_sub.py

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import redis.asyncio as redis

from core.config import settings

if TYPE_CHECKING:
    from services.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

# Every broker channel family, subscribed by pattern
CHANNEL_PATTERNS = ("room:*", "blogpost:*", "notifications:*")


class AsyncRedisPubSubService:
    """
    Carries broker broadcasts between app instances over Redis Pub/Sub.

    Each broadcast is published to the Redis channel of the same name
    (``room:<id>``, ``blogpost:<id>``, ``notifications:<id>``) as an envelope:

        {"channel": "room:abc", "event": "receiveMessage", "payload": {...}, "exclude": "<connection id>"}

    Every instance runs ``listen`` and hands envelopes to its own
    ConnectionManager, which delivers to local subscribers. Redis keeps
    per-channel publish order, so the per-channel ordering guarantee holds
    across instances.
    """

    def __init__(self, host: str = "localhost", port: int = 6379):
        self.host = host
        self.port = port
        self.client = None
        self.pubsub = None
        self.access_key = settings.REDIS_ACCESS_KEY
        self.use_ssl = settings.REDIS_SSL

    async def connect(self):
        """Establish async connection to Redis."""
        scheme = "rediss" if self.use_ssl else "redis"
        auth = f":{self.access_key}@" if self.access_key else ""
        self.client = redis.from_url(
            f"{scheme}://{auth}{self.host}:{self.port}",
            decode_responses=True
        )
        await self.client.ping()
        logger.info("✓ Connected to Redis at %s:%s", self.host, self.port)

    async def publish(self, channel: str, envelope: dict):
        """Publish a broadcast envelope to ``channel``."""
        await self.client.publish(channel, json.dumps(envelope))
        logger.debug("📤 Published %s to Redis channel '%s'", envelope.get("event"), channel)

    async def listen(self, manager: "ConnectionManager", *patterns: str):
        """
        Subscribe to the broker channel patterns and deliver locally.

        Runs until cancelled; started as a background task on startup.
        """
        patterns = patterns or CHANNEL_PATTERNS
        self.pubsub = self.client.pubsub()
        await self.pubsub.psubscribe(*patterns)
        logger.info("✓ Subscribed to Redis patterns %s", ", ".join(patterns))

        async for message in self.pubsub.listen():
            if message["type"] not in ("message", "pmessage"):
                continue
            try:
                envelope = json.loads(message["data"])
                channel = envelope["channel"]
                await manager.deliver(
                    channel,
                    envelope["event"],
                    envelope.get("payload") or {},
                    envelope.get("exclude"),
                )
            except (ValueError, KeyError, TypeError) as e:
                logger.error("Malformed Redis envelope on %s: %s", message.get("channel"), e)

    async def close(self):
        """Close connections."""
        if self.pubsub:
            await self.pubsub.punsubscribe()
            await self.pubsub.aclose()
        if self.client:
            await self.client.aclose()
        logger.info("Redis connection closed")
