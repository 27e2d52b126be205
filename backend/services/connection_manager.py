# backend/services/connection_manager.py

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional, Set

from fastapi import WebSocket

if TYPE_CHECKING:
    from services.redis_pub_sub import AsyncRedisPubSubService

logger = logging.getLogger(__name__)


def room_channel(room_id: str) -> str:
    return f"room:{room_id}"


def blogpost_channel(post_id: str) -> str:
    return f"blogpost:{post_id}"


def notifications_channel(user_id: str) -> str:
    return f"notifications:{user_id}"


@dataclass(eq=False)
class Connection:
    """One live WebSocket and the channels it currently listens to."""

    websocket: WebSocket
    user_id: str = "anonymous"
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    channels: Set[str] = field(default_factory=set)


# ============================================================================
# REAL-TIME CHANNEL BROKER
# ============================================================================

class ConnectionManager:
    """
    Maps live WebSocket connections to channel subscriptions and fans events out.

    Channels are plain strings: ``room:<roomId>``, ``blogpost:<postId>`` and
    ``notifications:<userId>``. The broker owns no domain data; it only knows
    who listens where.

    Data Structures:
        channels: Maps channel -> Set of connections subscribed to it
                  Example: {"room:abc": {conn1, conn2}}

        connections: Maps connection id -> Connection (which also tracks its
                     own channel set, so disconnect can drop everything)

    Ordering:
        Broadcasts on one channel go through a per-channel lock, so every
        subscriber receives them in the order they were triggered. Nothing is
        ordered across channels and nothing is buffered for reconnects.

    Scaling:
        - Single instance: ``relay`` is None and delivery is in-memory
        - Multi-instance: a Redis relay carries every broadcast to every
          instance, and each instance delivers to its own subscribers
    """

    def __init__(self, relay: Optional["AsyncRedisPubSubService"] = None) -> None:
        self.channels: Dict[str, Set[Connection]] = {}
        self.connections: Dict[str, Connection] = {}
        self.relay = relay
        self._channel_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def connect(self, websocket: WebSocket, user_id: str = "anonymous") -> Connection:
        """
        Accept a new WebSocket connection.

        Note:
            The connection starts with no subscriptions. Clients must send
            explicit join/subscribe actions for each channel.
        """
        await websocket.accept()
        connection = Connection(websocket=websocket, user_id=user_id)
        self.connections[connection.id] = connection
        logger.info("✓ User %s connected (%s). Total: %d", user_id, connection.id, len(self.connections))
        return connection

    def disconnect(self, connection: Connection) -> None:
        """Forget a connection and drop every subscription it held."""
        if self.connections.pop(connection.id, None) is None:
            return

        for channel in list(connection.channels):
            self._remove(connection, channel)

        logger.info("✗ User %s disconnected (%s). Total: %d", connection.user_id, connection.id, len(self.connections))

    def subscribe(self, connection: Connection, channel: str) -> bool:
        """Add ``connection`` to ``channel``. Returns False if it was already there or is closed."""
        if connection.id not in self.connections or channel in connection.channels:
            return False
        self.channels.setdefault(channel, set()).add(connection)
        connection.channels.add(channel)
        logger.info("→ %s subscribed to %s (%d listeners)", connection.user_id, channel, len(self.channels[channel]))
        return True

    def unsubscribe(self, connection: Connection, channel: str) -> bool:
        """Remove ``connection`` from ``channel``. Returns False if it was not subscribed."""
        if channel not in connection.channels:
            return False
        self._remove(connection, channel)
        logger.info("← %s unsubscribed from %s", connection.user_id, channel)
        return True

    def _remove(self, connection: Connection, channel: str) -> None:
        connection.channels.discard(channel)
        listeners = self.channels.get(channel)
        if listeners is None:
            return
        listeners.discard(connection)
        # Clean up empty channels from memory
        if not listeners:
            del self.channels[channel]
            self._prune_lock(channel)

    def _prune_lock(self, channel: str) -> None:
        if channel in self.channels:
            return
        lock = self._channel_locks.get(channel)
        if lock is not None and not lock.locked():
            del self._channel_locks[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self.channels.get(channel, ()))

    async def send(self, connection: Connection, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        """Send one event to one connection. A failed send disconnects it."""
        try:
            await connection.websocket.send_json({"type": event, **(payload or {})})
            return True
        except Exception as e:
            logger.error("Send error to %s: %s", connection.id, e)
            self.disconnect(connection)
            return False

    async def broadcast(
        self,
        channel: str,
        event: str,
        payload: Dict[str, Any],
        exclude: Optional[Connection] = None,
    ) -> None:
        """
        Fan ``event`` out to every subscriber of ``channel``.

        Args:
            channel: Target channel
            event: Event name, sent as the ``type`` key
            payload: JSON-serializable fields merged into the frame
            exclude: Connection that should not receive it (e.g. the joiner)
        """
        exclude_id = exclude.id if exclude is not None else None
        if self.relay is not None:
            await self.relay.publish(
                channel,
                {"channel": channel, "event": event, "payload": payload, "exclude": exclude_id},
            )
            return
        await self.deliver(channel, event, payload, exclude_id)

    async def deliver(
        self,
        channel: str,
        event: str,
        payload: Dict[str, Any],
        exclude_id: Optional[str] = None,
    ) -> int:
        """Deliver to this instance's subscribers only. Returns how many received it."""
        if channel not in self.channels:
            logger.debug("[routing] Skipped %s: channel=%s has 0 subscribers", event, channel)
            return 0

        delivered = 0
        disconnected = set()
        async with self._channel_locks[channel]:
            # Copy to avoid modification during iteration; the channel may have emptied while waiting
            connections = set(self.channels.get(channel, ()))
            frame = {"type": event, **payload}

            logger.info("📨 %s to %s: %d clients", event, channel, len(connections))
            for connection in connections:
                if connection.id == exclude_id:
                    continue
                try:
                    await connection.websocket.send_json(frame)
                    delivered += 1
                except Exception as e:
                    logger.error("Send error to %s: %s", connection.id, e)
                    disconnected.add(connection)

        # Clean up failed connections
        for connection in disconnected:
            self.disconnect(connection)
        self._prune_lock(channel)
        return delivered

    async def emit_notification(self, user_id: str, notification: Dict[str, Any]) -> None:
        """Push a notification to every live connection of ``user_id``."""
        await self.broadcast(
            notifications_channel(user_id),
            "newNotification",
            {"userId": user_id, "notification": notification},
        )

    def get_channels_info(self) -> Dict[str, int]:
        """Channel -> subscriber count, for /health and debugging."""
        return {channel: len(listeners) for channel, listeners in self.channels.items()}
