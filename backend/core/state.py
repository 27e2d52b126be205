# backend/core/state.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from core.config import Settings, settings as default_settings
from services.connection_manager import ConnectionManager
from services.message_log import MessageLog
from services.redis_pub_sub import AsyncRedisPubSubService
from services.room_manager import RoomManager
from services.store import DocumentStore


@dataclass
class AppState:
    """Everything one app instance shares between requests and sockets."""

    store: DocumentStore
    message_log: MessageLog
    room_manager: RoomManager
    connection_manager: ConnectionManager
    redis_service: Optional[AsyncRedisPubSubService] = None
    app_start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def build_state(config: Settings = default_settings, store: Optional[DocumentStore] = None) -> AppState:
    """
    Wire the services together.

    The Redis relay is created here but only connected on startup, so
    building state never touches the network.
    """
    if store is None:
        store = DocumentStore(data_file=config.DATA_FILE)
        store.load()

    message_log = MessageLog(store)
    room_manager = RoomManager(
        store,
        message_log,
        default_max_members=config.DEFAULT_MAX_MEMBERS,
        embedded_message_limit=config.EMBEDDED_MESSAGE_LIMIT,
    )

    redis_service = None
    if config.PUB_SUB_SERVICE == "redis":
        redis_service = AsyncRedisPubSubService(host=config.REDIS_HOST, port=config.REDIS_PORT)

    return AppState(
        store=store,
        message_log=message_log,
        room_manager=room_manager,
        connection_manager=ConnectionManager(relay=redis_service),
        redis_service=redis_service,
    )
