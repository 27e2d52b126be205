# backend/services/message_log.py

from __future__ import annotations

import logging
from typing import List

from core.errors import NotFoundError, StoreError, ValidationError
from models.models import MessageType, MessageView, RoomMessage
from services.resolver import resolve_messages
from services.sanitizer import sanitize_preserving_code_blocks
from services.store import DocumentStore

logger = logging.getLogger(__name__)

# ============================================================================
# MESSAGE LOG
# ============================================================================
class MessageLog:
    """
    Append-only log of chat messages, scoped by room.

    The log is the source of truth for a room's history. Each append also
    pushes the new id onto the room's ``messageRefs``; that index is a
    denormalized copy and may lag the log if the second write fails.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def append_message(
        self,
        room_id: str,
        author_id: str,
        content: str,
        message_type: str | MessageType = MessageType.TEXT,
    ) -> MessageView:
        """
        Persist a message and index it on its room.

        Raises:
            ValidationError: empty content/author or unknown message type
            NotFoundError: the room does not exist
            StoreError: either write failed
        """
        content = sanitize_preserving_code_blocks(content)
        if not content:
            raise ValidationError("Message content is required")
        if not author_id:
            raise ValidationError("Message author is required")
        try:
            message_type = MessageType(message_type or MessageType.TEXT)
        except ValueError:
            raise ValidationError(f"Invalid message type: {message_type}") from None

        if await self.store.get("rooms", room_id) is None:
            raise NotFoundError("Room not found")

        message = RoomMessage(
            room_id=room_id,
            author_id=author_id,
            content=content,
            message_type=message_type,
        )
        await self.store.insert("room_messages", message)

        if not await self.store.push("rooms", room_id, "message_refs", message.id):
            # Room deleted between the two writes; the message stays in the log.
            logger.warning("Message %s persisted but room %s is gone", message.id, room_id)
            raise StoreError("Room removed while sending message")

        logger.info("✉ Message %s appended to room %s by %s", message.id, room_id, author_id)
        views = await resolve_messages([message], self.store)
        return views[0]

    async def list_messages(self, room_id: str, page: int = 1, page_size: int = 50) -> List[MessageView]:
        """
        Page through a room's history.

        Page 1 is always the most recent ``page_size`` messages; within a page
        messages read oldest-to-newest.
        """
        if page < 1 or page_size < 1:
            raise ValidationError("page and limit must be positive")

        messages = await self.store.find(
            "room_messages",
            lambda m: m.room_id == room_id,
            newest_first=True,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        messages.reverse()
        return await resolve_messages(messages, self.store)

    async def recent_messages(self, room_id: str, limit: int = 100) -> List[RoomMessage]:
        """The ``limit`` most recent messages of a room, oldest first, unresolved."""
        messages = await self.store.find(
            "room_messages",
            lambda m: m.room_id == room_id,
            newest_first=True,
            limit=limit,
        )
        messages.reverse()
        return messages

    async def delete_room_messages(self, room_id: str) -> int:
        deleted = await self.store.delete_many("room_messages", lambda m: m.room_id == room_id)
        logger.info("✓ Deleted %d messages of room %s", deleted, room_id)
        return deleted
