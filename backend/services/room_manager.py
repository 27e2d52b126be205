from __future__ import annotations

import asyncio
import logging
import math
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Tuple

from core.errors import CapacityError, ForbiddenError, NotFoundError, ValidationError
from models.models import Room, RoomDetailView, RoomView
from services.message_log import MessageLog
from services.resolver import resolve_room, resolve_room_detail, resolve_rooms
from services.sanitizer import sanitize_preserving_code_blocks
from services.store import DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_MEMBERS = 50
EMBEDDED_MESSAGE_LIMIT = 100

# ============================================================================
# ROOM DIRECTORY
# ============================================================================
class RoomManager:
    """
    Room CRUD and membership on top of the document store.

    Membership changes and deletes on the same room are serialized with a
    per-room lock, so the ``maxMembers`` ceiling holds even when joins race.

    Attributes:
        store: Document store holding the rooms collection
        message_log: Message log used for the embedded view and delete cascade

    Usage:
        rooms = RoomManager(store, MessageLog(store))
        room = await rooms.create_room("rust-study", "", "u1", max_members=2)
        await rooms.join_room(room.id, "u2")
    """

    def __init__(
        self,
        store: DocumentStore,
        message_log: MessageLog,
        default_max_members: int = DEFAULT_MAX_MEMBERS,
        embedded_message_limit: int = EMBEDDED_MESSAGE_LIMIT,
    ) -> None:
        self.store = store
        self.message_log = message_log
        self.default_max_members = default_max_members
        self.embedded_message_limit = embedded_message_limit
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def _load(self, room_id: str) -> Room:
        room = await self.store.get("rooms", room_id)
        if room is None:
            raise NotFoundError("Room not found")
        return room

    @asynccontextmanager
    async def _locked(self, room_id: str) -> AsyncIterator[Room]:
        """Hold the room's lock and yield the room as it stands under that lock."""
        # Unknown ids fail before a lock is ever created for them
        await self._load(room_id)
        lock = self._locks[room_id]
        async with lock:
            try:
                room = await self._load(room_id)
            except NotFoundError:
                if self._locks.get(room_id) is lock:
                    del self._locks[room_id]
                raise
            yield room

    async def create_room(
        self,
        name: str,
        description: Optional[str],
        creator_id: str,
        is_public: Optional[bool] = None,
        max_members: Optional[int] = None,
        tags: Optional[List[str]] = None,
    ) -> RoomView:
        """
        Create a room with its creator as the first and only member.

        Args:
            name: Room name, trimmed; must not be empty
            description: Free text; HTML escaped outside fenced code blocks
            creator_id: User id of the creator
            is_public: Listed by ``list_rooms`` (default True)
            max_members: Capacity ceiling (default 50)
            tags: Free-text tags used for filtering

        Raises:
            ValidationError: empty name or creator, or a non-positive capacity
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Room name is required")
        if not creator_id:
            raise ValidationError("Room creator is required")
        if max_members is None:
            max_members = self.default_max_members
        if max_members < 1:
            raise ValidationError("maxMembers must be at least 1")

        room = Room(
            name=name,
            description=sanitize_preserving_code_blocks(description),
            creator_id=creator_id,
            members=[creator_id],
            is_public=True if is_public is None else is_public,
            max_members=max_members,
            tags=[tag.strip() for tag in (tags or []) if tag and tag.strip()],
        )
        await self.store.insert("rooms", room)
        logger.info("✓ Created room: %s (%s) by %s", room.name, room.id, creator_id)
        return await resolve_room(room, self.store)

    async def list_rooms(
        self,
        search: Optional[str] = None,
        tags: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[RoomView], int]:
        """
        List public rooms, newest first.

        Args:
            search: Case-insensitive substring of the room name
            tags: Comma-separated tags; a room matches if it has any of them
            page: 1-based page number
            page_size: Rooms per page

        Returns:
            (rooms on this page, total number of pages)
        """
        if page < 1 or page_size < 1:
            raise ValidationError("page and limit must be positive")

        needle = (search or "").strip().lower()
        wanted = {tag.strip() for tag in (tags or "").split(",") if tag.strip()}

        def matches(room: Room) -> bool:
            if not room.is_public:
                return False
            if needle and needle not in room.name.lower():
                return False
            if wanted and not wanted.intersection(room.tags):
                return False
            return True

        total = await self.store.count("rooms", matches)
        rooms = await self.store.find(
            "rooms",
            matches,
            newest_first=True,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        return await resolve_rooms(rooms, self.store), math.ceil(total / page_size)

    async def get_room(self, room_id: str) -> RoomDetailView:
        """Room with members resolved and its most recent messages, oldest first."""
        room = await self._load(room_id)
        messages = await self.message_log.recent_messages(room_id, self.embedded_message_limit)
        return await resolve_room_detail(room, messages, self.store)

    async def join_room(self, room_id: str, user_id: str) -> RoomView:
        """
        Add ``user_id`` to the room. Joining twice is a no-op.

        Raises:
            NotFoundError: unknown room
            CapacityError: the room already holds ``maxMembers`` members
        """
        if not user_id:
            raise ValidationError("userId is required")

        async with self._locked(room_id) as room:
            if user_id in room.members:
                return await resolve_room(room, self.store)
            if len(room.members) >= room.max_members:
                raise CapacityError("Room is full")

            room.members.append(user_id)
            room = await self.store.replace("rooms", room)

        logger.info("→ %s joined room %s (%d/%d)", user_id, room_id, len(room.members), room.max_members)
        return await resolve_room(room, self.store)

    async def leave_room(self, room_id: str, user_id: str) -> None:
        """
        Remove ``user_id`` from the room. Leaving a room you are not in is a no-op.

        Raises:
            NotFoundError: unknown room
            ForbiddenError: ``user_id`` is the creator
        """
        async with self._locked(room_id) as room:
            if user_id == room.creator_id:
                raise ForbiddenError("Creator cannot leave the room")
            if user_id not in room.members:
                return

            room.members = [member for member in room.members if member != user_id]
            await self.store.replace("rooms", room)

        logger.info("← %s left room %s", user_id, room_id)

    async def delete_room(self, room_id: str) -> None:
        """
        Delete a room and all of its messages, messages first.

        The two deletes are not atomic: if removing the room fails after its
        messages are gone, the messages stay deleted and the error propagates.
        """
        async with self._locked(room_id):
            await self.message_log.delete_room_messages(room_id)
            await self.store.delete("rooms", room_id)
        self._locks.pop(room_id, None)
        logger.info("✓ Deleted room: %s", room_id)
