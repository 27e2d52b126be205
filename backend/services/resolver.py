# backend/services/resolver.py

from __future__ import annotations

from typing import Dict, Iterable, List

from models.models import (
    MessageView,
    Room,
    RoomDetailView,
    RoomMessage,
    RoomView,
    User,
    UserSummary,
)
from services.store import DocumentStore

# ============================================================================
# READ-TIME REFERENCE RESOLUTION
# ============================================================================
# Rooms and messages store bare user ids. Before anything leaves the service
# layer those ids are swapped for display-ready summaries fetched from the
# users collection. Nothing here writes to the store.


def summarize(user_id: str, users: Dict[str, User]) -> UserSummary:
    """Summary for ``user_id``; ids missing from the users collection keep only the id."""
    user = users.get(user_id)
    if user is None:
        return UserSummary(id=user_id)
    return UserSummary(id=user.id, display_name=user.display_name, avatar_url=user.avatar_url)


async def load_users(store: DocumentStore, user_ids: Iterable[str]) -> Dict[str, User]:
    return await store.get_many("users", list(dict.fromkeys(user_ids)))


async def resolve_room(room: Room, store: DocumentStore) -> RoomView:
    users = await load_users(store, [room.creator_id, *room.members])
    return _room_view(room, users)


async def resolve_rooms(rooms: List[Room], store: DocumentStore) -> List[RoomView]:
    user_ids = [uid for room in rooms for uid in (room.creator_id, *room.members)]
    users = await load_users(store, user_ids)
    return [_room_view(room, users) for room in rooms]


async def resolve_messages(messages: List[RoomMessage], store: DocumentStore) -> List[MessageView]:
    users = await load_users(store, [m.author_id for m in messages])
    return [_message_view(m, users) for m in messages]


async def resolve_room_detail(
    room: Room, messages: List[RoomMessage], store: DocumentStore
) -> RoomDetailView:
    users = await load_users(
        store, [room.creator_id, *room.members, *(m.author_id for m in messages)]
    )
    view = _room_view(room, users)
    return RoomDetailView(
        **view.model_dump(),
        messages=[_message_view(m, users) for m in messages],
    )


def _room_view(room: Room, users: Dict[str, User]) -> RoomView:
    return RoomView(
        id=room.id,
        name=room.name,
        description=room.description,
        creator=summarize(room.creator_id, users),
        members=[summarize(uid, users) for uid in room.members],
        is_public=room.is_public,
        max_members=room.max_members,
        tags=list(room.tags),
        created_at=room.created_at,
        updated_at=room.updated_at,
    )


def _message_view(message: RoomMessage, users: Dict[str, User]) -> MessageView:
    return MessageView(
        id=message.id,
        room_id=message.room_id,
        author=summarize(message.author_id, users),
        content=message.content,
        message_type=message.message_type,
        created_at=message.created_at,
    )
