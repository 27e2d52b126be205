# backend/api/routes/rooms.py

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from api.deps import get_state
from api.routes.utils import to_http_exception
from core.config import settings
from core.errors import ChatError
from core.state import AppState
from models.models import (
    CreateRoomRequest,
    MembershipRequest,
    MessageView,
    RoomDetailView,
    RoomListResponse,
    RoomView,
)
from services.connection_manager import room_channel

router = APIRouter(tags=["Rooms"])

# ============================================================================
# ROOM CRUD ENDPOINTS
# ============================================================================

@router.get("/rooms", response_model=RoomListResponse)
async def list_rooms(
    search: Optional[str] = None,
    tags: Optional[str] = None,
    page: int = 1,
    limit: int = Query(default=settings.ROOM_PAGE_SIZE),
    state: AppState = Depends(get_state),
):
    """
    List public rooms, newest first.

    Args:
        search: Case-insensitive substring of the room name
        tags: Comma-separated tags; rooms carrying any of them match
        page: 1-based page number
        limit: Rooms per page

    Returns:
        RoomListResponse: {"rooms": [...], "totalPages": N}
    """
    try:
        rooms, total_pages = await state.room_manager.list_rooms(search, tags, page, limit)
    except ChatError as e:
        raise to_http_exception(e)
    return RoomListResponse(rooms=rooms, total_pages=total_pages)


@router.post("/rooms", response_model=RoomView, status_code=201)
async def create_room(request: CreateRoomRequest, state: AppState = Depends(get_state)):
    """
    Create a new room. The creator becomes its first member.

    Raises:
        HTTPException: 400 if name or creator is empty, 500 on store error
    """
    try:
        return await state.room_manager.create_room(
            name=request.name,
            description=request.description,
            creator_id=request.creator_id,
            is_public=request.is_public,
            max_members=request.max_members,
            tags=request.tags,
        )
    except ChatError as e:
        raise to_http_exception(e)


@router.get("/rooms/{room_id}", response_model=RoomDetailView)
async def get_room(room_id: str, state: AppState = Depends(get_state)):
    """
    Room with resolved members and its most recent messages, oldest first.

    Raises:
        HTTPException: 404 if room not found
    """
    try:
        return await state.room_manager.get_room(room_id)
    except ChatError as e:
        raise to_http_exception(e)


@router.post("/rooms/{room_id}/join", response_model=RoomView)
async def join_room(room_id: str, request: MembershipRequest, state: AppState = Depends(get_state)):
    """
    Add a user to a room. Joining a room you are already in is a no-op.

    Raises:
        HTTPException: 404 if room not found, 400 if the room is full
    """
    try:
        return await state.room_manager.join_room(room_id, request.user_id)
    except ChatError as e:
        raise to_http_exception(e)


@router.post("/rooms/{room_id}/leave")
async def leave_room(room_id: str, request: MembershipRequest, state: AppState = Depends(get_state)):
    """
    Remove a user from a room.

    Raises:
        HTTPException: 404 if room not found, 400 if the user is the creator
    """
    try:
        await state.room_manager.leave_room(room_id, request.user_id)
    except ChatError as e:
        raise to_http_exception(e)
    return {"message": "Left room successfully"}


@router.delete("/rooms/{room_id}")
async def delete_room(room_id: str, state: AppState = Depends(get_state)):
    """
    Delete a room and every message in it.

    Live subscribers of the room channel are told with a ``roomDeleted``
    event; their subscriptions end when they leave or disconnect.

    Raises:
        HTTPException: 404 if room not found

    TODO: Add authorization check (only creator should be able to delete)
    """
    try:
        await state.room_manager.delete_room(room_id)
    except ChatError as e:
        raise to_http_exception(e)

    await state.connection_manager.broadcast(room_channel(room_id), "roomDeleted", {"roomId": room_id})
    return {"message": "Room deleted successfully"}


@router.get("/rooms/{room_id}/messages", response_model=List[MessageView])
async def get_room_messages(
    room_id: str,
    page: int = 1,
    limit: int = Query(default=settings.MESSAGE_PAGE_SIZE),
    state: AppState = Depends(get_state),
):
    """
    One page of a room's history. Page 1 holds the most recent messages;
    within a page messages read oldest-to-newest.
    """
    try:
        return await state.message_log.list_messages(room_id, page, limit)
    except ChatError as e:
        raise to_http_exception(e)
