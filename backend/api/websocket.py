# backend/api/websocket.py

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.deps import get_ws_state
from core.errors import ChatError, NotFoundError, ValidationError
from core.state import AppState
from services.connection_manager import (
    Connection,
    blogpost_channel,
    notifications_channel,
    room_channel,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def require(message: Dict[str, Any], key: str, text: bool = True) -> Any:
    """Fetch a required field; ids and text fields must be non-empty strings."""
    value = message.get(key)
    if value is None or value == "":
        raise ValidationError(f"{key} is required")
    if text and not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


def optional_text(message: Dict[str, Any], key: str, default: str) -> str:
    value = message.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


# ============================================================================
# ACTION HANDLERS
# ============================================================================

async def handle_join_room(state: AppState, connection: Connection, message: Dict[str, Any]) -> None:
    room_id = require(message, "roomId")
    if await state.store.get("rooms", room_id) is None:
        raise NotFoundError("Room not found")

    manager = state.connection_manager
    channel = room_channel(room_id)
    if manager.subscribe(connection, channel):
        await manager.broadcast(
            channel,
            "userJoined",
            {"roomId": room_id, "userId": connection.user_id, "connectionId": connection.id},
            exclude=connection,
        )
    await manager.send(connection, "roomJoined", {"roomId": room_id})


async def handle_leave_room(state: AppState, connection: Connection, message: Dict[str, Any]) -> None:
    room_id = require(message, "roomId")
    manager = state.connection_manager
    channel = room_channel(room_id)
    if manager.unsubscribe(connection, channel):
        await manager.broadcast(
            channel,
            "userLeft",
            {"roomId": room_id, "userId": connection.user_id, "connectionId": connection.id},
        )
    await manager.send(connection, "roomLeft", {"roomId": room_id})


async def handle_send_message(state: AppState, connection: Connection, message: Dict[str, Any]) -> None:
    """
    Persist a chat message and broadcast it to the whole room, sender included.

    Clients render messages only from this broadcast, never optimistically,
    so every view of the room comes from the same authoritative frame.
    """
    room_id = require(message, "roomId")
    view = await state.message_log.append_message(
        room_id=room_id,
        author_id=optional_text(message, "authorId", connection.user_id),
        content=optional_text(message, "content", ""),
        message_type=optional_text(message, "messageType", "text"),
    )
    await state.connection_manager.broadcast(
        room_channel(room_id),
        "receiveMessage",
        {"message": view.model_dump(mode="json", by_alias=True)},
    )


async def handle_notifications(state: AppState, connection: Connection, message: Dict[str, Any], subscribe: bool) -> None:
    user_id = optional_text(message, "userId", connection.user_id)
    channel = notifications_channel(user_id)
    if subscribe:
        state.connection_manager.subscribe(connection, channel)
    else:
        state.connection_manager.unsubscribe(connection, channel)


async def handle_blog_post(state: AppState, connection: Connection, message: Dict[str, Any], subscribe: bool) -> None:
    channel = blogpost_channel(require(message, "postId"))
    if subscribe:
        state.connection_manager.subscribe(connection, channel)
    else:
        state.connection_manager.unsubscribe(connection, channel)


async def handle_new_comment(state: AppState, connection: Connection, message: Dict[str, Any]) -> None:
    """Relay a comment that was already persisted elsewhere."""
    post_id = require(message, "postId")
    comment = require(message, "comment", text=False)
    await state.connection_manager.broadcast(
        blogpost_channel(post_id),
        "commentAdded",
        {"postId": post_id, "comment": comment},
    )


async def handle_vote_update(state: AppState, connection: Connection, message: Dict[str, Any]) -> None:
    """Relay the current vote tally of a post."""
    post_id = require(message, "postId")
    await state.connection_manager.broadcast(
        blogpost_channel(post_id),
        "voteChanged",
        {
            "postId": post_id,
            "upvotes": message.get("upvotes", 0),
            "downvotes": message.get("downvotes", 0),
            "voteType": message.get("type"),
        },
    )


async def dispatch(state: AppState, connection: Connection, message: Dict[str, Any]) -> None:
    action = message.get("action")

    if action == "joinRoom":
        await handle_join_room(state, connection, message)
    elif action == "leaveRoom":
        await handle_leave_room(state, connection, message)
    elif action == "sendMessage":
        await handle_send_message(state, connection, message)
    elif action == "subscribeNotifications":
        await handle_notifications(state, connection, message, subscribe=True)
    elif action == "unsubscribeNotifications":
        await handle_notifications(state, connection, message, subscribe=False)
    elif action == "joinBlogPost":
        await handle_blog_post(state, connection, message, subscribe=True)
    elif action == "leaveBlogPost":
        await handle_blog_post(state, connection, message, subscribe=False)
    elif action == "newComment":
        await handle_new_comment(state, connection, message)
    elif action == "voteUpdate":
        await handle_vote_update(state, connection, message)
    else:
        raise ValidationError(f"Unknown action: {action}")


# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, user_id: str = "anonymous"):
    """
    WebSocket endpoint for real-time room chat, post updates and notifications.

    Protocol:
    =========

    Client -> Server Actions:
    -------------------------
    Join Room:
        {"action": "joinRoom", "roomId": "abc"}
        Self: {"type": "roomJoined", "roomId": "abc"}
        Others in room: {"type": "userJoined", "roomId": "abc", "userId": "...", "connectionId": "..."}

    Leave Room:
        {"action": "leaveRoom", "roomId": "abc"}
        Self: {"type": "roomLeft", "roomId": "abc"}
        Remaining: {"type": "userLeft", ...}

    Send Message:
        {"action": "sendMessage", "roomId": "abc", "content": "hi", "messageType": "text"}
        Everyone in room, sender included:
            {"type": "receiveMessage", "message": {"id": "...", "author": {...}, ...}}

    Notifications:
        {"action": "subscribeNotifications", "userId": "u1"}
        {"action": "unsubscribeNotifications", "userId": "u1"}
        Pushed later: {"type": "newNotification", "userId": "u1", "notification": {...}}

    Blog Posts:
        {"action": "joinBlogPost", "postId": "p1"} / {"action": "leaveBlogPost", "postId": "p1"}
        {"action": "newComment", "postId": "p1", "comment": {...}}
            -> {"type": "commentAdded", "postId": "p1", "comment": {...}}
        {"action": "voteUpdate", "postId": "p1", "upvotes": 3, "downvotes": 1, "type": "upvote"}
            -> {"type": "voteChanged", "postId": "p1", "upvotes": 3, "downvotes": 1, "voteType": "upvote"}

    Error (sender only):
        {"type": "error", "action": "sendMessage", "message": "..."}

    Lifecycle:
    ==========
    1. Client connects with user_id query parameter
    2. Client joins/subscribes to the channels it wants
    3. On disconnect every subscription is dropped; a reconnecting client
       re-fetches state over REST instead of expecting missed events
    """
    state = get_ws_state(websocket)
    manager = state.connection_manager
    connection = await manager.connect(websocket, user_id)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await manager.send(connection, "error", {"message": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await manager.send(connection, "error", {"message": "Expected a JSON object"})
                continue

            action = message.get("action")
            logger.debug("Websocket input from %s: action=%s", connection.id, action)
            try:
                await dispatch(state, connection, message)
            except ChatError as e:
                logger.info("Action %s from %s failed: %s", action, connection.user_id, e.message)
                await manager.send(connection, "error", {"action": action, "message": e.message})

    except WebSocketDisconnect:
        manager.disconnect(connection)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
        manager.disconnect(connection)
