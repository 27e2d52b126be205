# backend/models/models.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class CamelModel(BaseModel):
    """Serializes as camelCase on the wire, accepts either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageType(str, Enum):
    TEXT = "text"
    CODE = "code"
    SYSTEM = "system"


# ============================================================================
# STORED DOCUMENTS
# ============================================================================

class User(CamelModel):
    id: str
    display_name: str = ""
    avatar_url: str = ""


class Room(CamelModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    creator_id: str
    members: List[str] = Field(default_factory=list)
    is_public: bool = True
    max_members: int = 50
    tags: List[str] = Field(default_factory=list)
    message_refs: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class RoomMessage(CamelModel):
    id: str = Field(default_factory=new_id)
    room_id: str
    author_id: str
    content: str
    message_type: MessageType = MessageType.TEXT
    created_at: datetime = Field(default_factory=utcnow)


# ============================================================================
# RESOLVED VIEWS
# ============================================================================

class UserSummary(CamelModel):
    id: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class MessageView(CamelModel):
    id: str
    room_id: str
    author: UserSummary
    content: str
    message_type: MessageType
    created_at: datetime


class RoomView(CamelModel):
    id: str
    name: str
    description: str
    creator: UserSummary
    members: List[UserSummary]
    is_public: bool
    max_members: int
    tags: List[str]
    created_at: datetime
    updated_at: datetime


class RoomDetailView(RoomView):
    messages: List[MessageView] = Field(default_factory=list)


class RoomListResponse(CamelModel):
    rooms: List[RoomView]
    total_pages: int


# ============================================================================
# REQUESTS
# ============================================================================

class CreateRoomRequest(CamelModel):
    name: str = ""
    description: Optional[str] = ""
    creator_id: str = ""
    is_public: Optional[bool] = None
    max_members: Optional[int] = None
    tags: Optional[List[str]] = None


class MembershipRequest(CamelModel):
    user_id: str


class NotificationRequest(CamelModel):
    notification: dict
