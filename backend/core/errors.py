# backend/core/errors.py

from __future__ import annotations


class ChatError(Exception):
    """Base class for failures surfaced to REST and WebSocket callers."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    """A required field is missing or empty."""

    status_code = 400


class NotFoundError(ChatError):
    status_code = 404


class CapacityError(ChatError):
    """Room already holds maxMembers members."""

    status_code = 400


class ForbiddenError(ChatError):
    """The operation is not allowed for this user (e.g. the creator leaving)."""

    status_code = 400


class StoreError(ChatError):
    """Underlying persistence failure. The message never carries internal detail."""

    status_code = 500
