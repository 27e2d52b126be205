# backend/api/routes/utils.py

from __future__ import annotations

import logging

from fastapi import HTTPException

from core.errors import ChatError, StoreError

logger = logging.getLogger(__name__)


def to_http_exception(error: ChatError) -> HTTPException:
    """
    Convert a service-layer error into the HTTPException the route raises.

    Store failures are logged here and reach the client only as their
    generic message.
    """
    if isinstance(error, StoreError):
        logger.error("Store error: %s", error.message)
    return HTTPException(status_code=error.status_code, detail=error.message)
