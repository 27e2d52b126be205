# backend/api/routes/notifications.py

from fastapi import APIRouter, Depends

from api.deps import get_state
from core.state import AppState
from models.models import NotificationRequest

router = APIRouter(tags=["Notifications"])


@router.post("/notifications/{user_id}", status_code=202)
async def push_notification(user_id: str, request: NotificationRequest, state: AppState = Depends(get_state)):
    """
    Push a notification to a user's live connections.

    Called by notification producers after they persist the notification
    elsewhere. Users with no live connection simply miss the push and pick
    the notification up on their next fetch.
    """
    await state.connection_manager.emit_notification(user_id, request.notification)
    return {"status": "sent", "userId": user_id}
