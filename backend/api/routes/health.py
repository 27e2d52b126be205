# backend/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from api.deps import get_state
from core.state import AppState

router = APIRouter()

@router.get("/health")
async def health(state: AppState = Depends(get_state)):
    """
    Health check endpoint.

    Returns current system status, live connection count and channel counts.
    Used by container health checks and monitoring.
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    return {
        "status": "healthy",
        "pubSubService": "redis" if state.redis_service is not None else "memory",
        "uptimeSeconds": round(uptime_seconds, 1),
        "connections": len(state.connection_manager.connections),
        "rooms": await state.store.count("rooms"),
        "activeChannels": len(state.connection_manager.channels),
    }
