# backend/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "message": "Community Rooms API",
        "version": "1.0",
        "channels": ["room:<roomId>", "blogpost:<postId>", "notifications:<userId>"],
        "endpoints": {
            "websocket": "/ws",
            "rooms": "/rooms",
            "notifications": "/notifications/{user_id}",
            "health": "/health",
        },
    }
