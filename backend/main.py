# backend/main.py

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from core.logging import setup_logging
from core.state import AppState, build_state
from api.routes import root, health, rooms, notifications
from api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = logging.getLogger(__name__)


def create_app(app_state: Optional[AppState] = None) -> FastAPI:
    """
    Build the FastAPI app around one AppState.

    Tests pass their own state (fresh in-memory store); the module-level
    ``app`` below builds one from the environment.
    """
    app = FastAPI(title="Community Rooms")
    app.state.chat = app_state if app_state is not None else build_state(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # REST routes
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(rooms.router)
    app.include_router(notifications.router)

    # WebSocket routes
    app.include_router(websocket_module.router)

    @app.on_event("startup")
    async def startup_event():
        state: AppState = app.state.chat
        logger.info("🚀 Application starting - fan-out via %s", "redis" if state.redis_service else "memory")

        if state.redis_service is not None:
            await state.redis_service.connect()
            # Start subscriber in background
            app.state.redis_listener = asyncio.create_task(
                state.redis_service.listen(state.connection_manager)
            )

    @app.on_event("shutdown")
    async def on_shutdown():
        state: AppState = app.state.chat
        listener = getattr(app.state, "redis_listener", None)
        if listener is not None:
            listener.cancel()
            try:
                await listener
            except asyncio.CancelledError:
                pass
        if state.redis_service is not None:
            await state.redis_service.close()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
