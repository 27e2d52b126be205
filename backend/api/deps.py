# backend/api/deps.py

from __future__ import annotations

from fastapi import Request, WebSocket

from core.state import AppState


def get_state(request: Request) -> AppState:
    return request.app.state.chat


def get_ws_state(websocket: WebSocket) -> AppState:
    return websocket.app.state.chat
