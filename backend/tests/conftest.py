"""Shared test fixtures for the rooms backend."""
import pytest
from fastapi.testclient import TestClient

from core.state import build_state
from main import create_app
from models.models import User
from services.store import DocumentStore

USERS = [
    User(id="u1", display_name="Ada", avatar_url="https://example.com/ada.png"),
    User(id="u2", display_name="Grace", avatar_url="https://example.com/grace.png"),
    User(id="u3", display_name="Linus", avatar_url=""),
]


class FakeWebSocket:
    """Records frames sent by the broker; optionally fails every send."""

    def __init__(self, fail: bool = False):
        self.accepted = False
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def types(self):
        return [frame["type"] for frame in self.sent]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store():
    """In-memory store seeded with three known users."""
    store = DocumentStore()
    for user in USERS:
        store.collections["users"][user.id] = user
    return store


@pytest.fixture
def state(store):
    return build_state(store=store)


@pytest.fixture
def room_manager(state):
    return state.room_manager


@pytest.fixture
def message_log(state):
    return state.message_log


@pytest.fixture
def api_client(state):
    """TestClient over a fresh app; one event loop for the whole test."""
    with TestClient(create_app(state)) as client:
        yield client
