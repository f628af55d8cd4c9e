"""Shared fixtures for travel companion tests."""
import pytest

from travel_companion.errors import TransportError
from travel_companion.models.trip import TripRepository
from travel_companion.services.session import TripSession
from travel_companion.services.store import SQLiteTripStore


class FakeTransport:
    """Chat transport that replays scripted replies and records every request."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.requests = []

    async def chat(self, messages):
        self.requests.append([dict(m) for m in messages])
        if not self.replies:
            raise TransportError("No scripted reply")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def store():
    store = SQLiteTripStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def trips():
    return TripRepository()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def session(store, transport):
    return TripSession(store, transport, reply_timeout=1.0)
