"""
Test configuration and fixtures for booking service tests.

Uses the in-memory key/value store and a fixed "today" so date handling
is deterministic.
"""

import pytest
from datetime import date
from unittest.mock import patch
from fastapi.testclient import TestClient

from roombot.booking.app import app
from roombot.booking.config import BookingConfig
from roombot.booking.dispatcher import ConversationDispatcher
from roombot.booking.fsm_manager import build_engine
from roombot.shared.kv_store import InMemoryKeyValueStore

# Tuesday
TODAY = date(2030, 1, 15)


@pytest.fixture
def test_config():
    """Test configuration fixture"""
    return BookingConfig(
        store_backend="memory",
        session_ttl=1800,
        max_retries=3,
        max_text_length=100,
    )


@pytest.fixture
def kv():
    """Fresh in-memory key/value store"""
    return InMemoryKeyValueStore()


@pytest.fixture
def engine(test_config, kv):
    """Booking engine pinned to TODAY"""
    return build_engine(test_config, kv, today=lambda: TODAY)


@pytest.fixture
def dispatcher(engine):
    return ConversationDispatcher(engine)


@pytest.fixture
def client(test_config, kv, engine, dispatcher):
    """FastAPI test client with the engine wired into the app globals"""
    with patch('roombot.booking.app.config', test_config), \
         patch('roombot.booking.app.kv_store', kv), \
         patch('roombot.booking.app.engine', engine), \
         patch('roombot.booking.app.dispatcher', dispatcher):
        yield TestClient(app)
