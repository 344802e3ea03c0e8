"""
API Integration Tests for Roombot Meeting Room Booking Service

Tests FastAPI endpoints against the in-memory key/value store.
"""

import pytest
from unittest.mock import AsyncMock, patch

from .. import app as app_module
from ..app import app, lifespan
from ..models import CancelOutcome
from ..replies import REASON_MESSAGES
from roombot.shared.kv_store import RedisKeyValueStore, StoreLockTimeout
from .conftest import TODAY


def _event(client, user_id, text=None, data=None):
    body = {"user_id": user_id, "type": "postback" if data else "message"}
    if text is not None:
        body["text"] = text
    if data is not None:
        body["data"] = data
    response = client.post("/api/v1/events", json=body)
    assert response.status_code == 200
    return response.json()


def _book(client, user_id, room_id=1, day="today", slot="time_09:00_10:00", title="Standup", organizer="Alice"):
    _event(client, user_id, data=f"room_{room_id}")
    _event(client, user_id, text=day)
    _event(client, user_id, data=slot)
    _event(client, user_id, text=title)
    return _event(client, user_id, text=organizer)


def _to_organizer(client, *user_ids):
    """Bring several users to the organizer question for the same slot"""
    for user_id in user_ids:
        _event(client, user_id, data="room_1")
        _event(client, user_id, text="today")
        _event(client, user_id, data="time_09:00_10:00")
        _event(client, user_id, text="Planning")


# ============================================================================
# API Endpoint Tests
# ============================================================================

class TestAPIEndpoints:
    """Test API endpoints"""

    def test_root_endpoint(self, client):
        """Test root endpoint returns service info"""
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["service"] == "Roombot Meeting Room Booking Service"
        assert "events" in data["endpoints"]

    def test_health_endpoint(self, client):
        """Test health check endpoint"""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["store_backend"] == "memory"
        assert data["store_connected"] is True
        assert data["config_valid"] is True
        assert "uptime_seconds" in data

    def test_list_rooms(self, client):
        response = client.get("/api/v1/rooms")
        assert response.status_code == 200
        assert response.json() == [
            {"id": 1, "name": "Large Meeting Room", "capacity": 20},
            {"id": 2, "name": "Small Meeting Room", "capacity": 8},
            {"id": 3, "name": "Medium Meeting Room", "capacity": 12},
        ]

    def test_booking_flow_via_events(self, client):
        """Test complete booking flow via the events endpoint"""
        data = _event(client, "U1", text="book")
        assert data["outcome"] == "rooms"

        data = _event(client, "U1", data="room_2")
        assert data["outcome"] == "session_started"

        data = _event(client, "U1", text="today")
        assert data["outcome"] == "advanced"
        assert {"label": "09:00-10:00", "text": None, "data": "time_09:00_10:00"} in data["quick_replies"]

        data = _event(client, "U1", data="time_09:00_10:00")
        assert data["outcome"] == "advanced"

        data = _event(client, "U1", text="Sprint Review")
        assert data["outcome"] == "advanced"

        data = _event(client, "U1", text="Bob")
        assert data["outcome"] == "booking_confirmed"
        assert "Sprint Review" in data["text"]

        response = client.get("/api/v1/users/U1/bookings")
        assert response.status_code == 200
        bookings = response.json()
        assert len(bookings) == 1
        assert bookings[0]["room_id"] == 2
        assert bookings[0]["date"] == TODAY.isoformat()
        assert bookings[0]["start_time"] == "09:00"
        assert bookings[0]["end_time"] == "10:00"
        assert bookings[0]["status"] == "confirmed"

    def test_reprompt_via_events(self, client):
        _event(client, "U1", data="room_1")

        data = _event(client, "U1", text="2030-02-30")
        assert data["outcome"] == "reprompt"
        assert REASON_MESSAGES["invalid_calendar_date"] in data["text"]

    def test_conflict_via_events(self, client):
        _to_organizer(client, "U1", "U2")

        assert _event(client, "U1", text="Alice")["outcome"] == "booking_confirmed"
        assert _event(client, "U2", text="Bob")["outcome"] == "booking_conflict"

        status = client.get("/api/v1/rooms/status").json()
        assert len(status[0]["bookings"]) == 1

    def test_rooms_status(self, client):
        _book(client, "U1", room_id=3, title="Retro")

        response = client.get("/api/v1/rooms/status")
        assert response.status_code == 200
        data = response.json()

        assert [entry["room"]["id"] for entry in data] == [1, 2, 3]
        assert data[0]["status"] == "free"
        assert data[0]["date"] == TODAY.isoformat()
        assert data[2]["status"] == "occupied"
        assert data[2]["free_slots"] == 7
        assert data[2]["bookings"][0]["title"] == "Retro"

        other_day = client.get("/api/v1/rooms/status", params={"date": "2030-03-01"}).json()
        assert all(entry["status"] == "free" for entry in other_day)

    def test_room_availability(self, client):
        _book(client, "U1", room_id=1, slot="time_13:00_14:00")

        response = client.get("/api/v1/rooms/1/availability", params={"date": TODAY.isoformat()})
        assert response.status_code == 200
        data = response.json()
        assert data["room_id"] == 1
        labels = [slot["label"] for slot in data["slots"]]
        assert "13:00-14:00" not in labels
        assert len(labels) == 7

    def test_room_availability_unknown_room(self, client):
        response = client.get("/api/v1/rooms/99/availability")
        assert response.status_code == 404

    def test_invalid_date_query(self, client):
        response = client.get("/api/v1/rooms/1/availability", params={"date": "2030-13-40"})
        assert response.status_code == 422

    def test_cancel_booking(self, client):
        data = _book(client, "U1")
        booking_id = data["quick_replies"][0]["data"][len("cancel_"):]

        response = client.post(f"/api/v1/bookings/{booking_id}/cancel", json={"user_id": "U2"})
        assert response.status_code == 404

        response = client.post(f"/api/v1/bookings/{booking_id}/cancel", json={"user_id": "U1"})
        assert response.status_code == 200
        assert response.json() == {"booking_id": booking_id, "result": CancelOutcome.CANCELLED.value}

        response = client.post(f"/api/v1/bookings/{booking_id}/cancel", json={"user_id": "U1"})
        assert response.status_code == 404

        assert client.get("/api/v1/users/U1/bookings").json() == []
        history = client.get("/api/v1/users/U1/bookings", params={"include_cancelled": "true"}).json()
        assert history[0]["status"] == "cancelled"

    def test_user_session_endpoints(self, client):
        response = client.get("/api/v1/users/U1/session")
        assert response.status_code == 404

        _event(client, "U1", data="room_1")
        response = client.get("/api/v1/users/U1/session")
        assert response.status_code == 200
        assert response.json()["step"] == "awaiting_date"

        response = client.delete("/api/v1/users/U1/session")
        assert response.status_code == 200

        response = client.delete("/api/v1/users/U1/session")
        assert response.status_code == 404

    def test_metrics_endpoint(self, client):
        _to_organizer(client, "U1", "U2")
        _event(client, "U1", text="Alice")
        _event(client, "U2", text="Bob")
        _event(client, "U3", data="room_2")
        _event(client, "U4", data="room_3")
        _event(client, "U4", text="cancel")

        response = client.get("/metrics")
        assert response.status_code == 200

        data = response.json()
        assert data["total_sessions_created"] == 4
        assert data["completed_bookings_count"] == 1
        assert data["conflicts_count"] == 1
        assert data["abandoned_sessions_count"] == 1
        assert data["active_sessions_count"] == 1
        assert data["cancelled_bookings_count"] == 0

    def test_admin_clear_sessions(self, client):
        _event(client, "U1", data="room_1")
        _event(client, "U2", data="room_2")
        _book(client, "U3")

        response = client.post("/admin/clear_sessions")
        assert response.status_code == 200
        assert response.json()["sessions_deleted"] == 2

        # Bookings survive
        assert len(client.get("/api/v1/users/U3/bookings").json()) == 1


# ============================================================================
# Error Handling Tests
# ============================================================================

class TestErrorHandling:
    """Test error handling scenarios"""

    def test_invalid_event_type(self, client):
        response = client.post("/api/v1/events", json={"user_id": "U1", "type": "follow"})
        assert response.status_code == 422

    def test_missing_user_id(self, client):
        response = client.post("/api/v1/events", json={"type": "message", "text": "book"})
        assert response.status_code == 422

    def test_service_unavailable_without_config(self, client):
        with patch('roombot.booking.app.engine', None):
            response = client.get("/api/v1/rooms")
            assert response.status_code == 503

            response = client.post("/api/v1/events", json={"user_id": "U1", "type": "message", "text": "book"})
            assert response.status_code == 503

    def test_lock_timeout_maps_to_503(self, client, dispatcher):
        with patch.object(dispatcher, "handle_event", AsyncMock(side_effect=StoreLockTimeout("session:U1"))):
            response = client.post("/api/v1/events", json={"user_id": "U1", "type": "message", "text": "today"})
            assert response.status_code == 503

    def test_health_without_config(self, client):
        with patch('roombot.booking.app.config', None):
            data = client.get("/health").json()
            assert data["status"] == "unhealthy"
            assert data["config_valid"] is False


def test_app_title():
    assert app.title == "Roombot Meeting Room Booking Service"


@pytest.mark.parametrize("path", ["/api/v1/rooms", "/api/v1/rooms/status", "/health", "/metrics"])
def test_read_endpoints_respond(client, path):
    assert client.get(path).status_code == 200


# ============================================================================
# Startup
# ============================================================================

@pytest.fixture
def app_globals():
    """Restore the app globals the lifespan assigns"""
    with patch('roombot.booking.app.config', None), \
         patch('roombot.booking.app.kv_store', None), \
         patch('roombot.booking.app.engine', None), \
         patch('roombot.booking.app.dispatcher', None):
        yield


class TestLifespan:
    """Test store selection at startup"""

    @pytest.mark.asyncio
    async def test_redis_unreachable_fails_startup(self, monkeypatch, app_globals):
        monkeypatch.setenv("ROOMBOT_STORE_BACKEND", "redis")

        with patch('roombot.booking.app.get_redis_client', AsyncMock(side_effect=ConnectionError("down"))):
            with pytest.raises(ConnectionError):
                async with lifespan(app):
                    pass

    @pytest.mark.asyncio
    async def test_redis_backend_selected(self, monkeypatch, app_globals):
        monkeypatch.setenv("ROOMBOT_STORE_BACKEND", "redis")
        close = AsyncMock()

        with patch('roombot.booking.app.get_redis_client', AsyncMock(return_value=AsyncMock())), \
             patch('roombot.booking.app.close_redis_client', close):
            async with lifespan(app):
                assert isinstance(app_module.kv_store, RedisKeyValueStore)
                assert app_module.engine is not None

        close.assert_awaited_once()

    def test_health_degraded_when_store_unreachable(self, client, kv):
        with patch.object(kv, "ping", AsyncMock(return_value=False)):
            data = client.get("/health").json()
            assert data["status"] == "degraded"
            assert data["store_connected"] is False
            assert data["config_valid"] is True
