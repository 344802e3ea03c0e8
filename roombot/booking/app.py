"""
Roombot Meeting Room Booking Service - FastAPI Application

HTTP adapter in front of the booking engine. Chat channel webhooks post
inbound events to /api/v1/events and receive a channel-neutral reply; the
remaining endpoints expose room status, availability and bookings directly.

Sessions and bookings live in the configured key/value store (in-memory or
Redis). When Redis is configured but unreachable, startup fails; if it
goes away later, /health reports degraded.
"""

import os
import logging
import time
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query

from roombot.booking.config import BookingConfig
from roombot.booking.dispatcher import ConversationDispatcher
from roombot.booking.fsm_manager import BookingFSMManager, build_engine
from roombot.booking.models import (
    CancelOutcome, OutcomeKind,
    InboundEventRequest, BotReplyResponse, QuickReplyItem,
    RoomResponse, TimeSlotResponse, BookingResponse, RoomStatusResponse, AvailabilityResponse,
    CancelBookingRequest, CancelBookingResponse,
    HealthResponse, MetricsResponse, AdminClearSessionsResponse,
)
from roombot.shared import (
    InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore, StoreLockTimeout,
    close_redis_client, get_redis_client,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global state
config: Optional[BookingConfig] = None
kv_store: Optional[KeyValueStore] = None
engine: Optional[BookingFSMManager] = None
dispatcher: Optional[ConversationDispatcher] = None
app_start_time: float = 0.0

METRICS_PREFIX = "roombot:metrics:"

# Reply outcome -> metric counter
OUTCOME_METRICS = {
    OutcomeKind.SESSION_STARTED.value: "total_sessions_created",
    OutcomeKind.BOOKING_CONFIRMED.value: "completed_bookings_count",
    OutcomeKind.BOOKING_CONFLICT.value: "conflicts_count",
    OutcomeKind.ABANDONED.value: "abandoned_sessions_count",
    CancelOutcome.CANCELLED.value: "cancelled_bookings_count",
}


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage service lifecycle (startup/shutdown)
    """
    global config, kv_store, engine, dispatcher, app_start_time

    logger.info(" Starting Roombot booking service...")
    app_start_time = time.time()

    # Load configuration
    try:
        config = BookingConfig.from_env()
        logger.info(" Configuration loaded")
    except Exception as e:
        logger.error(f" Failed to load configuration: {e}")
        raise

    # Initialize key/value store
    if config.store_backend == "redis":
        try:
            client = await get_redis_client()
            kv_store = RedisKeyValueStore(
                client,
                lock_timeout=config.lock_timeout,
                lock_blocking_timeout=config.lock_blocking_timeout,
            )
            logger.info(" Redis key/value store connected")
        except Exception as e:
            logger.error(f" Redis connection failed: {e}")
            raise
    else:
        kv_store = InMemoryKeyValueStore()
        logger.info(" Using in-memory key/value store")

    engine = build_engine(config, kv_store)
    dispatcher = ConversationDispatcher(engine)

    logger.info(" Roombot booking service ready")

    yield

    # Shutdown
    logger.info(" Shutting down Roombot booking service...")

    if isinstance(kv_store, RedisKeyValueStore):
        await close_redis_client()
        logger.info(" Redis connection closed")

    logger.info(" Service stopped")


# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title="Roombot Meeting Room Booking Service",
    description="Conversational meeting room booking with conflict-free reservations",
    version="1.0.0",
    lifespan=lifespan
)


# ============================================================================
# Conversation Endpoint
# ============================================================================

@app.post("/api/v1/events", response_model=BotReplyResponse)
async def handle_event(request: InboundEventRequest):
    """
    Handle one inbound chat event (message or postback).

    Returns:
        Reply text and quick reply buttons for the channel adapter
    """
    _require_engine()

    try:
        reply = await dispatcher.handle_event(
            request.user_id, request.type, text=request.text, data=request.data
        )
    except StoreLockTimeout as e:
        logger.error(f" Lock timeout handling event for {request.user_id}: {e}")
        raise HTTPException(status_code=503, detail="Service busy, please retry")

    if reply is None:
        raise HTTPException(status_code=400, detail=f"Unsupported event type: {request.type}")

    metric = OUTCOME_METRICS.get(reply.outcome)
    if metric:
        await _increment_metric(metric)

    return BotReplyResponse(
        text=reply.text,
        quick_replies=[QuickReplyItem(**item.to_dict()) for item in reply.quick_replies],
        outcome=reply.outcome,
    )


# ============================================================================
# Room Endpoints
# ============================================================================

@app.get("/api/v1/rooms", response_model=List[RoomResponse])
async def list_rooms():
    """List the bookable rooms"""
    _require_engine()
    return [RoomResponse(**room.to_dict()) for room in engine.catalog.all()]


@app.get("/api/v1/rooms/status", response_model=List[RoomStatusResponse])
async def rooms_status(day: Optional[date] = Query(None, alias="date")):
    """
    Per-room status for one day (defaults to today).

    A room is "free" when it has no confirmed bookings that day.
    """
    _require_engine()
    summaries = await engine.list_today(day)

    return [
        RoomStatusResponse(
            room=RoomResponse(**summary.room.to_dict()),
            date=summary.date.isoformat(),
            status="free" if summary.is_free else "occupied",
            free_slots=summary.free_slots,
            bookings=[BookingResponse(**booking.to_dict()) for booking in summary.bookings],
        )
        for summary in summaries
    ]


@app.get("/api/v1/rooms/{room_id}/availability", response_model=AvailabilityResponse)
async def room_availability(room_id: int, day: Optional[date] = Query(None, alias="date")):
    """Free slots of one room on one day (defaults to today)"""
    _require_engine()

    if room_id not in engine.catalog:
        raise HTTPException(status_code=404, detail=f"Room {room_id} not found")

    day = day or engine.today()
    slots = await engine.availability.available_slots(room_id, day)

    return AvailabilityResponse(
        room_id=room_id,
        date=day.isoformat(),
        slots=[TimeSlotResponse(start=slot.start_text, end=slot.end_text, label=slot.label) for slot in slots],
    )


# ============================================================================
# Booking Endpoints
# ============================================================================

@app.get("/api/v1/users/{user_id}/bookings", response_model=List[BookingResponse])
async def user_bookings(user_id: str, include_cancelled: bool = False):
    """A user's bookings, confirmed only unless include_cancelled"""
    _require_engine()
    bookings = await engine.list_mine(user_id, include_cancelled=include_cancelled)
    return [BookingResponse(**booking.to_dict()) for booking in bookings]


@app.post("/api/v1/bookings/{booking_id}/cancel", response_model=CancelBookingResponse)
async def cancel_booking(booking_id: str, request: CancelBookingRequest):
    """
    Cancel a booking on behalf of its owner.

    Unknown ids, other users' bookings and already cancelled bookings are
    all reported as 404 so booking ownership is not revealed.
    """
    _require_engine()

    try:
        result = await engine.on_cancel_requested(request.user_id, booking_id)
    except StoreLockTimeout as e:
        logger.error(f" Lock timeout cancelling {booking_id}: {e}")
        raise HTTPException(status_code=503, detail="Service busy, please retry")

    if result == CancelOutcome.NOT_FOUND_OR_FORBIDDEN:
        raise HTTPException(status_code=404, detail="Booking not found")

    await _increment_metric("cancelled_bookings_count")
    return CancelBookingResponse(booking_id=booking_id, result=result.value)


# ============================================================================
# Session Endpoints
# ============================================================================

@app.get("/api/v1/users/{user_id}/session")
async def get_user_session(user_id: str):
    """Current in-progress booking session of a user"""
    _require_engine()

    session = await engine.current_session(user_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    return session.to_dict()


@app.delete("/api/v1/users/{user_id}/session")
async def delete_user_session(user_id: str):
    """Abandon a user's in-progress booking session"""
    _require_engine()

    if not await engine.reset_session(user_id):
        raise HTTPException(status_code=404, detail="Session not found")

    await _increment_metric("abandoned_sessions_count")
    return {"message": "Session deleted successfully"}


# ============================================================================
# Operational Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Checks service status, key/value store connectivity, and configuration.
    """
    store_connected = False
    if kv_store is not None:
        store_connected = await kv_store.ping()

    config_valid = config is not None
    store_backend = "redis" if isinstance(kv_store, RedisKeyValueStore) else "memory"

    # Determine overall status
    if not config_valid:
        status = "unhealthy"
    elif not store_connected:
        status = "degraded"  # Service is up but the store is unreachable
    else:
        status = "healthy"

    uptime_seconds = time.time() - app_start_time

    return HealthResponse(
        status=status,
        store_backend=store_backend,
        store_connected=store_connected,
        config_valid=config_valid,
        uptime_seconds=uptime_seconds
    )


@app.get("/metrics", response_model=MetricsResponse)
async def get_metrics():
    """
    Get booking metrics.

    Returns session and booking counters kept in the key/value store.
    """
    if kv_store is None or engine is None:
        return MetricsResponse(
            total_sessions_created=0,
            active_sessions_count=0,
            completed_bookings_count=0,
            conflicts_count=0,
            abandoned_sessions_count=0,
            cancelled_bookings_count=0
        )

    try:
        active_sessions = len(await engine.registry.active_user_ids())

        return MetricsResponse(
            total_sessions_created=await _read_metric("total_sessions_created"),
            active_sessions_count=active_sessions,
            completed_bookings_count=await _read_metric("completed_bookings_count"),
            conflicts_count=await _read_metric("conflicts_count"),
            abandoned_sessions_count=await _read_metric("abandoned_sessions_count"),
            cancelled_bookings_count=await _read_metric("cancelled_bookings_count")
        )

    except Exception as e:
        logger.error(f" Failed to retrieve metrics: {e}")
        raise HTTPException(status_code=500, detail="Failed to retrieve metrics")


@app.post("/admin/clear_sessions", response_model=AdminClearSessionsResponse)
async def clear_sessions():
    """
    Clear all in-progress booking sessions (admin endpoint).

    Confirmed bookings are left untouched.
    """
    if engine is None:
        return AdminClearSessionsResponse(sessions_deleted=0, message="Store not initialized")

    try:
        keys_deleted = await engine.registry.clear()
        logger.info(f" Sessions cleared: {keys_deleted} sessions deleted")
        return AdminClearSessionsResponse(
            sessions_deleted=keys_deleted,
            message=f"Successfully deleted {keys_deleted} sessions"
        )

    except Exception as e:
        logger.error(f" Failed to clear sessions: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to clear sessions: {str(e)}")


# ============================================================================
# Helper Functions
# ============================================================================

def _require_engine():
    if config is None or engine is None or dispatcher is None:
        raise HTTPException(status_code=503, detail="Service not configured")


async def _increment_metric(metric_name: str):
    """Increment a metric counter in the key/value store"""
    if kv_store is not None:
        try:
            await kv_store.incr(f"{METRICS_PREFIX}{metric_name}")
        except Exception as e:
            logger.warning(f"️ Failed to increment metric {metric_name}: {e}")


async def _read_metric(metric_name: str) -> int:
    return int(await kv_store.get(f"{METRICS_PREFIX}{metric_name}") or 0)


# ============================================================================
# Root Endpoint
# ============================================================================

@app.get("/")
async def root():
    """
    Service information endpoint
    """
    return {
        "service": "Roombot Meeting Room Booking Service",
        "version": "1.0.0",
        "status": "operational",
        "endpoints": {
            "events": "POST /api/v1/events",
            "rooms": "GET /api/v1/rooms",
            "rooms_status": "GET /api/v1/rooms/status?date=YYYY-MM-DD",
            "availability": "GET /api/v1/rooms/{room_id}/availability?date=YYYY-MM-DD",
            "user_bookings": "GET /api/v1/users/{user_id}/bookings",
            "cancel_booking": "POST /api/v1/bookings/{booking_id}/cancel",
            "get_session": "GET /api/v1/users/{user_id}/session",
            "delete_session": "DELETE /api/v1/users/{user_id}/session",
            "health": "GET /health",
            "metrics": "GET /metrics",
            "clear_sessions": "POST /admin/clear_sessions"
        }
    }


if __name__ == "__main__":
    # NOTE: This block is for local development only.
    import uvicorn
    port = int(os.getenv("PORT", "8005"))

    uvicorn.run(
        "roombot.booking.app:app",
        host="0.0.0.0",
        port=port,
        log_level="info"
    )
