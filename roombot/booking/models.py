"""
Data models for Roombot Meeting Room Booking Service

Contains enums, constants, dataclasses, booking errors, the tagged actions the
dispatcher decodes at the boundary, and Pydantic models for the HTTP API.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


# ============================================================================
# Enums
# ============================================================================

class SessionStep(Enum):
    """FSM states for an in-progress booking (no session = idle)"""
    AWAITING_DATE = "awaiting_date"
    AWAITING_TIME = "awaiting_time"
    AWAITING_TITLE = "awaiting_title"
    AWAITING_ORGANIZER = "awaiting_organizer"

    @property
    def field(self) -> str:
        """Name of the booking field collected in this step"""
        return self.value.replace("awaiting_", "")


class BookingStatus(Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class OutcomeKind(Enum):
    """Result of feeding one input into the session state machine"""
    SESSION_STARTED = "session_started"
    ROOM_NOT_FOUND = "room_not_found"
    REPROMPT = "reprompt"
    ADVANCED = "advanced"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CONFLICT = "booking_conflict"
    NO_SESSION = "no_session"
    ABANDONED = "abandoned"


class CancelOutcome(Enum):
    CANCELLED = "cancelled"
    NOT_FOUND_OR_FORBIDDEN = "not_found_or_forbidden"


# ============================================================================
# Constants
# ============================================================================

# Seeded room catalog
ROOMS = [
    {"id": 1, "name": "Large Meeting Room", "capacity": 20},
    {"id": 2, "name": "Small Meeting Room", "capacity": 8},
    {"id": 3, "name": "Medium Meeting Room", "capacity": 12},
]

# Re-prompt reasons
REASON_INVALID_DATE_FORMAT = "invalid_date_format"
REASON_INVALID_CALENDAR_DATE = "invalid_calendar_date"
REASON_DATE_IN_PAST = "date_in_past"
REASON_NO_SLOTS_AVAILABLE = "no_slots_available"
REASON_INVALID_SLOT = "invalid_slot"
REASON_SLOT_UNAVAILABLE = "slot_unavailable"
REASON_EMPTY_TEXT = "empty_text"
REASON_TEXT_TOO_LONG = "text_too_long"
REASON_UNEXPECTED_INPUT = "unexpected_input"
REASON_INTERNAL_ERROR = "internal_error"

# Date keywords (English and Thai)
TODAY_KEYWORDS = ("today", "วันนี้")
TOMORROW_KEYWORDS = ("tomorrow", "พรุ่งนี้")

# Date/time patterns
DATE_DMY = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})$')
DATE_ISO = re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})$')
TIME_RANGE_PATTERN = re.compile(r'^(\d{1,2}:\d{2})\s*(?:-|–|to)\s*(\d{1,2}:\d{2})$', re.IGNORECASE)

# Postback payloads
POSTBACK_ROOM = re.compile(r'^room_(\d+)$')
POSTBACK_TIME = re.compile(r'^time_(\d{1,2}:\d{2})_(\d{1,2}:\d{2})$')
POSTBACK_CANCEL = re.compile(r'^cancel_(\w+)$')

# Top-level commands
BOOK_COMMANDS = ("book", "booking", "จอง")
STATUS_COMMANDS = ("status", "สถานะ")
MY_BOOKINGS_COMMANDS = ("mybooking", "mybookings", "my bookings", "การจองของฉัน")
HELP_COMMANDS = ("help", "ช่วยเหลือ")

# Abandon an in-progress booking
CANCEL_KEYWORDS = ("cancel", "stop", "quit", "exit", "never mind", "ยกเลิก")


# ============================================================================
# Booking Errors
# ============================================================================

class BookingError(Exception):
    """Base class for booking store failures"""


class BookingConflictError(BookingError):
    """Candidate overlaps a confirmed booking for the same room and date"""

    def __init__(self, candidate: "Booking", conflicting: "Booking"):
        super().__init__(
            f"Room {candidate.room_id} on {candidate.date.isoformat()} "
            f"{candidate.slot.label} overlaps booking {conflicting.id}"
        )
        self.candidate = candidate
        self.conflicting = conflicting


class BookingNotFoundError(BookingError):
    """No confirmed booking with this id owned by the requester"""

    def __init__(self, booking_id: str):
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class Room:
    id: int
    name: str
    capacity: int

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "capacity": self.capacity}


@dataclass(frozen=True)
class TimeSlot:
    """Half-open time-of-day interval [start, end)"""
    start: time
    end: time

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"slot start must be before end, got {self.start}-{self.end}")

    @classmethod
    def from_strings(cls, start: str, end: str) -> "TimeSlot":
        return cls(parse_hhmm(start), parse_hhmm(end))

    @property
    def start_text(self) -> str:
        return self.start.strftime("%H:%M")

    @property
    def end_text(self) -> str:
        return self.end.strftime("%H:%M")

    @property
    def label(self) -> str:
        return f"{self.start_text}-{self.end_text}"

    @property
    def payload(self) -> str:
        """Postback payload selecting this slot"""
        return f"time_{self.start_text}_{self.end_text}"


@dataclass
class Booking:
    """A room reservation. Never deleted; cancellation flips status."""
    user_id: str
    room_id: int
    title: str
    organizer: str
    date: date
    start_time: time
    end_time: time
    id: Optional[str] = None
    status: BookingStatus = BookingStatus.CONFIRMED
    created_at: Optional[str] = None
    cancelled_at: Optional[str] = None

    @property
    def slot(self) -> TimeSlot:
        return TimeSlot(self.start_time, self.end_time)

    @property
    def is_confirmed(self) -> bool:
        return self.status == BookingStatus.CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage and API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "room_id": self.room_id,
            "title": self.title,
            "organizer": self.organizer,
            "date": self.date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "status": self.status.value,
            "created_at": self.created_at,
            "cancelled_at": self.cancelled_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Booking":
        return cls(
            id=data.get("id"),
            user_id=data["user_id"],
            room_id=int(data["room_id"]),
            title=data["title"],
            organizer=data["organizer"],
            date=date.fromisoformat(data["date"]),
            start_time=parse_hhmm(data["start_time"]),
            end_time=parse_hhmm(data["end_time"]),
            status=BookingStatus(data.get("status", "confirmed")),
            created_at=data.get("created_at"),
            cancelled_at=data.get("cancelled_at"),
        )


@dataclass
class BookingSession:
    """Partially filled booking collected across conversation turns"""
    user_id: str
    room_id: int
    step: SessionStep = SessionStep.AWAITING_DATE
    date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    title: Optional[str] = None
    organizer: Optional[str] = None
    retry_counts: Dict[str, int] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize session state for the session registry"""
        return {
            "user_id": self.user_id,
            "room_id": self.room_id,
            "step": self.step.value,
            "date": self.date.isoformat() if self.date else None,
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
            "title": self.title,
            "organizer": self.organizer,
            "retry_counts": self.retry_counts,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookingSession":
        """Deserialize session state"""
        return cls(
            user_id=data["user_id"],
            room_id=int(data["room_id"]),
            step=SessionStep(data["step"]),
            date=date.fromisoformat(data["date"]) if data.get("date") else None,
            start_time=parse_hhmm(data["start_time"]) if data.get("start_time") else None,
            end_time=parse_hhmm(data["end_time"]) if data.get("end_time") else None,
            title=data.get("title"),
            organizer=data.get("organizer"),
            retry_counts=data.get("retry_counts", {}),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class FlowOutcome:
    """Typed result returned by the session state machine"""
    kind: OutcomeKind
    field_name: Optional[str] = None
    reason: Optional[str] = None
    room: Optional[Room] = None
    booking: Optional[Booking] = None
    slots: List[TimeSlot] = field(default_factory=list)
    session: Optional[BookingSession] = None
    hint: bool = False


@dataclass
class RoomDaySummary:
    """Status-view entry for one room on one date"""
    room: Room
    date: date
    bookings: List[Booking]
    free_slots: int

    @property
    def is_free(self) -> bool:
        return not self.bookings


# ============================================================================
# Tagged Actions (decoded once at the boundary)
# ============================================================================

@dataclass(frozen=True)
class SelectRoom:
    room_id: int


@dataclass(frozen=True)
class SelectSlot:
    slot: TimeSlot


@dataclass(frozen=True)
class CancelBooking:
    booking_id: str


@dataclass(frozen=True)
class ShowRooms:
    pass


@dataclass(frozen=True)
class ShowStatus:
    pass


@dataclass(frozen=True)
class ShowMyBookings:
    pass


@dataclass(frozen=True)
class ShowHelp:
    pass


@dataclass(frozen=True)
class TextInput:
    text: str


Action = Union[
    SelectRoom, SelectSlot, CancelBooking, ShowRooms, ShowStatus,
    ShowMyBookings, ShowHelp, TextInput,
]


def parse_hhmm(value: str) -> time:
    """Parse "H:MM"/"HH:MM" into a time, raising ValueError when invalid"""
    return datetime.strptime(value.strip(), "%H:%M").time()


# ============================================================================
# Pydantic Models for API
# ============================================================================

class InboundEventRequest(BaseModel):
    """Inbound channel event: a typed message or a button postback"""
    user_id: str = Field(..., min_length=1, description="Channel user identifier")
    type: str = Field(..., pattern="^(message|postback)$", description="Event type: message or postback")
    text: Optional[str] = Field(None, description="Message text for message events")
    data: Optional[str] = Field(None, description="Postback payload for postback events")


class QuickReplyItem(BaseModel):
    label: str = Field(..., description="Button label")
    text: Optional[str] = Field(None, description="Message sent when tapped")
    data: Optional[str] = Field(None, description="Postback payload sent when tapped")


class BotReplyResponse(BaseModel):
    """Reply to render on the channel"""
    text: str = Field(..., description="Reply text")
    quick_replies: List[QuickReplyItem] = Field(default_factory=list, description="Quick reply buttons")
    outcome: Optional[str] = Field(None, description="Engine outcome that produced this reply")


class RoomResponse(BaseModel):
    id: int
    name: str
    capacity: int


class TimeSlotResponse(BaseModel):
    start: str
    end: str
    label: str


class BookingResponse(BaseModel):
    id: str
    user_id: str
    room_id: int
    title: str
    organizer: str
    date: str
    start_time: str
    end_time: str
    status: str
    created_at: Optional[str] = None
    cancelled_at: Optional[str] = None


class RoomStatusResponse(BaseModel):
    room: RoomResponse
    date: str
    status: str = Field(..., description="free or occupied")
    free_slots: int
    bookings: List[BookingResponse]


class AvailabilityResponse(BaseModel):
    room_id: int
    date: str
    slots: List[TimeSlotResponse]


class CancelBookingRequest(BaseModel):
    user_id: str = Field(..., min_length=1, description="User requesting the cancellation")


class CancelBookingResponse(BaseModel):
    booking_id: str
    result: str = Field(..., description="cancelled or not_found_or_forbidden")


class HealthResponse(BaseModel):
    """Response model for health check"""
    status: str = Field(..., description="Service status: healthy/degraded/unhealthy")
    store_backend: str = Field(..., description="Configured key/value backend")
    store_connected: bool = Field(..., description="Key/value store connectivity status")
    config_valid: bool = Field(..., description="Configuration validation status")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")


class MetricsResponse(BaseModel):
    """Response model for metrics endpoint"""
    total_sessions_created: int = Field(..., description="Total booking sessions started")
    active_sessions_count: int = Field(..., description="Currently active sessions")
    completed_bookings_count: int = Field(..., description="Bookings confirmed through a session")
    conflicts_count: int = Field(..., description="Finalizations rejected by the conflict check")
    abandoned_sessions_count: int = Field(..., description="Sessions abandoned or reset")
    cancelled_bookings_count: int = Field(..., description="Bookings cancelled")


class AdminClearSessionsResponse(BaseModel):
    """Response model for clearing sessions"""
    sessions_deleted: int = Field(..., description="Number of sessions deleted")
    message: str = Field(..., description="Operation result message")
