"""
Reply rendering for the conversation dispatcher.

Turns engine outcomes into channel-neutral replies: a text body plus quick
reply buttons that either send a message or a postback payload. Channel
adapters map BotReply onto their own rich-card formats.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from roombot.booking.catalog import RoomCatalog
from roombot.booking.models import (
    Booking, CancelOutcome, FlowOutcome, OutcomeKind, Room, RoomDaySummary, TimeSlot,
    REASON_DATE_IN_PAST, REASON_EMPTY_TEXT, REASON_INTERNAL_ERROR, REASON_INVALID_CALENDAR_DATE,
    REASON_INVALID_DATE_FORMAT, REASON_INVALID_SLOT, REASON_NO_SLOTS_AVAILABLE,
    REASON_SLOT_UNAVAILABLE, REASON_TEXT_TOO_LONG, REASON_UNEXPECTED_INPUT,
)

# Channel limits on quick reply buttons
MAX_QUICK_REPLIES = 10
MAX_LABEL_LENGTH = 20

DATE_EXAMPLES = "Examples:\n- today\n- tomorrow\n- 25/09/2024\n- 2024-09-25"

REASON_MESSAGES = {
    REASON_INVALID_DATE_FORMAT: "That date format is not recognised.",
    REASON_INVALID_CALENDAR_DATE: "That date does not exist on the calendar.",
    REASON_DATE_IN_PAST: "That date has already passed.",
    REASON_NO_SLOTS_AVAILABLE: "There are no free time slots on that day. Please choose another date.",
    REASON_INVALID_SLOT: "Please pick one of the offered time slots.",
    REASON_SLOT_UNAVAILABLE: "Sorry, that time slot has just been booked. Please pick another one.",
    REASON_EMPTY_TEXT: "I didn't get any text.",
    REASON_TEXT_TOO_LONG: "That is too long.",
    REASON_UNEXPECTED_INPUT: "That doesn't answer the current question.",
    REASON_INTERNAL_ERROR: "Oops, something went wrong. Let's try that again.",
}

FIELD_PROMPTS = {
    "date": "Please enter the booking date.",
    "time": "Please pick a time slot.",
    "title": "Please enter the meeting title.",
    "organizer": "Please enter the organizer's name.",
}

FIELD_HINTS = {
    "date": DATE_EXAMPLES,
    "time": "Tap one of the time buttons, or type a slot such as 09:00-10:00.",
    "title": "For example: Weekly standup",
    "organizer": "For example: Alice Smith",
}


@dataclass
class QuickReply:
    label: str
    text: Optional[str] = None
    data: Optional[str] = None

    def to_dict(self):
        return {"label": self.label, "text": self.text, "data": self.data}


@dataclass
class BotReply:
    text: str
    quick_replies: List[QuickReply] = field(default_factory=list)
    outcome: Optional[str] = None


def format_date(day: date) -> str:
    return day.strftime("%a %d %b %Y")


def _slot_buttons(slots: List[TimeSlot]) -> List[QuickReply]:
    return [QuickReply(label=slot.label, data=slot.payload) for slot in slots[:MAX_QUICK_REPLIES]]


def _date_buttons() -> List[QuickReply]:
    return [QuickReply(label="Today", text="today"), QuickReply(label="Tomorrow", text="tomorrow")]


def _menu_buttons() -> List[QuickReply]:
    return [
        QuickReply(label="Book a room", text="book"),
        QuickReply(label="Room status", text="status"),
        QuickReply(label="My bookings", text="mybooking"),
    ]


# ============================================================================
# Menus
# ============================================================================

def render_help() -> BotReply:
    text = (
        "How to use the meeting room booking bot:\n\n"
        "Commands:\n"
        "- \"book\" - start booking a meeting room\n"
        "- \"status\" - show today's room status\n"
        "- \"mybooking\" - show your bookings\n"
        "- \"help\" - show this message\n\n"
        "While booking, say \"cancel\" at any time to stop."
    )
    return BotReply(text=text, quick_replies=_menu_buttons(), outcome="help")


def render_room_selection(summaries: List[RoomDaySummary]) -> BotReply:
    lines = ["Choose a meeting room:"]
    buttons = []
    for summary in summaries:
        status = "free all day" if summary.is_free else f"{len(summary.bookings)} booking(s) today"
        lines.append(f"- {summary.room.name} ({summary.room.capacity} people): {status}")
        buttons.append(QuickReply(label=summary.room.name[:MAX_LABEL_LENGTH], data=f"room_{summary.room.id}"))
    return BotReply(text="\n".join(lines), quick_replies=buttons[:MAX_QUICK_REPLIES], outcome="rooms")


# ============================================================================
# Session Outcomes
# ============================================================================

def render_flow_outcome(outcome: FlowOutcome) -> BotReply:
    kind = outcome.kind

    if kind == OutcomeKind.SESSION_STARTED:
        text = f"You chose {outcome.room.name}.\n\nPlease enter the booking date.\n\n{DATE_EXAMPLES}"
        return BotReply(text=text, quick_replies=_date_buttons(), outcome=kind.value)

    if kind == OutcomeKind.ROOM_NOT_FOUND:
        return BotReply(
            text="That room is not available. Type \"book\" to see the room list.",
            quick_replies=[QuickReply(label="Book a room", text="book")],
            outcome=kind.value,
        )

    if kind == OutcomeKind.ADVANCED:
        return _render_field_prompt(outcome, outcome.field_name, kind.value)

    if kind == OutcomeKind.REPROMPT:
        reply = _render_field_prompt(outcome, outcome.field_name, kind.value)
        reason_text = REASON_MESSAGES.get(outcome.reason, "Please try again.")
        reply.text = f"{reason_text}\n{reply.text}"
        if outcome.hint:
            reply.text = f"{reply.text}\n\n{FIELD_HINTS[outcome.field_name]}"
        return reply

    if kind == OutcomeKind.BOOKING_CONFIRMED:
        return render_booking_confirmation(outcome.booking, outcome.room)

    if kind == OutcomeKind.BOOKING_CONFLICT:
        booking = outcome.booking
        room_name = outcome.room.name if outcome.room else f"Room {booking.room_id}"
        text = (
            f"Sorry, {room_name} was booked by someone else for "
            f"{format_date(booking.date)} {booking.slot.label} while you were finishing.\n"
            "Please start again and pick another time."
        )
        return BotReply(
            text=text,
            quick_replies=[QuickReply(label="Book again", data=f"room_{booking.room_id}")],
            outcome=kind.value,
        )

    if kind == OutcomeKind.ABANDONED:
        return BotReply(
            text="Booking stopped. Type \"book\" whenever you want to start again.",
            quick_replies=_menu_buttons(),
            outcome=kind.value,
        )

    # NO_SESSION falls back to help
    reply = render_help()
    reply.outcome = kind.value
    return reply


def _render_field_prompt(outcome: FlowOutcome, field_name: str, outcome_name: str) -> BotReply:
    if field_name == "date":
        return BotReply(text=FIELD_PROMPTS["date"], quick_replies=_date_buttons(), outcome=outcome_name)

    if field_name == "time":
        day = outcome.session.date if outcome.session else None
        heading = f"Pick a time slot ({format_date(day)}):" if day else FIELD_PROMPTS["time"]
        return BotReply(text=heading, quick_replies=_slot_buttons(outcome.slots), outcome=outcome_name)

    return BotReply(text=FIELD_PROMPTS[field_name], outcome=outcome_name)


def render_booking_confirmation(booking: Booking, room: Optional[Room]) -> BotReply:
    room_name = room.name if room else f"Room {booking.room_id}"
    text = (
        "Booking confirmed!\n\n"
        f"Booking ID: {booking.id}\n"
        f"Room: {room_name}\n"
        f"Title: {booking.title}\n"
        f"Organizer: {booking.organizer}\n"
        f"Date: {format_date(booking.date)}\n"
        f"Time: {booking.slot.label}"
    )
    return BotReply(
        text=text,
        quick_replies=[QuickReply(label="Cancel booking", data=f"cancel_{booking.id}")],
        outcome=OutcomeKind.BOOKING_CONFIRMED.value,
    )


# ============================================================================
# Views
# ============================================================================

def render_status(summaries: List[RoomDaySummary], day: date) -> BotReply:
    blocks = []
    for summary in summaries:
        block = [f"{summary.room.name} ({summary.room.capacity} people)"]
        if summary.is_free:
            block.append("Free all day")
        else:
            block.append(f"{len(summary.bookings)} booking(s):")
            for booking in summary.bookings:
                block.append(f"- {booking.slot.label} {booking.title} ({booking.organizer})")
        blocks.append("\n".join(block))

    text = f"Room status for {format_date(day)}:\n\n" + "\n\n".join(blocks)
    return BotReply(text=text, quick_replies=[QuickReply(label="Book a room", text="book")], outcome="status")


def render_my_bookings(bookings: List[Booking], catalog: RoomCatalog) -> BotReply:
    if not bookings:
        return BotReply(
            text="You have no meeting room bookings.",
            quick_replies=[QuickReply(label="Book a room", text="book")],
            outcome="my_bookings",
        )

    entries = []
    for booking in bookings:
        room = catalog.get(booking.room_id)
        room_name = room.name if room else f"Room {booking.room_id}"
        entries.append(
            f"ID: {booking.id}\n{room_name}\n{booking.title}\n"
            f"{format_date(booking.date)}\n{booking.slot.label}"
        )

    buttons = [
        QuickReply(label=f"Cancel {booking.date.strftime('%d/%m')} {booking.slot.start_text}", data=f"cancel_{booking.id}")
        for booking in bookings
    ]
    text = "Your bookings:\n\n" + "\n---\n".join(entries)
    return BotReply(text=text, quick_replies=buttons[:MAX_QUICK_REPLIES], outcome="my_bookings")


def render_cancel_result(result: CancelOutcome, booking_id: str) -> BotReply:
    if result == CancelOutcome.CANCELLED:
        return BotReply(text=f"Booking cancelled.\nBooking ID: {booking_id}", outcome=result.value)
    return BotReply(
        text="Booking not found, or you are not allowed to cancel it.",
        outcome=result.value,
    )
