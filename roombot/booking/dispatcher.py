"""
Conversation Dispatcher for Roombot Meeting Room Booking Service

Boundary between the channel transport and the booking engine. Inbound
events are decoded exactly once into a tagged action (SelectRoom, SelectSlot,
CancelBooking, ...) and routed either to a top-level command or to the
user's booking session.
"""

import logging
from typing import Optional

from roombot.booking.fsm_manager import BookingFSMManager
from roombot.booking.models import (
    Action, CancelBooking, OutcomeKind, SelectRoom, SelectSlot, ShowHelp, ShowMyBookings,
    ShowRooms, ShowStatus, TextInput, TimeSlot,
    BOOK_COMMANDS, HELP_COMMANDS, MY_BOOKINGS_COMMANDS, STATUS_COMMANDS,
    POSTBACK_CANCEL, POSTBACK_ROOM, POSTBACK_TIME,
)
from roombot.booking.replies import (
    BotReply, render_cancel_result, render_flow_outcome, render_help, render_my_bookings,
    render_room_selection, render_status,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Decoding
# ============================================================================

def decode_postback(data: str) -> Action:
    """Decode a postback payload into a tagged action"""
    payload = (data or "").strip()

    room_match = POSTBACK_ROOM.match(payload)
    if room_match:
        return SelectRoom(room_id=int(room_match.group(1)))

    time_match = POSTBACK_TIME.match(payload)
    if time_match:
        try:
            return SelectSlot(slot=TimeSlot.from_strings(time_match.group(1), time_match.group(2)))
        except ValueError:
            # Tampered payload; the session re-prompts for a valid slot
            return TextInput(text=payload)

    cancel_match = POSTBACK_CANCEL.match(payload)
    if cancel_match:
        return CancelBooking(booking_id=cancel_match.group(1))

    logger.warning(f"️ Unknown postback payload: {payload!r}")
    return ShowHelp()


def decode_message(text: str) -> Action:
    """Decode typed text into a command or free text for the session"""
    raw = (text or "").strip()
    command = raw.lower()

    if command in BOOK_COMMANDS:
        return ShowRooms()
    if command in STATUS_COMMANDS:
        return ShowStatus()
    if command in MY_BOOKINGS_COMMANDS:
        return ShowMyBookings()
    if command in HELP_COMMANDS:
        return ShowHelp()
    return TextInput(text=raw)


def decode_event(event_type: str, text: Optional[str] = None, data: Optional[str] = None) -> Optional[Action]:
    """
    Decode an inbound channel event.

    Returns:
        Tagged action, or None for event types the bot ignores
    """
    if event_type == "postback":
        return decode_postback(data)
    if event_type == "message":
        return decode_message(text)
    return None


# ============================================================================
# Dispatcher
# ============================================================================

class ConversationDispatcher:
    """Routes decoded actions to commands or the booking session"""

    def __init__(self, engine: BookingFSMManager):
        self.engine = engine

    async def handle_event(self, user_id: str, event_type: str,
                           text: Optional[str] = None, data: Optional[str] = None) -> Optional[BotReply]:
        action = decode_event(event_type, text=text, data=data)
        if action is None:
            return None
        return await self.dispatch(user_id, action)

    async def dispatch(self, user_id: str, action: Action) -> BotReply:
        if isinstance(action, ShowRooms):
            summaries = await self.engine.list_today()
            return render_room_selection(summaries)

        if isinstance(action, ShowStatus):
            day = self.engine.today()
            summaries = await self.engine.list_today(day)
            return render_status(summaries, day)

        if isinstance(action, ShowMyBookings):
            bookings = await self.engine.list_mine(user_id)
            return render_my_bookings(bookings, self.engine.catalog)

        if isinstance(action, ShowHelp):
            # Help doubles as the reset path for a stuck conversation
            await self.engine.reset_session(user_id)
            return render_help()

        if isinstance(action, SelectRoom):
            outcome = await self.engine.on_room_selected(user_id, action.room_id)
            return render_flow_outcome(outcome)

        if isinstance(action, CancelBooking):
            result = await self.engine.on_cancel_requested(user_id, action.booking_id)
            return render_cancel_result(result, action.booking_id)

        if isinstance(action, SelectSlot):
            outcome = await self.engine.on_message_or_slot_pick(user_id, action.slot)
        else:
            outcome = await self.engine.on_message_or_slot_pick(user_id, action.text)

        if outcome.kind == OutcomeKind.NO_SESSION:
            logger.info(f" No active session for {user_id}, showing help")
        return render_flow_outcome(outcome)
