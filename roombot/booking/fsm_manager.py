"""
FSM Manager for Roombot Meeting Room Booking Service

Contains the per-user booking session state machine:

    (none) --room--> awaiting_date --date--> awaiting_time --slot--> awaiting_title
           --title--> awaiting_organizer --organizer--> BookingStore.create -> (none)

Inputs that do not fit the current step re-prompt the same field without
advancing. Every public method returns a typed outcome; booking store errors
are converted here and never reach the transport layer.
"""

import logging
from datetime import date, datetime
from typing import Callable, List, Optional, Union

from roombot.booking.availability import AvailabilityEngine
from roombot.booking.catalog import RoomCatalog, SlotCalendar
from roombot.booking.config import BookingConfig
from roombot.booking.models import (
    Booking, BookingConflictError, BookingNotFoundError, BookingSession, CancelOutcome,
    FlowOutcome, OutcomeKind, RoomDaySummary, SessionStep, TimeSlot,
    REASON_INTERNAL_ERROR, REASON_INVALID_SLOT, REASON_NO_SLOTS_AVAILABLE,
    REASON_SLOT_UNAVAILABLE, REASON_UNEXPECTED_INPUT,
)
from roombot.booking.sessions import SessionRegistry
from roombot.booking.store import BookingStore
from roombot.booking.validation import (
    is_cancel_request, parse_date, parse_time_range, validate_booking_date, validate_text,
)
from roombot.shared.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

SessionInput = Union[str, TimeSlot]


class BookingFSMManager:
    """
    Finite state machine driving the multi-turn room booking conversation.

    Session state lives in the SessionRegistry; this object is shared by all
    users. Per-user locking serializes events for one user.
    """

    def __init__(
        self,
        config: BookingConfig,
        catalog: RoomCatalog,
        availability: AvailabilityEngine,
        store: BookingStore,
        registry: SessionRegistry,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize the booking FSM manager.

        Args:
            config: Booking configuration
            catalog: Seeded room catalog
            availability: Availability engine used during date/time steps
            store: Booking store making the final conflict decision
            registry: Per-user session storage
            today: Current-date provider (defaults to date.today)
        """
        self.config = config
        self.catalog = catalog
        self.availability = availability
        self.store = store
        self.registry = registry
        self._today = today or date.today

        if self.config.log_state_transitions:
            logger.info(" BookingFSMManager initialized")

    def today(self) -> date:
        return self._today()

    # ========================================================================
    # Engine Interface
    # ========================================================================

    async def on_room_selected(self, user_id: str, room_id: int) -> FlowOutcome:
        """Start (or restart) a booking session for the chosen room"""
        room = self.catalog.get(room_id)
        if room is None:
            return FlowOutcome(OutcomeKind.ROOM_NOT_FOUND, reason=f"unknown room {room_id}")

        async with self.registry.user_lock(user_id):
            existing = await self.registry.get(user_id)
            if existing is not None:
                logger.info(f" Replacing session for {user_id} ({existing.step.value}, room {existing.room_id})")

            now = _timestamp()
            session = BookingSession(user_id=user_id, room_id=room.id, created_at=now, updated_at=now)
            await self.registry.save(session)

        self._log_transition(user_id, None, session.step)
        return FlowOutcome(
            OutcomeKind.SESSION_STARTED,
            field_name=session.step.field,
            room=room,
            session=session,
        )

    async def on_message_or_slot_pick(self, user_id: str, user_input: SessionInput) -> FlowOutcome:
        """
        Feed one message or slot pick into the user's session.

        Args:
            user_id: Channel user identifier
            user_input: Free text, or a TimeSlot decoded from a postback

        Returns:
            FlowOutcome (reprompt, advanced, booking_confirmed, booking_conflict,
            no_session or abandoned)
        """
        async with self.registry.user_lock(user_id):
            session = await self.registry.get(user_id)
            if session is None:
                return FlowOutcome(OutcomeKind.NO_SESSION)

            if isinstance(user_input, str) and is_cancel_request(user_input):
                await self.registry.delete(user_id)
                self._log_transition(user_id, session.step, None)
                return FlowOutcome(OutcomeKind.ABANDONED, session=session)

            previous_step = session.step

            try:
                if session.step == SessionStep.AWAITING_DATE:
                    outcome = await self._handle_date_input(session, user_input)
                elif session.step == SessionStep.AWAITING_TIME:
                    outcome = await self._handle_time_selection(session, user_input)
                elif session.step == SessionStep.AWAITING_TITLE:
                    outcome = self._handle_title_input(session, user_input)
                else:
                    outcome = await self._handle_organizer_input(session, user_input)
            except Exception as e:
                logger.error(f" Error processing input for {user_id} in step {session.step.value}: {e}")
                return FlowOutcome(
                    OutcomeKind.REPROMPT,
                    field_name=previous_step.field,
                    reason=REASON_INTERNAL_ERROR,
                    session=session,
                )

            if outcome.kind in (OutcomeKind.BOOKING_CONFIRMED, OutcomeKind.BOOKING_CONFLICT):
                await self.registry.delete(user_id)
                self._log_transition(user_id, previous_step, None)
            else:
                session.updated_at = _timestamp()
                await self.registry.save(session)
                if session.step != previous_step:
                    self._log_transition(user_id, previous_step, session.step)

            return outcome

    async def on_cancel_requested(self, user_id: str, booking_id: str) -> CancelOutcome:
        """Cancel one of the user's confirmed bookings"""
        try:
            await self.store.cancel(booking_id, user_id)
        except BookingNotFoundError:
            logger.info(f" Cancel refused: booking {booking_id} not found or not owned by {user_id}")
            return CancelOutcome.NOT_FOUND_OR_FORBIDDEN
        return CancelOutcome.CANCELLED

    async def list_today(self, day: Optional[date] = None) -> List[RoomDaySummary]:
        """Per-room status for `day` (defaults to today)"""
        return await self.availability.day_summary(day or self.today())

    async def list_mine(self, user_id: str, include_cancelled: bool = False) -> List[Booking]:
        """The user's bookings; confirmed only unless include_cancelled"""
        return await self.store.list_by_user(user_id, include_cancelled=include_cancelled)

    async def current_session(self, user_id: str) -> Optional[BookingSession]:
        return await self.registry.get(user_id)

    async def reset_session(self, user_id: str) -> bool:
        """Drop the user's in-progress session; True if one existed"""
        async with self.registry.user_lock(user_id):
            session = await self.registry.get(user_id)
            if session is None:
                return False
            await self.registry.delete(user_id)
        self._log_transition(user_id, session.step, None)
        return True

    # ========================================================================
    # State Handler Methods
    # ========================================================================

    async def _handle_date_input(self, session: BookingSession, user_input: SessionInput) -> FlowOutcome:
        """Parse the booking date and offer that day's free slots"""
        if not isinstance(user_input, str):
            return self._reprompt(session, REASON_UNEXPECTED_INPUT)

        today = self.today()
        booking_date, reason = parse_date(user_input, today)
        if reason:
            return self._reprompt(session, reason)

        is_valid, reason = validate_booking_date(booking_date, today, self.config.allow_past_dates)
        if not is_valid:
            return self._reprompt(session, reason)

        slots = await self.availability.available_slots(session.room_id, booking_date)
        if not slots:
            # Full day is not a user mistake; no retry counted
            return self._reprompt(session, REASON_NO_SLOTS_AVAILABLE, count_retry=False)

        session.date = booking_date
        return self._advance(session, SessionStep.AWAITING_TIME, slots=slots)

    async def _handle_time_selection(self, session: BookingSession, user_input: SessionInput) -> FlowOutcome:
        """Re-validate the picked slot against current availability"""
        slot = self._resolve_slot(user_input)
        available = await self.availability.available_slots(session.room_id, session.date)

        if not available:
            # Every slot went while the user was choosing; back to the date step
            session.step = SessionStep.AWAITING_DATE
            session.date = None
            return self._reprompt(session, REASON_NO_SLOTS_AVAILABLE, count_retry=False)

        if slot is None:
            return self._reprompt(session, REASON_INVALID_SLOT, slots=available)

        if slot not in available:
            return self._reprompt(session, REASON_SLOT_UNAVAILABLE, slots=available)

        session.start_time = slot.start
        session.end_time = slot.end
        return self._advance(session, SessionStep.AWAITING_TITLE)

    def _handle_title_input(self, session: BookingSession, user_input: SessionInput) -> FlowOutcome:
        if not isinstance(user_input, str):
            return self._reprompt(session, REASON_UNEXPECTED_INPUT)

        title, reason = validate_text(user_input, self.config.max_text_length)
        if reason:
            return self._reprompt(session, reason)

        session.title = title
        return self._advance(session, SessionStep.AWAITING_ORGANIZER)

    async def _handle_organizer_input(self, session: BookingSession, user_input: SessionInput) -> FlowOutcome:
        """Record the organizer and let the booking store decide"""
        if not isinstance(user_input, str):
            return self._reprompt(session, REASON_UNEXPECTED_INPUT)

        organizer, reason = validate_text(user_input, self.config.max_text_length)
        if reason:
            return self._reprompt(session, reason)

        session.organizer = organizer
        candidate = Booking(
            user_id=session.user_id,
            room_id=session.room_id,
            title=session.title,
            organizer=session.organizer,
            date=session.date,
            start_time=session.start_time,
            end_time=session.end_time,
        )

        try:
            booking = await self.store.create(candidate)
        except BookingConflictError as e:
            logger.info(f" Booking conflict for {session.user_id}: {e}")
            return FlowOutcome(
                OutcomeKind.BOOKING_CONFLICT,
                room=self.catalog.get(session.room_id),
                booking=e.candidate,
                session=session,
            )

        return FlowOutcome(
            OutcomeKind.BOOKING_CONFIRMED,
            room=self.catalog.get(session.room_id),
            booking=booking,
            session=session,
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def _resolve_slot(self, user_input: SessionInput) -> Optional[TimeSlot]:
        """Map a postback slot or typed "HH:MM-HH:MM" onto the day grid"""
        calendar = self.availability.calendar
        if isinstance(user_input, TimeSlot):
            return user_input if calendar.contains(user_input) else None

        parsed = parse_time_range(user_input)
        if parsed is None:
            return None
        return calendar.find_slot(*parsed)

    def _advance(self, session: BookingSession, next_step: SessionStep,
                 slots: Optional[List[TimeSlot]] = None) -> FlowOutcome:
        session.retry_counts[session.step.field] = 0
        session.step = next_step
        return FlowOutcome(
            OutcomeKind.ADVANCED,
            field_name=next_step.field,
            room=self.catalog.get(session.room_id),
            slots=slots or [],
            session=session,
        )

    def _reprompt(self, session: BookingSession, reason: str,
                  slots: Optional[List[TimeSlot]] = None, count_retry: bool = True) -> FlowOutcome:
        field_name = session.step.field
        if count_retry:
            session.retry_counts[field_name] = session.retry_counts.get(field_name, 0) + 1
        attempts = session.retry_counts.get(field_name, 0)

        return FlowOutcome(
            OutcomeKind.REPROMPT,
            field_name=field_name,
            reason=reason,
            room=self.catalog.get(session.room_id),
            slots=slots or [],
            session=session,
            hint=attempts >= self.config.max_retries,
        )

    def _log_transition(self, user_id: str, previous: Optional[SessionStep], current: Optional[SessionStep]):
        if self.config.log_state_transitions:
            before = previous.value if previous else "none"
            after = current.value if current else "none"
            logger.info(f" Session {user_id}: {before} -> {after}")


def _timestamp() -> str:
    return datetime.now().isoformat(timespec="seconds")


def build_engine(config: BookingConfig, kv: KeyValueStore,
                 today: Optional[Callable[[], date]] = None) -> BookingFSMManager:
    """Wire catalog, calendar, store, availability and sessions on one key/value store"""
    catalog = RoomCatalog()
    calendar = SlotCalendar(config.slot_grid)
    store = BookingStore(kv)
    availability = AvailabilityEngine(catalog, calendar, store)
    registry = SessionRegistry(kv, config.session_ttl)
    return BookingFSMManager(config, catalog, availability, store, registry, today=today)
