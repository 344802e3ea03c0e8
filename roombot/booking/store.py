"""
Booking Store for Roombot Meeting Room Booking Service

Holds every booking record on top of the KeyValueStore abstraction:

    roombot:booking:<id>                       -> booking JSON
    roombot:bookings:room:<room_id>:<date>     -> JSON list of booking ids
    roombot:bookings:user:<user_id>            -> JSON list of booking ids

The conflict check, the insert and both index updates run inside one lock
per (room_id, date), so two overlapping creates for the same room and day
cannot both succeed.
Bookings are never deleted; cancel flips the status.
"""

import json
import logging
import uuid
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, List, Optional

from roombot.booking.catalog import overlaps
from roombot.booking.models import (
    Booking, BookingConflictError, BookingNotFoundError, BookingStatus,
)
from roombot.shared.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

BOOKING_PREFIX = "roombot:booking:"
ROOM_INDEX_PREFIX = "roombot:bookings:room:"
USER_INDEX_PREFIX = "roombot:bookings:user:"


def _sort_key(booking: Booking):
    return (booking.date, booking.start_time, booking.room_id)


class BookingStore:
    """Shared booking records with an atomic create per (room, date)"""

    def __init__(self, kv: KeyValueStore, now: Callable[[], datetime] = datetime.now):
        self._kv = kv
        self._now = now

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, candidate: Booking) -> Booking:
        """
        Insert a confirmed booking unless it overlaps one for the same room/date.

        Args:
            candidate: Booking without id; status is forced to confirmed

        Returns:
            The stored booking with its fresh id, or the requester's own
            confirmed booking for exactly this room and slot when a previous
            attempt stored it but failed before finishing

        Raises:
            BookingConflictError: A confirmed booking overlaps the candidate
        """
        candidate_slot = candidate.slot

        async with self._kv.lock(_room_lock(candidate.room_id, candidate.date)):
            for existing in await self.list_confirmed_by_room_and_date(candidate.room_id, candidate.date):
                if not overlaps(existing.slot, candidate_slot):
                    continue
                if existing.user_id == candidate.user_id and existing.slot == candidate_slot:
                    logger.warning(f"️ Completing interrupted booking {existing.id} for {existing.user_id}")
                    await self._index_for_user(existing)
                    return existing
                raise BookingConflictError(candidate, existing)

            booking = replace(
                candidate,
                id=uuid.uuid4().hex,
                status=BookingStatus.CONFIRMED,
                created_at=self._now().isoformat(timespec="seconds"),
                cancelled_at=None,
            )
            await self._save(booking)
            await self._append_index(_room_index_key(booking.room_id, booking.date), booking.id)
            await self._index_for_user(booking)

        logger.info(
            f" Booking {booking.id} confirmed: room={booking.room_id} "
            f"date={booking.date.isoformat()} {booking.slot.label}"
        )
        return booking

    async def cancel(self, booking_id: str, requester_user_id: str) -> Booking:
        """
        Soft-cancel a booking owned by the requester.

        Raises:
            BookingNotFoundError: Unknown id, another user's booking, or already cancelled
        """
        booking = await self.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)

        async with self._kv.lock(_room_lock(booking.room_id, booking.date)):
            # Re-read inside the critical section
            booking = await self.get(booking_id)
            if booking is None or booking.user_id != requester_user_id or not booking.is_confirmed:
                raise BookingNotFoundError(booking_id)

            booking.status = BookingStatus.CANCELLED
            booking.cancelled_at = self._now().isoformat(timespec="seconds")
            await self._save(booking)

        logger.info(f" Booking {booking_id} cancelled by {requester_user_id}")
        return booking

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, booking_id: str) -> Optional[Booking]:
        raw = await self._kv.get(f"{BOOKING_PREFIX}{booking_id}")
        if raw is None:
            return None
        return Booking.from_dict(json.loads(raw))

    async def list_confirmed_by_room_and_date(self, room_id: int, day: date) -> List[Booking]:
        bookings = await self._load_index(_room_index_key(room_id, day))
        return sorted((b for b in bookings if b.is_confirmed), key=_sort_key)

    async def list_by_user(self, user_id: str, include_cancelled: bool = False) -> List[Booking]:
        bookings = await self._load_index(_user_index_key(user_id))
        if not include_cancelled:
            bookings = [b for b in bookings if b.is_confirmed]
        return sorted(bookings, key=_sort_key)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _save(self, booking: Booking) -> None:
        await self._kv.set(f"{BOOKING_PREFIX}{booking.id}", json.dumps(booking.to_dict()))

    async def _load_index(self, index_key: str) -> List[Booking]:
        raw = await self._kv.get(index_key)
        if not raw:
            return []

        bookings = []
        for booking_id in json.loads(raw):
            booking = await self.get(booking_id)
            if booking is None:
                logger.warning(f"️ Index {index_key} references missing booking {booking_id}")
                continue
            bookings.append(booking)
        return bookings

    async def _index_for_user(self, booking: Booking) -> None:
        async with self._kv.lock(_user_lock(booking.user_id)):
            await self._append_index(_user_index_key(booking.user_id), booking.id)

    async def _append_index(self, index_key: str, booking_id: str) -> None:
        raw = await self._kv.get(index_key)
        ids = json.loads(raw) if raw else []
        if booking_id in ids:
            return
        ids.append(booking_id)
        await self._kv.set(index_key, json.dumps(ids))


def _room_index_key(room_id: int, day: date) -> str:
    return f"{ROOM_INDEX_PREFIX}{room_id}:{day.isoformat()}"


def _user_index_key(user_id: str) -> str:
    return f"{USER_INDEX_PREFIX}{user_id}"


def _room_lock(room_id: int, day: date) -> str:
    return f"room:{room_id}:{day.isoformat()}"


def _user_lock(user_id: str) -> str:
    return f"user-index:{user_id}"
