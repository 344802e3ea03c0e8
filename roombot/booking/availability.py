"""
Availability Engine for Roombot Meeting Room Booking Service

Computes free slots per room and date from the slot calendar and the
confirmed bookings in the store. Display-time availability is advisory;
BookingStore.create makes the authoritative conflict decision.
"""

import logging
from datetime import date
from typing import List

from roombot.booking.catalog import RoomCatalog, SlotCalendar, overlaps
from roombot.booking.models import Booking, RoomDaySummary, TimeSlot
from roombot.booking.store import BookingStore

logger = logging.getLogger(__name__)


class AvailabilityEngine:

    def __init__(self, catalog: RoomCatalog, calendar: SlotCalendar, store: BookingStore):
        self.catalog = catalog
        self.calendar = calendar
        self.store = store

    async def available_slots(self, room_id: int, day: date) -> List[TimeSlot]:
        """
        Slots of the day grid not overlapping any confirmed booking.

        Returns:
            Chronological slots; an empty list means the room is full that day
        """
        bookings = await self.store.list_confirmed_by_room_and_date(room_id, day)
        return self._free_slots(bookings)

    async def day_summary(self, day: date) -> List[RoomDaySummary]:
        """Per-room status for one date: free, or occupied with its bookings"""
        summaries = []
        for room in self.catalog.all():
            bookings = await self.store.list_confirmed_by_room_and_date(room.id, day)
            summaries.append(RoomDaySummary(
                room=room, date=day, bookings=bookings, free_slots=len(self._free_slots(bookings)),
            ))
        return summaries

    def _free_slots(self, bookings: List[Booking]) -> List[TimeSlot]:
        return [
            slot for slot in self.calendar.slots_for_day()
            if not any(overlaps(slot, booking.slot) for booking in bookings)
        ]
