"""
Room catalog and slot calendar.

Both are static for the lifetime of the process: rooms are seeded from
ROOMS and the slot grid comes from BookingConfig.slot_grid.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from roombot.booking.models import ROOMS, Room, TimeSlot


def overlaps(a: TimeSlot, b: TimeSlot) -> bool:
    """Half-open overlap: 09:00-10:00 and 10:00-11:00 do not overlap"""
    return a.start < b.end and a.end > b.start


class RoomCatalog:
    """Read-only lookup of bookable rooms"""

    def __init__(self, rooms: Optional[Iterable[Dict]] = None):
        seed = ROOMS if rooms is None else rooms
        self._rooms: Dict[int, Room] = {}
        for entry in seed:
            room = Room(id=int(entry["id"]), name=entry["name"], capacity=int(entry["capacity"]))
            if room.id in self._rooms:
                raise ValueError(f"Duplicate room id {room.id}")
            self._rooms[room.id] = room

    def all(self) -> List[Room]:
        return sorted(self._rooms.values(), key=lambda room: room.id)

    def get(self, room_id: int) -> Optional[Room]:
        return self._rooms.get(room_id)

    def __contains__(self, room_id: int) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)


class SlotCalendar:
    """Fixed, ordered grid of bookable slots; the same every day for every room"""

    def __init__(self, grid: Iterable[Tuple[str, str]]):
        self._slots: Tuple[TimeSlot, ...] = tuple(
            TimeSlot.from_strings(start, end) for start, end in grid
        )

    def slots_for_day(self) -> List[TimeSlot]:
        return list(self._slots)

    def find_slot(self, start: str, end: str) -> Optional[TimeSlot]:
        """Return the grid slot matching start/end text, or None"""
        try:
            wanted = TimeSlot.from_strings(start, end)
        except ValueError:
            return None
        return wanted if wanted in self._slots else None

    def contains(self, slot: TimeSlot) -> bool:
        return slot in self._slots
