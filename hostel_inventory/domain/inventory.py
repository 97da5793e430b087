"""Static room and bed capacity model."""

from __future__ import annotations

from typing import Iterable, Iterator

from hostel_inventory.domain.errors import RoomNotFound
from hostel_inventory.domain.models import Room


class Inventory:
    """Immutable lookup over the hostel's rooms, in configuration order."""

    def __init__(self, rooms: Iterable[Room]) -> None:
        self._rooms: dict[str, Room] = {}
        for room in rooms:
            if room.capacity <= 0:
                raise ValueError(f"room {room.room_id} capacity must be > 0")
            if room.room_id in self._rooms:
                raise ValueError(f"duplicate room id {room.room_id}")
            self._rooms[room.room_id] = room
        if not self._rooms:
            raise ValueError("inventory must contain at least one room")

    def __iter__(self) -> Iterator[Room]:
        return iter(self._rooms.values())

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    @property
    def room_ids(self) -> list[str]:
        return list(self._rooms)

    @property
    def total_capacity(self) -> int:
        return sum(room.capacity for room in self._rooms.values())

    def get(self, room_id: str) -> Room:
        room = self._rooms.get(str(room_id))
        if room is None:
            raise RoomNotFound(f"Room not found: {room_id}")
        return room
