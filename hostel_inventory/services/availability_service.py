"""Occupancy computation merging stored bookings with active holds."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from threading import RLock
from typing import Iterable, Mapping, Optional

from hostel_inventory.domain.errors import (
    InsufficientAvailability,
    InvalidRequest,
    UpstreamUnavailable,
)
from hostel_inventory.domain.inventory import Inventory
from hostel_inventory.domain.models import (
    OCCUPYING_STATUSES,
    AvailabilitySnapshot,
    Booking,
    BookingStatus,
    Occupants,
    Room,
    RoomCategory,
    RoomOccupancy,
)
from hostel_inventory.repository.booking_repository import (
    BookingRepository,
    BookingRepositoryError,
)
from hostel_inventory.services.hold_store import HoldStore
from hostel_inventory.utils.clock import Clock, utc_now
from hostel_inventory.utils.config import Settings, get_settings
from hostel_inventory.utils.logger import get_logger


logger = get_logger(__name__)

# (check_in, check_out, beds)
Interval = tuple[date, date, int]


def nightly_peak(intervals: Iterable[Interval], start: date, end: date) -> int:
    """Largest bed total on any single night of ``[start, end)``."""
    events: list[tuple[date, int]] = []
    for check_in, check_out, beds in intervals:
        lo = max(check_in, start)
        hi = min(check_out, end)
        if lo >= hi or beds <= 0:
            continue
        events.append((lo, beds))
        events.append((hi, -beds))
    # Departures sort before arrivals on the same date: stays are half-open.
    events.sort(key=lambda item: (item[0], item[1]))
    running = 0
    peak = 0
    for _, delta in events:
        running += delta
        peak = max(peak, running)
    return peak


def validate_range(start: date, end: date) -> None:
    if start >= end:
        raise InvalidRequest("'from' must be earlier than 'to'")


class AvailabilityService:
    """Answers which beds are free for a date range.

    Reads go through a short-lived cache; admission and confirmation paths
    pass ``fresh=True`` and always hit the booking repository.
    """

    def __init__(
        self,
        repository: BookingRepository,
        hold_store: HoldStore,
        inventory: Optional[Inventory] = None,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository
        self._hold_store = hold_store
        self._inventory = inventory or Inventory(self._settings.rooms)
        self._clock = clock
        self._cache: dict[tuple[str, date, date], AvailabilitySnapshot] = {}
        self._cache_lock = RLock()

    @property
    def inventory(self) -> Inventory:
        return self._inventory

    def invalidate_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    def _cached(self, key: tuple[str, date, date]) -> Optional[AvailabilitySnapshot]:
        ttl = self._settings.availability_cache_seconds
        if ttl <= 0:
            return None
        with self._cache_lock:
            snapshot = self._cache.get(key)
            if snapshot is None:
                return None
            if (self._clock() - snapshot.computed_at).total_seconds() >= ttl:
                del self._cache[key]
                return None
            return snapshot

    def _store(self, key: tuple[str, date, date], snapshot: AvailabilitySnapshot) -> None:
        if self._settings.availability_cache_seconds <= 0:
            return
        with self._cache_lock:
            self._cache[key] = snapshot

    def booked_intervals(
        self,
        room_id: Optional[str],
        start: date,
        end: date,
    ) -> dict[str, list[Interval]]:
        """Occupying bookings per room; fails closed when the store is down."""
        try:
            bookings = self._repository.find_overlapping(
                room_id, start, end, OCCUPYING_STATUSES
            )
        except BookingRepositoryError as exc:
            logger.error("Booking repository unavailable for %s..%s: %s", start, end, exc)
            raise UpstreamUnavailable("Booking repository is unavailable") from exc

        per_room: dict[str, list[Interval]] = defaultdict(list)
        for booking in bookings:
            if booking.room_id not in self._inventory:
                logger.warning(
                    "Ignoring booking %s for unknown room %s",
                    booking.booking_id,
                    booking.room_id,
                )
                continue
            per_room[booking.room_id].append(
                (booking.check_in, booking.check_out, self._beds_taken(booking))
            )
        return per_room

    def _beds_taken(self, booking: Booking) -> int:
        # A block is a zero-occupant record that closes the whole room.
        if booking.status is BookingStatus.BLOCKED:
            return self._inventory.get(booking.room_id).capacity
        return booking.beds_count

    def held_intervals(
        self,
        start: date,
        end: date,
        exclude_hold_id: Optional[str] = None,
    ) -> dict[str, list[Interval]]:
        per_room: dict[str, list[Interval]] = defaultdict(list)
        for hold in self._hold_store.active_overlapping(start, end, exclude_hold_id):
            for room_id, beds in hold.room_beds.items():
                per_room[room_id].append((hold.check_in, hold.check_out, beds))
        return per_room

    def compute_occupancy(
        self,
        room_id: Optional[str],
        start: date,
        end: date,
        *,
        fresh: bool = False,
        exclude_hold_id: Optional[str] = None,
    ) -> AvailabilitySnapshot:
        validate_range(start, end)
        room_ids = [self._inventory.get(room_id).room_id] if room_id else self._inventory.room_ids

        key = (room_id or "all", start, end)
        use_cache = not fresh and exclude_hold_id is None
        if use_cache:
            cached = self._cached(key)
            if cached is not None:
                return cached

        booked = self.booked_intervals(room_id, start, end)
        held = self.held_intervals(start, end, exclude_hold_id)

        rooms = []
        for rid in room_ids:
            room_booked = booked.get(rid, [])
            room_held = held.get(rid, [])
            rooms.append(
                RoomOccupancy(
                    room_id=rid,
                    capacity=self._inventory.get(rid).capacity,
                    booked=nightly_peak(room_booked, start, end),
                    held=nightly_peak(room_held, start, end),
                    occupied=nightly_peak(room_booked + room_held, start, end),
                )
            )
        snapshot = AvailabilitySnapshot(
            start=start,
            end=end,
            rooms=tuple(rooms),
            computed_at=self._clock(),
        )
        if use_cache:
            self._store(key, snapshot)
        return snapshot

    def capacity_snapshot(self, start: date, end: date) -> AvailabilitySnapshot:
        """Snapshot that ignores current usage; used for optimistic holds."""
        validate_range(start, end)
        return AvailabilitySnapshot(
            start=start,
            end=end,
            rooms=tuple(
                RoomOccupancy(
                    room_id=room.room_id,
                    capacity=room.capacity,
                    booked=0,
                    held=0,
                    occupied=0,
                )
                for room in self._inventory
            ),
            computed_at=self._clock(),
        )

    def is_women_only(
        self,
        room: Room,
        occupancy: Optional[RoomOccupancy],
        check_in: date,
    ) -> bool:
        """Whether ``room`` must turn away groups with men for a stay from ``check_in``.

        A flexible room is women-only until check-in is within its
        ``auto_convert_hours`` and it holds no stored bookings for the stay.
        """
        if room.category is RoomCategory.FEMALE:
            return True
        if room.category is not RoomCategory.FLEXIBLE:
            return False
        if room.auto_convert_hours is None or occupancy is None or occupancy.booked > 0:
            return True
        arrival = datetime.combine(check_in, time.min, tzinfo=timezone.utc)
        return arrival - self._clock() > timedelta(hours=room.auto_convert_hours)

    def allocate_beds(
        self,
        beds_count: int,
        occupants: Occupants,
        snapshot: AvailabilitySnapshot,
        requested: Optional[Mapping[str, int]] = None,
    ) -> dict[str, int]:
        """Assign a bed count to rooms, or raise InsufficientAvailability.

        Explicit ``requested`` mappings are checked room by room. Otherwise a
        single room with the least spare capacity wins; failing that the
        group is split across rooms with the most free beds first.
        """
        if requested:
            for rid, beds in requested.items():
                room = self._inventory.get(rid)
                occupancy = snapshot.for_room(rid)
                if occupants.men > 0 and self.is_women_only(room, occupancy, snapshot.start):
                    raise InsufficientAvailability(
                        f"Room {rid} is female-only and the group includes men"
                    )
                free = occupancy.available if occupancy is not None else 0
                if beds > free:
                    raise InsufficientAvailability(
                        f"Room {rid} has {free} free beds, {beds} requested"
                    )
            return {str(rid): int(beds) for rid, beds in requested.items() if beds > 0}

        order = {rid: index for index, rid in enumerate(self._inventory.room_ids)}
        eligible = [
            occupancy
            for occupancy in snapshot.rooms
            if occupancy.available > 0
            and not (
                occupants.men > 0
                and self.is_women_only(
                    self._inventory.get(occupancy.room_id), occupancy, snapshot.start
                )
            )
        ]

        single = [occupancy for occupancy in eligible if occupancy.available >= beds_count]
        if single:
            best = min(
                single,
                key=lambda item: (item.capacity - beds_count, -item.capacity, order[item.room_id]),
            )
            return {best.room_id: beds_count}

        remaining = beds_count
        allocation: dict[str, int] = {}
        for occupancy in sorted(
            eligible, key=lambda item: (-item.available, order[item.room_id])
        ):
            take = min(occupancy.available, remaining)
            allocation[occupancy.room_id] = take
            remaining -= take
            if remaining == 0:
                return allocation

        free_total = sum(occupancy.available for occupancy in eligible)
        raise InsufficientAvailability(
            f"{beds_count} beds requested but only {free_total} are free "
            f"between {snapshot.start} and {snapshot.end}"
        )

    def verify_bookable(
        self,
        room_beds: Mapping[str, int],
        start: date,
        end: date,
    ) -> None:
        """Check against stored bookings alone that ``room_beds`` still fit."""
        booked = self.booked_intervals(None, start, end)
        for rid, beds in room_beds.items():
            capacity = self._inventory.get(rid).capacity
            peak = nightly_peak(booked.get(rid, []), start, end)
            if peak + beds > capacity:
                raise InsufficientAvailability(
                    f"Room {rid} no longer has {beds} free beds "
                    f"({capacity - peak} left) between {start} and {end}"
                )

