"""Domain models for bed inventory, holds, bookings and conflict decisions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Mapping, Optional


class RoomCategory(str, Enum):
    MIXED = "mixed"
    FEMALE = "female"
    FLEXIBLE = "flexible"


class HoldStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CONFIRMED = "CONFIRMED"
    RELEASED = "RELEASED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not HoldStatus.ACTIVE


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    CANCELLED = "CANCELLED"
    BLOCKED = "BLOCKED"


# Statuses that take beds away from availability.
OCCUPYING_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN, BookingStatus.BLOCKED}
)

# Statuses an external import or a block can collide with.
ACTIVE_BOOKING_STATUSES: frozenset[BookingStatus] = frozenset(
    {
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
        BookingStatus.CHECKED_IN,
        BookingStatus.BLOCKED,
    }
)

GUEST_BOOKING_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN}
)


class ResolutionStrategy(str, Enum):
    PLATFORM_PRIORITY = "platform_priority"
    NEWEST_WINS = "newest_wins"
    OLDEST_WINS = "oldest_wins"
    ICAL_PRIORITY = "ical_priority"
    MANUAL = "manual"


class ResolutionAction(str, Enum):
    KEEP_EXISTING = "keep_existing"
    REPLACE = "replace"
    SKIP = "skip"


@dataclass(frozen=True)
class Room:
    room_id: str
    name: str
    capacity: int
    category: RoomCategory = RoomCategory.MIXED
    auto_convert_hours: Optional[int] = None


@dataclass(frozen=True)
class Occupants:
    men: int = 0
    women: int = 0

    @property
    def total(self) -> int:
        return self.men + self.women


@dataclass(frozen=True)
class Hold:
    """Temporary claim on a bed count; replaced, never mutated in place."""

    hold_id: str
    check_in: date
    check_out: date
    beds_count: int
    room_beds: Mapping[str, int]
    occupants: Occupants
    total: float
    created_at: datetime
    expires_at: datetime
    status: HoldStatus = HoldStatus.ACTIVE
    payment_status: Optional[str] = None
    closed_at: Optional[datetime] = None
    booking_ids: tuple[str, ...] = ()

    def overlaps(self, start: date, end: date) -> bool:
        return self.check_in < end and self.check_out > start


@dataclass(frozen=True)
class Booking:
    booking_id: str
    room_id: str
    check_in: date
    check_out: date
    beds_count: int
    status: BookingStatus
    platform: str = "direct"
    source: str = "direct"
    payment_status: Optional[str] = None
    guest_name: str = ""
    external_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    def overlaps(self, start: date, end: date) -> bool:
        return self.check_in < end and self.check_out > start


@dataclass(frozen=True)
class NewBooking:
    """Booking fields supplied by a writer before the repository assigns an id."""

    room_id: str
    check_in: date
    check_out: date
    beds_count: int
    status: BookingStatus
    platform: str = "direct"
    source: str = "direct"
    payment_status: Optional[str] = None
    guest_name: str = ""
    external_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ExternalBooking:
    """Booking parsed from an OTA calendar feed."""

    external_id: str
    check_in: date
    check_out: date
    guest_name: str = "Guest"
    status: str = "confirmed"
    beds_count: int = 1
    notes: Optional[str] = None


@dataclass(frozen=True)
class RoomOccupancy:
    """Peak nightly usage of a room over a date range.

    ``booked`` and ``held`` are each the busiest night for that source alone;
    ``occupied`` is the busiest night with both combined, so it can be lower
    than their sum when the peaks fall on different nights.
    """

    room_id: str
    capacity: int
    booked: int
    held: int
    occupied: int

    @property
    def available(self) -> int:
        return min(self.capacity, max(0, self.capacity - self.occupied))


@dataclass(frozen=True)
class AvailabilitySnapshot:
    start: date
    end: date
    rooms: tuple[RoomOccupancy, ...]
    computed_at: datetime

    @property
    def total_available(self) -> int:
        return sum(room.available for room in self.rooms)

    def for_room(self, room_id: str) -> Optional[RoomOccupancy]:
        for room in self.rooms:
            if room.room_id == room_id:
                return room
        return None


@dataclass(frozen=True)
class ConflictResolution:
    can_proceed: bool
    action: ResolutionAction
    reason: str
    conflicts_resolved: int = 0
    bookings_modified: tuple[str, ...] = ()


@dataclass(frozen=True)
class ConflictAnalysis:
    overlap_nights: int
    overlap_percentage: int
    priority_difference: int
    recommendation: str


@dataclass(frozen=True)
class BlockedPeriod:
    booking_id: str
    room_id: str
    start: date
    end: date
    block_type: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class HoldStats:
    active_holds: int
    held_beds: int
    total_holds: int
    by_status: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ConfirmationResult:
    hold: Hold
    booking_recorded: bool


@dataclass(frozen=True)
class ImportSummary:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    blocked_dates: int = 0
    conflicts_resolved: int = 0
