"""Administrative date blocking stored as synthetic BLOCKED bookings."""

from __future__ import annotations

import re
from contextlib import contextmanager
from datetime import date, timedelta
from typing import Callable, Iterable, Iterator, Optional

from hostel_inventory.domain.errors import (
    BlockConflict,
    BookingNotFound,
    InvalidRequest,
    UpstreamUnavailable,
)
from hostel_inventory.domain.inventory import Inventory
from hostel_inventory.domain.models import (
    GUEST_BOOKING_STATUSES,
    BlockedPeriod,
    Booking,
    BookingStatus,
    NewBooking,
)
from hostel_inventory.repository.booking_repository import (
    BookingRepository,
    BookingRepositoryError,
)
from hostel_inventory.utils.clock import Clock, utc_now
from hostel_inventory.utils.config import Settings, get_settings
from hostel_inventory.utils.logger import get_logger


logger = get_logger(__name__)

BLOCK_TYPES = ("maintenance", "owner", "seasonal", "other")

_TYPE_PATTERN = re.compile(r"\[BLOCK_TYPE:([^\]]+)\]")
_REASON_PATTERN = re.compile(r"\[REASON:([^\]]+)\]")
_DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


@contextmanager
def _repository_errors() -> Iterator[None]:
    try:
        yield
    except BookingRepositoryError as exc:
        raise UpstreamUnavailable("Booking repository is unavailable") from exc


def format_block_notes(block_type: str, reason: Optional[str], notes: Optional[str]) -> str:
    parts = [f"[BLOCK_TYPE:{block_type}]"]
    if reason:
        parts.append(f"[REASON:{reason.replace(']', ')')}]")
    if notes:
        parts.append(notes)
    return " ".join(parts)


def parse_block_notes(notes: Optional[str]) -> tuple[str, Optional[str], Optional[str]]:
    """Return ``(block_type, reason, free_text)`` from a block's note field."""
    text = notes or ""
    type_match = _TYPE_PATTERN.search(text)
    reason_match = _REASON_PATTERN.search(text)
    remainder = _REASON_PATTERN.sub("", _TYPE_PATTERN.sub("", text)).strip()
    return (
        type_match.group(1) if type_match else "other",
        reason_match.group(1) if reason_match else None,
        remainder or None,
    )


class DateBlocker:
    """Blocks room date ranges for maintenance, owner use and similar."""

    def __init__(
        self,
        repository: BookingRepository,
        inventory: Optional[Inventory] = None,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository
        self._inventory = inventory or Inventory(self._settings.rooms)
        self._clock = clock
        self._on_change = on_change

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def validate_dates(self, start: date, end: date) -> None:
        if not isinstance(start, date) or not isinstance(end, date):
            raise InvalidRequest("start and end must be dates")
        if end <= start:
            raise InvalidRequest("End date must be after start date")
        today = self._clock().date()
        if start < today - timedelta(days=self._settings.block_max_past_days):
            raise InvalidRequest("Cannot block dates more than 1 year in the past")
        if end > today + timedelta(days=self._settings.block_max_future_days):
            raise InvalidRequest("Cannot block dates more than 2 years in the future")

    def _guest_conflicts(self, room_id: str, start: date, end: date) -> list[Booking]:
        with _repository_errors():
            return self._repository.find_overlapping(
                room_id, start, end, GUEST_BOOKING_STATUSES
            )

    def _check_blockable(self, room_id: str, start: date, end: date, block_type: str) -> None:
        if block_type not in BLOCK_TYPES:
            raise InvalidRequest(f"blockType must be one of {', '.join(BLOCK_TYPES)}")
        self.validate_dates(start, end)
        self._inventory.get(room_id)
        conflicts = self._guest_conflicts(room_id, start, end)
        if conflicts:
            details = ", ".join(
                f"{booking.guest_name or booking.booking_id} "
                f"({booking.check_in.isoformat()} - {booking.check_out.isoformat()})"
                for booking in conflicts
            )
            raise BlockConflict(
                f"Cannot block dates: conflicts with existing bookings: {details}"
            )

    def _blocked_booking(
        self,
        room_id: str,
        start: date,
        end: date,
        block_type: str,
        reason: Optional[str],
        notes: Optional[str],
    ) -> NewBooking:
        return NewBooking(
            room_id=room_id,
            check_in=start,
            check_out=end,
            beds_count=0,
            status=BookingStatus.BLOCKED,
            platform="internal",
            source="manual",
            guest_name="Blocked",
            notes=format_block_notes(block_type, reason, notes),
        )

    def block_dates(
        self,
        room_id: str,
        start: date,
        end: date,
        reason: Optional[str] = None,
        block_type: str = "other",
        notes: Optional[str] = None,
    ) -> str:
        """Block ``[start, end)`` for a room and return the block's booking id."""
        self._check_blockable(room_id, start, end, block_type)
        with _repository_errors():
            booking = self._repository.create_booking(
                self._blocked_booking(room_id, start, end, block_type, reason, notes)
            )
        self._changed()
        logger.info("Blocked room %s from %s to %s (%s)", room_id, start, end, block_type)
        return booking.booking_id

    def block_multiple_ranges(
        self,
        room_id: str,
        ranges: Iterable[tuple[date, date]],
        reason: Optional[str] = None,
        block_type: str = "other",
    ) -> list[str]:
        """Block several ranges; nothing is written unless every range is free."""
        ranges = list(ranges)
        for start, end in ranges:
            self._check_blockable(room_id, start, end, block_type)
        with _repository_errors():
            bookings = self._repository.create_bookings(
                self._blocked_booking(room_id, start, end, block_type, reason, None)
                for start, end in ranges
            )
        self._changed()
        logger.info("Blocked %s ranges for room %s", len(bookings), room_id)
        return [booking.booking_id for booking in bookings]

    def block_weekdays(
        self,
        room_id: str,
        start: date,
        end: date,
        weekdays: Iterable[int],
        reason: Optional[str] = None,
    ) -> list[str]:
        """Block every matching weekday (Monday=0) in ``[start, end)``.

        Days that collide with guest bookings are skipped.
        """
        self.validate_dates(start, end)
        days = set(weekdays)
        if not days:
            raise InvalidRequest("weekdays must contain at least one day")
        if any(day < 0 or day > 6 for day in days):
            raise InvalidRequest("weekdays must be between 0 (Monday) and 6 (Sunday)")

        booking_ids: list[str] = []
        current = start
        while current < end:
            if current.weekday() in days:
                try:
                    booking_ids.append(
                        self.block_dates(
                            room_id,
                            current,
                            current + timedelta(days=1),
                            reason=reason or f"Blocked {_DAY_NAMES[current.weekday()]}s",
                            block_type="seasonal",
                        )
                    )
                except BlockConflict as exc:
                    logger.warning("Skipping %s for room %s: %s", current, room_id, exc)
            current += timedelta(days=1)
        return booking_ids

    def unblock_dates(self, booking_id: str) -> None:
        with _repository_errors():
            booking = self._repository.get_booking(booking_id)
            if booking is None:
                raise BookingNotFound(f"Booking not found: {booking_id}")
            if booking.status is not BookingStatus.BLOCKED:
                raise InvalidRequest(f"Booking {booking_id} is not a blocked booking")
            self._repository.delete_booking(booking_id)
        self._changed()
        logger.info("Unblocked dates: removed booking %s", booking_id)

    def unblock_date_range(self, room_id: str, start: date, end: date) -> int:
        self.validate_dates(start, end)
        self._inventory.get(room_id)
        with _repository_errors():
            removed = self._repository.delete_overlapping(
                room_id, start, end, BookingStatus.BLOCKED
            )
        if removed:
            self._changed()
        logger.info("Unblocked %s blocked bookings in range", removed)
        return removed

    def get_blocked_dates(
        self,
        room_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[BlockedPeriod]:
        self._inventory.get(room_id)
        if (start is None) != (end is None):
            raise InvalidRequest("'from' and 'to' must be given together")
        if start is not None and end is not None:
            self.validate_dates(start, end)
        else:
            start, end = date.min, date.max
        with _repository_errors():
            blocks = self._repository.find_overlapping(
                room_id, start, end, (BookingStatus.BLOCKED,)
            )

        periods = []
        for booking in sorted(blocks, key=lambda item: (item.check_in, item.booking_id)):
            block_type, reason, notes = parse_block_notes(booking.notes)
            periods.append(
                BlockedPeriod(
                    booking_id=booking.booking_id,
                    room_id=booking.room_id,
                    start=booking.check_in,
                    end=booking.check_out,
                    block_type=block_type,
                    reason=reason,
                    notes=notes,
                    created_at=booking.created_at,
                )
            )
        return periods

    def is_date_blocked(self, room_id: str, day: date) -> bool:
        with _repository_errors():
            blocks = self._repository.find_overlapping(
                room_id, day, day + timedelta(days=1), (BookingStatus.BLOCKED,)
            )
        return bool(blocks)
