"""Imports bookings parsed from OTA calendar feeds into the booking store."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from hostel_inventory.domain.errors import HoldEngineError
from hostel_inventory.domain.inventory import Inventory
from hostel_inventory.domain.models import (
    BookingStatus,
    ExternalBooking,
    ImportSummary,
    NewBooking,
)
from hostel_inventory.repository.booking_repository import (
    BookingRepository,
    BookingRepositoryError,
)
from hostel_inventory.services.conflict_resolver import ICAL_SOURCE, ConflictResolver
from hostel_inventory.utils.config import Settings, get_settings
from hostel_inventory.utils.logger import get_logger


logger = get_logger(__name__)

_STATUS_MAP = {
    "confirmed": BookingStatus.CONFIRMED,
    "blocked": BookingStatus.BLOCKED,
    "cancelled": BookingStatus.CANCELLED,
}


class ChannelImportService:
    """Applies a batch of external bookings for one room and platform."""

    def __init__(
        self,
        repository: BookingRepository,
        resolver: ConflictResolver,
        inventory: Optional[Inventory] = None,
        settings: Optional[Settings] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository
        self._resolver = resolver
        self._inventory = inventory or Inventory(self._settings.rooms)
        self._on_change = on_change

    @staticmethod
    def _is_valid(booking: ExternalBooking) -> bool:
        return (
            bool(booking.external_id and booking.external_id.strip())
            and booking.check_in < booking.check_out
            and booking.status.lower() in _STATUS_MAP
            and booking.beds_count >= 0
        )

    def import_bookings(
        self,
        room_id: str,
        platform: str,
        bookings: Iterable[ExternalBooking],
    ) -> ImportSummary:
        self._inventory.get(room_id)
        platform = (platform or "unknown").strip().lower()

        imported = updated = skipped = blocked_dates = conflicts_resolved = 0
        for booking in bookings:
            if not self._is_valid(booking):
                logger.warning("Skipping invalid %s booking %r", platform, booking.external_id)
                skipped += 1
                continue
            try:
                outcome, resolved = self._import_one(room_id, platform, booking)
            except (HoldEngineError, BookingRepositoryError):
                logger.exception(
                    "Failed to process %s booking %s", platform, booking.external_id
                )
                skipped += 1
                continue

            conflicts_resolved += resolved
            if outcome == "imported":
                imported += 1
            elif outcome == "blocked":
                blocked_dates += 1
            elif outcome == "updated":
                updated += 1
            else:
                skipped += 1

        if imported or updated or blocked_dates or conflicts_resolved:
            if self._on_change is not None:
                self._on_change()

        summary = ImportSummary(
            imported=imported,
            updated=updated,
            skipped=skipped,
            blocked_dates=blocked_dates,
            conflicts_resolved=conflicts_resolved,
        )
        logger.info("Channel import for room %s from %s: %s", room_id, platform, summary)
        return summary

    def _import_one(
        self,
        room_id: str,
        platform: str,
        booking: ExternalBooking,
    ) -> tuple[str, int]:
        status = _STATUS_MAP[booking.status.lower()]
        existing = self._repository.find_by_external_id(booking.external_id, platform)
        record = NewBooking(
            room_id=room_id,
            check_in=booking.check_in,
            check_out=booking.check_out,
            beds_count=0 if status is BookingStatus.BLOCKED else max(booking.beds_count, 1),
            status=status,
            platform=platform,
            source=ICAL_SOURCE,
            guest_name=booking.guest_name,
            external_id=booking.external_id,
            notes=booking.notes,
        )

        if status is BookingStatus.CANCELLED:
            if existing is None:
                return "skipped", 0
            self._repository.update_booking(existing.booking_id, record)
            return "updated", 0

        conflicts = self._resolver.find_conflicts(
            room_id,
            booking.check_in,
            booking.check_out,
            exclude_id=existing.booking_id if existing is not None else None,
        )
        resolution = self._resolver.resolve_conflicts(conflicts, booking, platform)
        if not resolution.can_proceed:
            return "skipped", resolution.conflicts_resolved

        if existing is not None:
            self._repository.update_booking(existing.booking_id, record)
            return "updated", resolution.conflicts_resolved

        self._repository.create_booking(record)
        outcome = "blocked" if status is BookingStatus.BLOCKED else "imported"
        return outcome, resolution.conflicts_resolved
