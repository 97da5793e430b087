"""Admission decisions for bookings imported from external channels."""

from __future__ import annotations

import math
from datetime import date
from typing import Mapping, Optional, Sequence, Union

from hostel_inventory.domain.errors import UpstreamUnavailable
from hostel_inventory.domain.models import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    ConflictAnalysis,
    ConflictResolution,
    ExternalBooking,
    ResolutionAction,
    ResolutionStrategy,
)
from hostel_inventory.repository.booking_repository import (
    BookingRepository,
    BookingRepositoryError,
)
from hostel_inventory.utils.config import Settings, get_settings
from hostel_inventory.utils.logger import get_logger


logger = get_logger(__name__)

ICAL_SOURCE = "ical"
DIRECT_PLATFORM = "direct"


def _skip(reason: str) -> ConflictResolution:
    return ConflictResolution(
        can_proceed=False,
        action=ResolutionAction.SKIP,
        reason=reason,
    )


class ConflictResolver:
    """Decides whether an imported booking may displace overlapping ones.

    The priority table is configuration; the algorithm only compares the
    numbers it finds there. Cancellations are planned first and written in
    one repository call once the import is known to be admitted.
    """

    def __init__(
        self,
        repository: BookingRepository,
        settings: Optional[Settings] = None,
        strategy: Union[ResolutionStrategy, str, None] = None,
        priorities: Optional[Mapping[str, int]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository
        self._strategy = ResolutionStrategy(strategy or self._settings.conflict_strategy)
        table = priorities if priorities is not None else self._settings.platform_priorities
        self._priorities = {str(key).lower(): int(value) for key, value in table.items()}

    @property
    def strategy(self) -> ResolutionStrategy:
        return self._strategy

    def set_strategy(self, strategy: Union[ResolutionStrategy, str]) -> None:
        self._strategy = ResolutionStrategy(strategy)

    def priority_of(self, platform: str) -> int:
        fallback = self._priorities.get("unknown", 0)
        return self._priorities.get((platform or "").lower(), fallback)

    def find_conflicts(
        self,
        room_id: str,
        check_in: date,
        check_out: date,
        exclude_id: Optional[str] = None,
    ) -> list[Booking]:
        try:
            conflicts = self._repository.find_overlapping(
                room_id, check_in, check_out, ACTIVE_BOOKING_STATUSES, exclude_id
            )
        except BookingRepositoryError as exc:
            raise UpstreamUnavailable("Booking repository is unavailable") from exc
        return self._ordered(conflicts)

    def find_potential_duplicates(
        self,
        room_id: str,
        check_in: date,
        check_out: date,
    ) -> list[Booking]:
        try:
            return self._repository.find_exact(
                room_id,
                check_in,
                check_out,
                (BookingStatus.PENDING, BookingStatus.CONFIRMED),
            )
        except BookingRepositoryError as exc:
            raise UpstreamUnavailable("Booking repository is unavailable") from exc

    @staticmethod
    def _ordered(conflicts: Sequence[Booking]) -> list[Booking]:
        return sorted(
            conflicts,
            key=lambda booking: (
                booking.created_at.isoformat() if booking.created_at else "",
                booking.booking_id,
            ),
        )

    def resolve_conflicts(
        self,
        conflicts: Sequence[Booking],
        new_booking: ExternalBooking,
        platform: str,
    ) -> ConflictResolution:
        if not conflicts:
            return ConflictResolution(
                can_proceed=True,
                action=ResolutionAction.KEEP_EXISTING,
                reason="No conflicts found",
            )

        ordered = self._ordered(conflicts)
        if self._strategy is ResolutionStrategy.PLATFORM_PRIORITY:
            resolution = self._by_platform_priority(ordered, platform)
        elif self._strategy is ResolutionStrategy.NEWEST_WINS:
            resolution = self._cancel_all(
                ordered,
                reason="Newer booking takes precedence",
                note="Automatically cancelled - newer booking imported",
            )
        elif self._strategy is ResolutionStrategy.ICAL_PRIORITY:
            resolution = self._by_ical_priority(ordered)
        elif self._strategy is ResolutionStrategy.OLDEST_WINS:
            resolution = _skip("Older booking takes precedence")
        elif self._strategy is ResolutionStrategy.MANUAL:
            resolution = _skip("Manual resolution required")
        else:
            raise ValueError(f"Unhandled resolution strategy {self._strategy!r}")

        logger.info(
            "Import %s from %s: %s (%s) - %s",
            new_booking.external_id,
            platform,
            resolution.action.value,
            resolution.conflicts_resolved,
            resolution.reason,
        )
        return resolution

    def _by_platform_priority(
        self,
        conflicts: Sequence[Booking],
        platform: str,
    ) -> ConflictResolution:
        new_priority = self.priority_of(platform)
        to_cancel: list[str] = []
        for conflict in conflicts:
            existing_priority = self.priority_of(conflict.platform)
            if new_priority > existing_priority:
                to_cancel.append(conflict.booking_id)
            elif new_priority < existing_priority:
                return _skip(f"Existing {conflict.platform} booking has higher priority")
            elif conflict.source == ICAL_SOURCE:
                return _skip("Identical priority booking already exists")

        if not to_cancel:
            return ConflictResolution(
                can_proceed=True,
                action=ResolutionAction.KEEP_EXISTING,
                reason="Resolved 0 conflicts based on platform priority",
            )
        self._cancel(to_cancel, f"Automatically cancelled due to conflict with {platform} booking")
        return ConflictResolution(
            can_proceed=True,
            action=ResolutionAction.REPLACE,
            reason=f"Resolved {len(to_cancel)} conflicts based on platform priority",
            conflicts_resolved=len(to_cancel),
            bookings_modified=tuple(to_cancel),
        )

    def _by_ical_priority(self, conflicts: Sequence[Booking]) -> ConflictResolution:
        for conflict in conflicts:
            if conflict.source == ICAL_SOURCE or conflict.platform == DIRECT_PLATFORM:
                label = ICAL_SOURCE if conflict.source == ICAL_SOURCE else DIRECT_PLATFORM
                return _skip(f"Cannot override {label} booking")
        return self._cancel_all(
            conflicts,
            reason="iCal import takes precedence over manual bookings",
            note="Automatically cancelled - iCal booking imported",
        )

    def _cancel_all(
        self,
        conflicts: Sequence[Booking],
        *,
        reason: str,
        note: str,
    ) -> ConflictResolution:
        ids = [conflict.booking_id for conflict in conflicts]
        self._cancel(ids, note)
        return ConflictResolution(
            can_proceed=True,
            action=ResolutionAction.REPLACE,
            reason=reason,
            conflicts_resolved=len(ids),
            bookings_modified=tuple(ids),
        )

    def _cancel(self, booking_ids: list[str], note: str) -> None:
        try:
            self._repository.cancel_bookings(booking_ids, note)
        except BookingRepositoryError as exc:
            raise UpstreamUnavailable("Could not cancel conflicting bookings") from exc

    def analyze_conflict(
        self,
        existing: Booking,
        new_booking: ExternalBooking,
        platform: str,
    ) -> ConflictAnalysis:
        """Describe a conflict without acting on it."""
        overlap_start = max(existing.check_in, new_booking.check_in)
        overlap_end = min(existing.check_out, new_booking.check_out)
        overlap_nights = max(0, (overlap_end - overlap_start).days)
        stay_nights = (new_booking.check_out - new_booking.check_in).days
        percentage = (
            int(math.floor(overlap_nights * 100 / stay_nights + 0.5)) if stay_nights > 0 else 0
        )

        difference = self.priority_of(platform) - self.priority_of(existing.platform)
        if difference > 0:
            recommendation = "Replace existing booking with new import"
        elif difference < 0:
            recommendation = "Keep existing booking, skip import"
        else:
            recommendation = "Equal priority - use secondary criteria"

        return ConflictAnalysis(
            overlap_nights=overlap_nights,
            overlap_percentage=percentage,
            priority_difference=difference,
            recommendation=recommendation,
        )
