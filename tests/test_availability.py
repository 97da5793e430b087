from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest

from hostel_inventory.domain.errors import (
    InsufficientAvailability,
    InvalidRequest,
    RoomNotFound,
    UpstreamUnavailable,
)
from hostel_inventory.domain.models import BookingStatus, Hold, HoldStatus, NewBooking, Occupants
from hostel_inventory.repository.booking_repository import (
    BookingRepositoryError,
    SqliteBookingRepository,
)
from hostel_inventory.services.availability_service import AvailabilityService, nightly_peak
from hostel_inventory.services.hold_store import HoldStore
from hostel_inventory.utils.clock import ManualClock
from hostel_inventory.utils.config import get_settings


NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
START = date(2025, 3, 10)
END = date(2025, 3, 12)


class _UnreachableRepository(SqliteBookingRepository):
    def find_overlapping(self, *args, **kwargs):
        raise BookingRepositoryError("database is locked")


def _build_test_settings(tmp_path, filename: str, **overrides):
    get_settings.cache_clear()
    return replace(get_settings(), database_path=tmp_path / filename, **overrides)


def _build_service(tmp_path, filename: str, repository_cls=SqliteBookingRepository, **overrides):
    settings = _build_test_settings(tmp_path, filename, **overrides)
    clock = ManualClock(NOW)
    repository = repository_cls(settings, clock=clock)
    repository.initialize_database()
    store = HoldStore()
    service = AvailabilityService(
        repository=repository,
        hold_store=store,
        settings=settings,
        clock=clock,
    )
    return service, repository, store, clock


def _booking(
    room_id: str,
    beds: int,
    status: BookingStatus = BookingStatus.CONFIRMED,
    check_in: date = START,
    check_out: date = END,
) -> NewBooking:
    return NewBooking(
        room_id=room_id,
        check_in=check_in,
        check_out=check_out,
        beds_count=beds,
        status=status,
        guest_name="Guest",
    )


def _hold(hold_id: str, room_beds: dict[str, int]) -> Hold:
    return Hold(
        hold_id=hold_id,
        check_in=START,
        check_out=END,
        beds_count=sum(room_beds.values()),
        room_beds=room_beds,
        occupants=Occupants(),
        total=0.0,
        created_at=NOW,
        expires_at=NOW + timedelta(minutes=10),
    )


# --- nightly peak ---

def test_back_to_back_stays_do_not_stack() -> None:
    intervals = [
        (date(2025, 3, 10), date(2025, 3, 12), 5),
        (date(2025, 3, 12), date(2025, 3, 14), 6),
    ]

    assert nightly_peak(intervals, date(2025, 3, 10), date(2025, 3, 14)) == 6


def test_overlapping_stays_stack_on_shared_nights() -> None:
    intervals = [
        (date(2025, 3, 10), date(2025, 3, 13), 5),
        (date(2025, 3, 12), date(2025, 3, 14), 6),
    ]

    assert nightly_peak(intervals, date(2025, 3, 10), date(2025, 3, 14)) == 11
    assert nightly_peak(intervals, date(2025, 3, 10), date(2025, 3, 12)) == 5


def test_intervals_outside_range_are_ignored() -> None:
    intervals = [(date(2025, 3, 1), date(2025, 3, 10), 9)]

    assert nightly_peak(intervals, date(2025, 3, 10), date(2025, 3, 12)) == 0


# --- occupancy ---

def test_occupancy_merges_bookings_and_active_holds(tmp_path) -> None:
    service, repository, store, _ = _build_service(tmp_path, "merge.db")
    repository.create_booking(_booking("5", 4))
    store.insert(_hold("H1", {"5": 2}))

    room = service.compute_occupancy("5", START, END).for_room("5")

    assert (room.capacity, room.booked, room.held, room.occupied) == (7, 4, 2, 6)
    assert room.available == 1


def test_pending_and_cancelled_bookings_do_not_occupy(tmp_path) -> None:
    service, repository, _, _ = _build_service(tmp_path, "statuses.db")
    repository.create_booking(_booking("5", 3, BookingStatus.PENDING))
    repository.create_booking(_booking("5", 3, BookingStatus.CANCELLED))
    repository.create_booking(_booking("5", 2, BookingStatus.CHECKED_IN))

    room = service.compute_occupancy("5", START, END).for_room("5")

    assert room.booked == 2
    assert room.available == 5


def test_blocked_booking_closes_the_whole_room(tmp_path) -> None:
    service, repository, _, _ = _build_service(tmp_path, "blocked.db")
    repository.create_booking(_booking("6", 0, BookingStatus.BLOCKED))

    snapshot = service.compute_occupancy(None, START, END)

    assert snapshot.for_room("6").available == 0
    assert snapshot.for_room("6").booked == 7
    assert snapshot.for_room("1").available == 12


def test_availability_is_clamped_to_capacity_bounds(tmp_path) -> None:
    service, repository, store, _ = _build_service(tmp_path, "clamp.db")
    repository.create_booking(_booking("5", 6))
    store.insert(_hold("H1", {"5": 4}))

    snapshot = service.compute_occupancy(None, START, END)

    assert snapshot.for_room("5").occupied == 10
    assert snapshot.for_room("5").available == 0
    for room in snapshot.rooms:
        assert 0 <= room.available <= room.capacity


def test_released_holds_do_not_count(tmp_path) -> None:
    service, _, store, _ = _build_service(tmp_path, "released.db")
    store.insert(_hold("H1", {"1": 5}))
    store.transition("H1", HoldStatus.RELEASED, NOW)

    assert service.compute_occupancy("1", START, END).for_room("1").held == 0


def test_unknown_room_raises_room_not_found(tmp_path) -> None:
    service, _, _, _ = _build_service(tmp_path, "unknown.db")

    with pytest.raises(RoomNotFound):
        service.compute_occupancy("404", START, END)


@pytest.mark.parametrize("start,end", [(END, START), (START, START)])
def test_invalid_range_raises(tmp_path, start, end) -> None:
    service, _, _, _ = _build_service(tmp_path, "range.db")

    with pytest.raises(InvalidRequest):
        service.compute_occupancy(None, start, end)


def test_repository_outage_fails_closed(tmp_path) -> None:
    service, _, _, _ = _build_service(
        tmp_path, "outage.db", repository_cls=_UnreachableRepository
    )

    with pytest.raises(UpstreamUnavailable):
        service.compute_occupancy(None, START, END)


# --- cache ---

def test_cached_reads_until_invalidated(tmp_path) -> None:
    service, repository, _, _ = _build_service(tmp_path, "cache.db")
    first = service.compute_occupancy("1", START, END)
    repository.create_booking(_booking("1", 3))

    assert service.compute_occupancy("1", START, END) is first
    assert service.compute_occupancy("1", START, END, fresh=True).for_room("1").booked == 3

    service.invalidate_cache()
    assert service.compute_occupancy("1", START, END).for_room("1").booked == 3


def test_cache_entries_expire_after_ttl(tmp_path) -> None:
    service, repository, _, clock = _build_service(
        tmp_path, "cache_ttl.db", availability_cache_seconds=30
    )
    service.compute_occupancy("1", START, END)
    repository.create_booking(_booking("1", 2))

    clock.advance(seconds=30)

    assert service.compute_occupancy("1", START, END).for_room("1").booked == 2


def test_zero_cache_seconds_disables_caching(tmp_path) -> None:
    service, repository, _, _ = _build_service(
        tmp_path, "no_cache.db", availability_cache_seconds=0
    )
    service.compute_occupancy("1", START, END)
    repository.create_booking(_booking("1", 2))

    assert service.compute_occupancy("1", START, END).for_room("1").booked == 2


# --- confirmation check ---

def test_verify_bookable_ignores_holds_and_checks_bookings(tmp_path) -> None:
    service, repository, store, _ = _build_service(tmp_path, "verify.db")
    store.insert(_hold("H1", {"5": 7}))

    service.verify_bookable({"5": 7}, START, END)

    repository.create_booking(_booking("5", 1, check_in=date(2025, 3, 11)))
    with pytest.raises(InsufficientAvailability):
        service.verify_bookable({"5": 7}, START, END)
