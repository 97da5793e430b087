from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from hostel_inventory.domain.models import HoldStatus
from hostel_inventory.repository.booking_repository import SqliteBookingRepository
from hostel_inventory.services.availability_service import AvailabilityService
from hostel_inventory.services.hold_manager import HoldManager, HoldRequest
from hostel_inventory.services.hold_store import HoldStore
from hostel_inventory.services.hold_sweeper import HoldSweeper
from hostel_inventory.utils.clock import ManualClock
from hostel_inventory.utils.config import get_settings


NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class _ExplodingManager:
    def __init__(self) -> None:
        self.calls = 0

    def sweep_expired(self) -> int:
        self.calls += 1
        raise RuntimeError("store corrupted")


def _build_manager(tmp_path, filename: str):
    get_settings.cache_clear()
    settings = replace(get_settings(), database_path=tmp_path / filename)
    clock = ManualClock(NOW)
    repository = SqliteBookingRepository(settings, clock=clock)
    repository.initialize_database()
    store = HoldStore()
    manager = HoldManager(
        store=store,
        availability=AvailabilityService(
            repository=repository,
            hold_store=store,
            settings=settings,
            clock=clock,
        ),
        repository=repository,
        settings=settings,
        clock=clock,
    )
    return manager, clock


def _hold_request() -> HoldRequest:
    return HoldRequest(check_in="2025-03-10", check_out="2025-03-12", beds_count=2)


def test_interval_must_be_positive(tmp_path) -> None:
    manager, _ = _build_manager(tmp_path, "interval.db")

    with pytest.raises(ValueError):
        HoldSweeper(manager, 0)


def test_run_once_expires_due_holds(tmp_path) -> None:
    manager, clock = _build_manager(tmp_path, "run_once.db")
    hold = manager.create_hold(_hold_request())
    sweeper = HoldSweeper(manager, 60)

    assert sweeper.run_once() == 0
    clock.advance(minutes=10)
    assert sweeper.run_once() == 1

    assert sweeper.runs == 2
    assert manager.get_hold(hold.hold_id).status is HoldStatus.EXPIRED


def test_sweep_failures_are_logged_and_loop_survives(caplog) -> None:
    manager = _ExplodingManager()
    sweeper = HoldSweeper(manager, 60)

    assert sweeper.run_once() == 0
    assert sweeper.run_once() == 0

    assert manager.calls == 2
    assert sweeper.runs == 2
    assert "Hold sweep failed" in caplog.text


def test_background_thread_sweeps_until_stopped(tmp_path) -> None:
    manager, clock = _build_manager(tmp_path, "thread.db")
    expired = threading.Event()
    manager.add_expiry_listener(lambda hold: expired.set())
    manager.create_hold(_hold_request())
    clock.advance(minutes=10)

    sweeper = HoldSweeper(manager, 0.01)
    sweeper.start()
    try:
        assert sweeper.running
        assert expired.wait(timeout=5)
    finally:
        sweeper.stop()

    assert not sweeper.running
    assert manager.get_stats().active_holds == 0


def test_start_is_idempotent(tmp_path) -> None:
    manager, _ = _build_manager(tmp_path, "idempotent.db")
    sweeper = HoldSweeper(manager, 30)

    sweeper.start()
    try:
        sweeper.start()
        assert sweeper.running
    finally:
        sweeper.stop()
    assert not sweeper.running
