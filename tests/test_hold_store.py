from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from hostel_inventory.domain.errors import HoldAlreadyExists, HoldNotFound
from hostel_inventory.domain.models import Hold, HoldStatus, Occupants
from hostel_inventory.services.hold_store import HoldStore


NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _hold(
    hold_id: str,
    beds: int = 2,
    check_in: date = date(2025, 3, 10),
    check_out: date = date(2025, 3, 12),
    created_at: datetime = NOW,
    ttl_minutes: int = 10,
) -> Hold:
    return Hold(
        hold_id=hold_id,
        check_in=check_in,
        check_out=check_out,
        beds_count=beds,
        room_beds={"1": beds},
        occupants=Occupants(),
        total=0.0,
        created_at=created_at,
        expires_at=created_at + timedelta(minutes=ttl_minutes),
    )


def test_insert_rejects_duplicate_ids() -> None:
    store = HoldStore()
    store.insert(_hold("H1"))

    with pytest.raises(HoldAlreadyExists):
        store.insert(_hold("H1"))
    assert len(store) == 1


def test_transition_records_close_time_and_payment_status() -> None:
    store = HoldStore()
    store.insert(_hold("H1"))

    closed_at = NOW + timedelta(minutes=3)
    confirmed = store.transition("H1", HoldStatus.CONFIRMED, closed_at, payment_status="paid")

    assert confirmed.status is HoldStatus.CONFIRMED
    assert confirmed.closed_at == closed_at
    assert confirmed.payment_status == "paid"
    assert confirmed.expires_at == NOW + timedelta(minutes=10)


def test_transition_out_of_terminal_state_is_rejected() -> None:
    store = HoldStore()
    store.insert(_hold("H1"))
    store.transition("H1", HoldStatus.RELEASED, NOW)

    with pytest.raises(HoldNotFound):
        store.transition("H1", HoldStatus.CONFIRMED, NOW)
    assert store.get("H1").status is HoldStatus.RELEASED


def test_transition_unknown_hold_raises() -> None:
    with pytest.raises(HoldNotFound):
        HoldStore().transition("missing", HoldStatus.RELEASED, NOW)


def test_expire_due_only_touches_active_holds_past_expiry() -> None:
    store = HoldStore()
    store.insert(_hold("due", ttl_minutes=5))
    store.insert(_hold("fresh", ttl_minutes=30))
    store.insert(_hold("released", ttl_minutes=5))
    store.transition("released", HoldStatus.RELEASED, NOW)

    expired = store.expire_due(NOW + timedelta(minutes=5))

    assert [hold.hold_id for hold in expired] == ["due"]
    assert store.get("due").status is HoldStatus.EXPIRED
    assert store.get("fresh").status is HoldStatus.ACTIVE
    assert store.get("released").status is HoldStatus.RELEASED
    assert store.expire_due(NOW + timedelta(minutes=5)) == []


def test_purge_terminal_respects_retention_cutoff() -> None:
    store = HoldStore()
    store.insert(_hold("old"))
    store.insert(_hold("recent"))
    store.insert(_hold("active"))
    store.transition("old", HoldStatus.RELEASED, NOW)
    store.transition("recent", HoldStatus.RELEASED, NOW + timedelta(hours=1))

    purged = store.purge_terminal(NOW + timedelta(minutes=30))

    assert purged == 1
    assert store.get("old") is None
    assert store.get("recent") is not None
    assert store.get("active") is not None


def test_active_overlapping_uses_half_open_ranges() -> None:
    store = HoldStore()
    store.insert(_hold("A", check_in=date(2025, 3, 10), check_out=date(2025, 3, 12)))
    store.insert(_hold("B", check_in=date(2025, 3, 12), check_out=date(2025, 3, 14)))

    overlapping = store.active_overlapping(date(2025, 3, 12), date(2025, 3, 13))

    assert [hold.hold_id for hold in overlapping] == ["B"]
    assert store.active_overlapping(date(2025, 3, 12), date(2025, 3, 13), "B") == []


def test_stats_count_active_beds_and_statuses() -> None:
    store = HoldStore()
    store.insert(_hold("A", beds=3))
    store.insert(_hold("B", beds=4))
    store.insert(_hold("C", beds=5))
    store.transition("C", HoldStatus.CONFIRMED, NOW)

    stats = store.stats()

    assert stats.active_holds == 2
    assert stats.held_beds == 7
    assert stats.total_holds == 3
    assert stats.by_status["ACTIVE"] == 2
    assert stats.by_status["CONFIRMED"] == 1
    assert stats.by_status["EXPIRED"] == 0


def test_active_holds_are_newest_first() -> None:
    store = HoldStore()
    store.insert(_hold("older", created_at=NOW))
    store.insert(_hold("newer", created_at=NOW + timedelta(minutes=1)))

    assert [hold.hold_id for hold in store.active_holds()] == ["newer", "older"]
