"""In-memory registry of holds keyed by identifier."""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
from datetime import date, datetime
from threading import RLock
from typing import Optional

from hostel_inventory.domain.constraints import can_transition
from hostel_inventory.domain.errors import HoldAlreadyExists, HoldNotFound
from hostel_inventory.domain.models import Hold, HoldStats, HoldStatus


class HoldStore:
    """Owns the hold map and the lock guarding it.

    Every method holds the lock only for the duration of a map operation and
    never performs I/O, so callers can rely on it to stay short.
    """

    def __init__(self) -> None:
        self._holds: dict[str, Hold] = {}
        self._lock = RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._holds)

    def insert(self, hold: Hold) -> Hold:
        with self._lock:
            if hold.hold_id in self._holds:
                raise HoldAlreadyExists(f"Hold {hold.hold_id} already exists")
            if hold.status is not HoldStatus.ACTIVE:
                raise ValueError("holds must be inserted as ACTIVE")
            self._holds[hold.hold_id] = hold
            return hold

    def get(self, hold_id: str) -> Optional[Hold]:
        with self._lock:
            return self._holds.get(hold_id)

    def transition(
        self,
        hold_id: str,
        target: HoldStatus,
        now: datetime,
        *,
        payment_status: Optional[str] = None,
    ) -> Hold:
        """Move a hold to ``target`` if the transition table allows it."""
        with self._lock:
            current = self._holds.get(hold_id)
            if current is None:
                raise HoldNotFound(f"Hold {hold_id} not found")
            if not can_transition(current.status, target):
                raise HoldNotFound(
                    f"Hold {hold_id} is {current.status.value} and cannot become {target.value}"
                )
            updated = replace(
                current,
                status=target,
                closed_at=now,
                payment_status=payment_status or current.payment_status,
            )
            self._holds[hold_id] = updated
            return updated

    def attach_bookings(self, hold_id: str, booking_ids: tuple[str, ...]) -> Hold:
        with self._lock:
            current = self._holds.get(hold_id)
            if current is None:
                raise HoldNotFound(f"Hold {hold_id} not found")
            updated = replace(current, booking_ids=booking_ids)
            self._holds[hold_id] = updated
            return updated

    def expire_due(self, now: datetime) -> list[Hold]:
        """Transition every ACTIVE hold whose expiry has passed; return them."""
        expired: list[Hold] = []
        with self._lock:
            for hold_id, hold in list(self._holds.items()):
                if hold.status is not HoldStatus.ACTIVE or hold.expires_at > now:
                    continue
                updated = replace(hold, status=HoldStatus.EXPIRED, closed_at=now)
                self._holds[hold_id] = updated
                expired.append(updated)
        return expired

    def purge_terminal(self, closed_before: datetime) -> int:
        with self._lock:
            stale = [
                hold_id
                for hold_id, hold in self._holds.items()
                if hold.status.is_terminal
                and hold.closed_at is not None
                and hold.closed_at <= closed_before
            ]
            for hold_id in stale:
                del self._holds[hold_id]
            return len(stale)

    def active_holds(self) -> list[Hold]:
        with self._lock:
            active = [hold for hold in self._holds.values() if hold.status is HoldStatus.ACTIVE]
        return sorted(active, key=lambda hold: (hold.created_at, hold.hold_id), reverse=True)

    def active_overlapping(
        self,
        start: date,
        end: date,
        exclude_hold_id: Optional[str] = None,
    ) -> list[Hold]:
        """ACTIVE holds whose stay intersects ``[start, end)``."""
        with self._lock:
            return [
                hold
                for hold in self._holds.values()
                if hold.status is HoldStatus.ACTIVE
                and hold.hold_id != exclude_hold_id
                and hold.overlaps(start, end)
            ]

    def stats(self) -> HoldStats:
        with self._lock:
            holds = list(self._holds.values())
        by_status = Counter(hold.status.value for hold in holds)
        active = [hold for hold in holds if hold.status is HoldStatus.ACTIVE]
        return HoldStats(
            active_holds=len(active),
            held_beds=sum(hold.beds_count for hold in active),
            total_holds=len(holds),
            by_status={status.value: by_status.get(status.value, 0) for status in HoldStatus},
        )
