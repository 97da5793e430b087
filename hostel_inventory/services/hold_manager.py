"""Hold lifecycle: create, confirm, release and expire bed claims."""

from __future__ import annotations

import secrets
from datetime import date, datetime, timedelta
from threading import Lock
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from hostel_inventory.domain.constraints import HoldConfig, validate_hold_config
from hostel_inventory.domain.errors import (
    HoldAlreadyExists,
    HoldNotFound,
    InvalidHoldData,
)
from hostel_inventory.domain.models import (
    BookingStatus,
    ConfirmationResult,
    Hold,
    HoldStats,
    HoldStatus,
    NewBooking,
    Occupants,
)
from hostel_inventory.repository.booking_repository import (
    BookingRepository,
    BookingRepositoryError,
)
from hostel_inventory.services.availability_service import AvailabilityService
from hostel_inventory.services.hold_store import HoldStore
from hostel_inventory.utils.clock import Clock, utc_now
from hostel_inventory.utils.config import Settings, get_settings
from hostel_inventory.utils.logger import get_logger


logger = get_logger(__name__)

ExpiryListener = Callable[[Hold], None]

_MAX_HOLD_ID_LENGTH = 128


def _reject_bool(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("must be an integer")
    return value


class OccupantsRequest(BaseModel):
    men: int = Field(default=0, ge=0)
    women: int = Field(default=0, ge=0)

    @field_validator("men", "women", mode="before")
    @classmethod
    def validate_counts(cls, value: Any) -> Any:
        return _reject_bool(value)

    def to_occupants(self) -> Occupants:
        return Occupants(men=self.men, women=self.women)


class HoldRequest(BaseModel):
    """Hold request as received from a caller, validated on construction."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    hold_id: str | None = Field(default=None, min_length=1, max_length=_MAX_HOLD_ID_LENGTH)
    check_in: date
    check_out: date
    beds_count: int | None = Field(default=None, ge=1)
    occupants: OccupantsRequest | None = None
    rooms: dict[str, int] | None = None
    total: float = Field(default=0.0, ge=0.0, allow_inf_nan=False)

    @field_validator("hold_id", mode="before")
    @classmethod
    def normalize_hold_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("check_in", "check_out", mode="before")
    @classmethod
    def parse_iso_date(cls, value: Any) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str) and value.strip():
            return date.fromisoformat(value.strip())
        raise ValueError("must be a YYYY-MM-DD date")

    @field_validator("beds_count", mode="before")
    @classmethod
    def validate_beds_count(cls, value: Any) -> Any:
        return _reject_bool(value)

    @field_validator("rooms", mode="before")
    @classmethod
    def normalize_rooms(cls, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, Mapping):
            raise ValueError("rooms must map room ids to bed counts")
        return {str(room_id): _reject_bool(beds) for room_id, beds in value.items()}

    @field_validator("total", mode="before")
    @classmethod
    def validate_total(cls, value: Any) -> Any:
        if value is None:
            return 0.0
        if isinstance(value, bool):
            raise ValueError("total must be a number")
        if isinstance(value, int):
            try:
                return float(value)
            except OverflowError as exc:
                raise ValueError("total must be a finite number") from exc
        return value

    @model_validator(mode="after")
    def validate_stay_and_counts(self) -> "HoldRequest":
        if self.check_in >= self.check_out:
            raise ValueError("checkIn must be earlier than checkOut")
        if self.rooms is not None:
            if any(beds < 1 for beds in self.rooms.values()):
                raise ValueError("rooms bed counts must be >= 1")
            self.rooms = self.rooms or None

        room_total = sum(self.rooms.values()) if self.rooms else 0
        occupant_total = self.occupants.men + self.occupants.women if self.occupants else 0
        if self.beds_count is None:
            self.beds_count = room_total or occupant_total or None
        if self.beds_count is None:
            raise ValueError("bedsCount is required")
        if room_total and room_total != self.beds_count:
            raise ValueError("rooms bed counts must add up to bedsCount")
        if occupant_total and occupant_total != self.beds_count:
            raise ValueError("occupants must add up to bedsCount")
        return self

    @property
    def occupant_counts(self) -> Occupants:
        return self.occupants.to_occupants() if self.occupants else Occupants()


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'request'}: {error['msg']}"
        for error in exc.errors()
    )


class HoldManager:
    """State machine over the hold store.

    Creation and confirmation run under an admission lock that spans the
    availability check and the write, so concurrent requests cannot both
    claim the same beds. The store's own lock is never held across I/O.
    """

    def __init__(
        self,
        store: HoldStore,
        availability: AvailabilityService,
        repository: BookingRepository,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._settings = settings or get_settings()
        validate_hold_config(
            HoldConfig(
                ttl_minutes=self._settings.hold_ttl_minutes,
                retention_seconds=self._settings.hold_retention_seconds,
                sweep_interval_seconds=self._settings.hold_sweep_interval_seconds,
                cache_seconds=self._settings.availability_cache_seconds,
                conflict_strategy=self._settings.conflict_strategy,
            )
        )
        self._store = store
        self._availability = availability
        self._repository = repository
        self._clock = clock
        self._ttl = timedelta(minutes=self._settings.hold_ttl_minutes)
        self._retention = timedelta(seconds=self._settings.hold_retention_seconds)
        self._admission_lock = Lock()
        self._expiry_listeners: list[ExpiryListener] = []

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def add_expiry_listener(self, listener: ExpiryListener) -> None:
        self._expiry_listeners.append(listener)

    def _generate_hold_id(self) -> str:
        millis = int(self._clock().timestamp() * 1000)
        return f"HOLD-{millis}-{secrets.token_hex(3)}"

    def _validate(self, request: Union[HoldRequest, Mapping[str, Any]]) -> HoldRequest:
        if not isinstance(request, HoldRequest):
            try:
                request = HoldRequest.model_validate(request)
            except ValidationError as exc:
                raise InvalidHoldData(_describe(exc)) from exc
        for room_id in request.rooms or {}:
            if room_id not in self._availability.inventory:
                raise InvalidHoldData(f"Unknown room {room_id}")
        return request

    def create_hold(self, request: Union[HoldRequest, Mapping[str, Any]]) -> Hold:
        """Validate ``request`` and claim beds for it until the TTL runs out.

        Raw mappings (camelCase or snake_case keys) are validated here and
        any failure surfaces as ``InvalidHoldData``.
        """
        parsed = self._validate(request)
        hold_id = parsed.hold_id or self._generate_hold_id()
        if self._store.get(hold_id) is not None:
            raise HoldAlreadyExists(f"Hold {hold_id} already exists")

        with self._admission_lock:
            if self._settings.hold_strict_admission:
                snapshot = self._availability.compute_occupancy(
                    None, parsed.check_in, parsed.check_out, fresh=True
                )
            else:
                snapshot = self._availability.capacity_snapshot(
                    parsed.check_in, parsed.check_out
                )
            room_beds = self._availability.allocate_beds(
                parsed.beds_count, parsed.occupant_counts, snapshot, parsed.rooms
            )

            created_at = self._clock()
            hold = self._store.insert(
                Hold(
                    hold_id=hold_id,
                    check_in=parsed.check_in,
                    check_out=parsed.check_out,
                    beds_count=parsed.beds_count,
                    room_beds=room_beds,
                    occupants=parsed.occupant_counts,
                    total=parsed.total,
                    created_at=created_at,
                    expires_at=created_at + self._ttl,
                )
            )

        self._availability.invalidate_cache()
        logger.info(
            "Hold %s created: %s beds %s..%s rooms=%s expires=%s",
            hold.hold_id,
            hold.beds_count,
            hold.check_in,
            hold.check_out,
            dict(hold.room_beds),
            hold.expires_at.isoformat(),
        )
        return hold

    def confirm_hold(self, hold_id: str, status: str = "paid") -> ConfirmationResult:
        """Finalize a hold after payment and record it as bookings.

        The booking write happens after the state change; a failed write
        leaves the hold CONFIRMED with ``booking_recorded=False`` so an
        upstream retry can reconcile it.
        """
        payment_status = (status or "paid").strip() or "paid"
        with self._admission_lock:
            hold = self._store.get(hold_id)
            if hold is None or hold.status is not HoldStatus.ACTIVE:
                raise HoldNotFound(f"Hold {hold_id} not found or no longer active")

            self._availability.verify_bookable(hold.room_beds, hold.check_in, hold.check_out)
            confirmed = self._store.transition(
                hold_id,
                HoldStatus.CONFIRMED,
                self._clock(),
                payment_status=payment_status,
            )

            booking_recorded = True
            try:
                bookings = self._repository.create_bookings(
                    NewBooking(
                        room_id=room_id,
                        check_in=confirmed.check_in,
                        check_out=confirmed.check_out,
                        beds_count=beds,
                        status=BookingStatus.CONFIRMED,
                        platform="direct",
                        source="hold",
                        payment_status=payment_status,
                        external_id=confirmed.hold_id,
                        notes=f"Confirmed from hold {confirmed.hold_id}",
                    )
                    for room_id, beds in confirmed.room_beds.items()
                )
                confirmed = self._store.attach_bookings(
                    hold_id, tuple(booking.booking_id for booking in bookings)
                )
            except BookingRepositoryError:
                booking_recorded = False
                logger.exception(
                    "Hold %s confirmed but booking write failed; needs reconciliation",
                    hold_id,
                )

        self._availability.invalidate_cache()
        logger.info("Hold %s confirmed with status %s", hold_id, payment_status)
        return ConfirmationResult(hold=confirmed, booking_recorded=booking_recorded)

    def release_hold(self, hold_id: str) -> Hold:
        """Release an ACTIVE hold; releasing a released or expired one is a no-op."""
        hold = self._store.get(hold_id)
        if hold is None:
            raise HoldNotFound(f"Hold {hold_id} not found")
        if hold.status in (HoldStatus.RELEASED, HoldStatus.EXPIRED):
            return hold
        try:
            released = self._store.transition(hold_id, HoldStatus.RELEASED, self._clock())
        except HoldNotFound:
            # The sweep may have expired it between the lookup and the transition.
            current = self._store.get(hold_id)
            if current is not None and current.status in (
                HoldStatus.RELEASED,
                HoldStatus.EXPIRED,
            ):
                return current
            raise
        self._availability.invalidate_cache()
        logger.info("Hold %s released", hold_id)
        return released

    def sweep_expired(self) -> int:
        now = self._clock()
        expired = self._store.expire_due(now)
        purged = self._store.purge_terminal(now - self._retention)
        if expired:
            self._availability.invalidate_cache()
            logger.info("Sweep expired %s holds", len(expired))
        if purged:
            logger.info("Sweep purged %s terminal holds", purged)

        for hold in expired:
            for listener in self._expiry_listeners:
                try:
                    listener(hold)
                except Exception:
                    logger.exception("Expiry listener failed for hold %s", hold.hold_id)
        return len(expired)

    def get_hold(self, hold_id: str) -> Hold:
        hold = self._store.get(hold_id)
        if hold is None:
            raise HoldNotFound(f"Hold {hold_id} not found")
        return hold

    def list_active(self) -> list[Hold]:
        return self._store.active_holds()

    def get_stats(self) -> HoldStats:
        return self._store.stats()
