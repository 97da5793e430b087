"""HTTP controller layer for administrative hold, block and import actions."""

from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field

from hostel_inventory.controllers.dependencies import (
    CamelModel,
    get_channel_import_service,
    get_date_blocker,
    get_hold_manager,
    internal_error,
    parse_query_date,
    to_http_exception,
)
from hostel_inventory.domain.errors import HoldEngineError
from hostel_inventory.domain.models import BlockedPeriod, ExternalBooking
from hostel_inventory.services.channel_import_service import ChannelImportService
from hostel_inventory.services.date_blocker import DateBlocker
from hostel_inventory.services.hold_manager import HoldManager
from hostel_inventory.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class CleanupResponse(CamelModel):
    ok: bool = True
    holds_cleaned_up: int = Field(ge=0)


class BlockDatesRequest(CamelModel):
    room_id: str = Field(min_length=1)
    start: date
    end: date
    reason: str | None = None
    block_type: str = "other"
    notes: str | None = None


class BlockDatesResponse(CamelModel):
    ok: bool = True
    booking_id: str


class BlockedPeriodView(CamelModel):
    booking_id: str
    room_id: str
    start: date
    end: date
    block_type: str
    reason: str | None = None
    notes: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_period(cls, period: BlockedPeriod) -> "BlockedPeriodView":
        return cls(
            booking_id=period.booking_id,
            room_id=period.room_id,
            start=period.start,
            end=period.end,
            block_type=period.block_type,
            reason=period.reason,
            notes=period.notes,
            created_at=period.created_at,
        )


class BlockedDatesResponse(CamelModel):
    ok: bool = True
    room_id: str
    blocked: list[BlockedPeriodView]


class UnblockResponse(CamelModel):
    ok: bool = True
    removed: int = Field(ge=0)


class ExternalBookingPayload(CamelModel):
    external_id: str = Field(min_length=1)
    check_in: date
    check_out: date
    guest_name: str = "Guest"
    status: str = "confirmed"
    beds_count: int = Field(default=1, ge=0)
    notes: str | None = None


class ChannelImportRequest(CamelModel):
    room_id: str = Field(min_length=1)
    platform: str = Field(min_length=1)
    bookings: list[ExternalBookingPayload] = Field(default_factory=list)


class ChannelImportResponse(CamelModel):
    ok: bool = True
    room_id: str
    platform: str
    imported: int = Field(ge=0)
    updated: int = Field(ge=0)
    skipped: int = Field(ge=0)
    blocked_dates: int = Field(ge=0)
    conflicts_resolved: int = Field(ge=0)


@router.delete("/holds/cleanup", response_model=CleanupResponse)
def cleanup_holds(manager: HoldManager = Depends(get_hold_manager)) -> CleanupResponse:
    """Run the expiry sweep now instead of waiting for the background task."""
    return CleanupResponse(holds_cleaned_up=manager.sweep_expired())


@router.post(
    "/block-dates",
    response_model=BlockDatesResponse,
    status_code=status.HTTP_201_CREATED,
)
def block_dates(
    payload: BlockDatesRequest,
    blocker: DateBlocker = Depends(get_date_blocker),
) -> BlockDatesResponse:
    try:
        booking_id = blocker.block_dates(
            payload.room_id,
            payload.start,
            payload.end,
            reason=payload.reason,
            block_type=payload.block_type,
            notes=payload.notes,
        )
        return BlockDatesResponse(booking_id=booking_id)
    except HoldEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected block-dates failure")
        raise internal_error("Failed to block dates") from exc


@router.get("/block-dates", response_model=BlockedDatesResponse)
def list_blocked_dates(
    room_id: str = Query(alias="roomId"),
    from_: str | None = Query(default=None, alias="from"),
    to: str | None = Query(default=None),
    blocker: DateBlocker = Depends(get_date_blocker),
) -> BlockedDatesResponse:
    try:
        start = parse_query_date(from_, "from") if from_ is not None else None
        end = parse_query_date(to, "to") if to is not None else None
        periods = blocker.get_blocked_dates(room_id, start, end)
        return BlockedDatesResponse(
            room_id=room_id,
            blocked=[BlockedPeriodView.from_period(period) for period in periods],
        )
    except HoldEngineError as exc:
        raise to_http_exception(exc) from exc


@router.delete("/block-dates/{booking_id}", response_model=UnblockResponse)
def unblock_dates(
    booking_id: str,
    blocker: DateBlocker = Depends(get_date_blocker),
) -> UnblockResponse:
    try:
        blocker.unblock_dates(booking_id)
        return UnblockResponse(removed=1)
    except HoldEngineError as exc:
        raise to_http_exception(exc) from exc


@router.delete("/block-dates", response_model=UnblockResponse)
def unblock_date_range(
    room_id: str = Query(alias="roomId"),
    from_: str | None = Query(default=None, alias="from"),
    to: str | None = Query(default=None),
    blocker: DateBlocker = Depends(get_date_blocker),
) -> UnblockResponse:
    try:
        removed = blocker.unblock_date_range(
            room_id,
            parse_query_date(from_, "from"),
            parse_query_date(to, "to"),
        )
        return UnblockResponse(removed=removed)
    except HoldEngineError as exc:
        raise to_http_exception(exc) from exc


@router.post("/channel-import", response_model=ChannelImportResponse)
def channel_import(
    payload: ChannelImportRequest,
    service: ChannelImportService = Depends(get_channel_import_service),
) -> ChannelImportResponse:
    """Apply bookings parsed from an OTA calendar feed to one room."""
    try:
        summary = service.import_bookings(
            payload.room_id,
            payload.platform,
            [
                ExternalBooking(
                    external_id=item.external_id,
                    check_in=item.check_in,
                    check_out=item.check_out,
                    guest_name=item.guest_name,
                    status=item.status,
                    beds_count=item.beds_count,
                    notes=item.notes,
                )
                for item in payload.bookings
            ],
        )
    except HoldEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected channel import failure")
        raise internal_error("Failed to import channel bookings") from exc

    return ChannelImportResponse(
        room_id=payload.room_id,
        platform=payload.platform.strip().lower(),
        imported=summary.imported,
        updated=summary.updated,
        skipped=summary.skipped,
        blocked_dates=summary.blocked_dates,
        conflicts_resolved=summary.conflicts_resolved,
    )
