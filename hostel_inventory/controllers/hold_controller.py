"""HTTP controller layer for the hold lifecycle."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, status
from pydantic import Field

from hostel_inventory.controllers.dependencies import (
    CamelModel,
    get_hold_manager,
    internal_error,
    to_http_exception,
)
from hostel_inventory.domain.errors import HoldEngineError, InvalidRequest
from hostel_inventory.domain.models import Hold, HoldStats
from hostel_inventory.services.hold_manager import HoldManager
from hostel_inventory.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/holds", tags=["holds"])

# /start bodies are validated by HoldRequest in the manager; failures report
# invalid_hold_data.
_START_EXAMPLES = {
    "group": {
        "summary": "Four beds for two nights",
        "value": {"checkIn": "2025-03-10", "checkOut": "2025-03-12", "bedsCount": 4, "total": 80},
    },
}


class HoldStartResponse(CamelModel):
    ok: bool = True
    hold_id: str
    expires_at: datetime
    rooms: dict[str, int]


class OccupantsView(CamelModel):
    men: int = Field(ge=0)
    women: int = Field(ge=0)


class HoldView(CamelModel):
    hold_id: str
    check_in: date
    check_out: date
    beds_count: int = Field(ge=1)
    rooms: dict[str, int]
    occupants: OccupantsView
    total: float = Field(ge=0.0)
    status: str
    payment_status: str | None = None
    created_at: datetime
    expires_at: datetime
    booking_ids: list[str]

    @classmethod
    def from_hold(cls, hold: Hold) -> "HoldView":
        return cls(
            hold_id=hold.hold_id,
            check_in=hold.check_in,
            check_out=hold.check_out,
            beds_count=hold.beds_count,
            rooms=dict(hold.room_beds),
            occupants=OccupantsView(men=hold.occupants.men, women=hold.occupants.women),
            total=hold.total,
            status=hold.status.value,
            payment_status=hold.payment_status,
            created_at=hold.created_at,
            expires_at=hold.expires_at,
            booking_ids=list(hold.booking_ids),
        )


class HoldStatsView(CamelModel):
    active_holds: int = Field(ge=0)
    held_beds: int = Field(ge=0)
    total_holds: int = Field(ge=0)
    by_status: dict[str, int]

    @classmethod
    def from_stats(cls, stats: HoldStats) -> "HoldStatsView":
        return cls(
            active_holds=stats.active_holds,
            held_beds=stats.held_beds,
            total_holds=stats.total_holds,
            by_status=dict(stats.by_status),
        )


class HoldListResponse(CamelModel):
    ok: bool = True
    holds: list[HoldView]
    stats: HoldStatsView


class HoldDetailResponse(CamelModel):
    ok: bool = True
    hold: HoldView


class HoldConfirmRequest(CamelModel):
    hold_id: str | None = None
    status: str | None = "paid"


class HoldConfirmResponse(CamelModel):
    ok: bool = True
    hold_id: str
    status: str
    booking_recorded: bool
    booking_ids: list[str]


class HoldReleaseRequest(CamelModel):
    hold_id: str | None = None


class HoldReleaseResponse(CamelModel):
    ok: bool = True
    released: bool = True
    hold_id: str
    status: str


def _require_hold_id(hold_id: str | None) -> str:
    if hold_id is None or not str(hold_id).strip():
        raise InvalidRequest("holdId is required")
    return str(hold_id).strip()


@router.post("/start", response_model=HoldStartResponse, status_code=status.HTTP_200_OK)
def start_hold(
    payload: dict[str, Any] = Body(..., openapi_examples=_START_EXAMPLES),
    manager: HoldManager = Depends(get_hold_manager),
) -> HoldStartResponse:
    """Place a short-lived claim on beds for the requested stay."""
    try:
        hold = manager.create_hold(payload)
        return HoldStartResponse(
            hold_id=hold.hold_id,
            expires_at=hold.expires_at,
            rooms=dict(hold.room_beds),
        )
    except HoldEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected hold creation failure")
        raise internal_error("Failed to create hold") from exc


@router.get("/list", response_model=HoldListResponse)
def list_holds(manager: HoldManager = Depends(get_hold_manager)) -> HoldListResponse:
    return HoldListResponse(
        holds=[HoldView.from_hold(hold) for hold in manager.list_active()],
        stats=HoldStatsView.from_stats(manager.get_stats()),
    )


@router.get("/{hold_id}", response_model=HoldDetailResponse)
def get_hold(
    hold_id: str,
    manager: HoldManager = Depends(get_hold_manager),
) -> HoldDetailResponse:
    try:
        return HoldDetailResponse(hold=HoldView.from_hold(manager.get_hold(hold_id)))
    except HoldEngineError as exc:
        raise to_http_exception(exc) from exc


@router.post("/confirm", response_model=HoldConfirmResponse)
def confirm_hold(
    payload: HoldConfirmRequest,
    manager: HoldManager = Depends(get_hold_manager),
) -> HoldConfirmResponse:
    """Finalize a hold once payment is captured."""
    try:
        result = manager.confirm_hold(
            _require_hold_id(payload.hold_id),
            payload.status or "paid",
        )
        return HoldConfirmResponse(
            hold_id=result.hold.hold_id,
            status=result.hold.payment_status or "paid",
            booking_recorded=result.booking_recorded,
            booking_ids=list(result.hold.booking_ids),
        )
    except HoldEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected hold confirmation failure")
        raise internal_error("Failed to confirm hold") from exc


@router.post("/release", response_model=HoldReleaseResponse)
def release_hold(
    payload: HoldReleaseRequest,
    manager: HoldManager = Depends(get_hold_manager),
) -> HoldReleaseResponse:
    try:
        hold = manager.release_hold(_require_hold_id(payload.hold_id))
        return HoldReleaseResponse(hold_id=hold.hold_id, status=hold.status.value)
    except HoldEngineError as exc:
        raise to_http_exception(exc) from exc
