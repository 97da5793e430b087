"""HTTP controller layer for availability queries and health."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from hostel_inventory.controllers.dependencies import (
    CamelModel,
    get_availability_service,
    get_hold_manager,
    internal_error,
    parse_query_date,
    to_http_exception,
)
from hostel_inventory.domain.errors import HoldEngineError
from hostel_inventory.domain.models import RoomOccupancy
from hostel_inventory.services.availability_service import AvailabilityService
from hostel_inventory.services.hold_manager import HoldManager
from hostel_inventory.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["availability"])


class RoomAvailabilityView(CamelModel):
    room_id: str
    capacity: int = Field(gt=0)
    booked: int = Field(ge=0)
    held: int = Field(ge=0)
    occupied: int = Field(ge=0)
    available: int = Field(ge=0)

    @classmethod
    def from_occupancy(cls, occupancy: RoomOccupancy) -> "RoomAvailabilityView":
        return cls(
            room_id=occupancy.room_id,
            capacity=occupancy.capacity,
            booked=occupancy.booked,
            held=occupancy.held,
            occupied=occupancy.occupied,
            available=occupancy.available,
        )


class AvailabilityResponse(CamelModel):
    ok: bool = True
    from_: date = Field(alias="from")
    to: date
    occupied: dict[str, int]
    available: dict[str, int]
    rooms: list[RoomAvailabilityView]


class HealthResponse(CamelModel):
    ok: bool = True
    active_holds: int = Field(ge=0)


@router.get("/availability", response_model=AvailabilityResponse)
def get_availability(
    from_: str | None = Query(default=None, alias="from"),
    to: str | None = Query(default=None),
    room_id: str | None = Query(default=None, alias="roomId"),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """Beds taken and free per room over ``[from, to)``."""
    try:
        start = parse_query_date(from_, "from")
        end = parse_query_date(to, "to")
        snapshot = service.compute_occupancy(room_id or None, start, end)
    except HoldEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected availability failure")
        raise internal_error("Failed to compute availability") from exc

    return AvailabilityResponse(
        from_=snapshot.start,
        to=snapshot.end,
        occupied={room.room_id: room.occupied for room in snapshot.rooms},
        available={room.room_id: room.available for room in snapshot.rooms},
        rooms=[RoomAvailabilityView.from_occupancy(room) for room in snapshot.rooms],
    )


@router.get("/health", response_model=HealthResponse)
def health(manager: HoldManager = Depends(get_hold_manager)) -> HealthResponse:
    return HealthResponse(active_holds=manager.get_stats().active_holds)
