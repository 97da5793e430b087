"""Shared FastAPI dependency providers and error mapping for controllers."""

from __future__ import annotations

from datetime import date

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from hostel_inventory.domain.errors import HoldEngineError, InvalidRequest
from hostel_inventory.services.availability_service import AvailabilityService
from hostel_inventory.services.channel_import_service import ChannelImportService
from hostel_inventory.services.date_blocker import DateBlocker
from hostel_inventory.services.hold_manager import HoldManager


class CamelModel(BaseModel):
    """DTO base: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def error_body(code: str, message: str) -> dict[str, object]:
    return {"ok": False, "error": code, "message": message}


def to_http_exception(exc: HoldEngineError) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail=error_body(exc.code, str(exc)),
    )


def internal_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=error_body("internal_error", message),
    )


def parse_query_date(value: str | None, name: str) -> date:
    if value is None or not value.strip():
        raise InvalidRequest(f"'{name}' is required (YYYY-MM-DD)")
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise InvalidRequest(f"'{name}' must follow YYYY-MM-DD format") from exc


async def _validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    message = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
        for error in exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": error_body(InvalidRequest.code, message)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, _validation_error_handler)


def _service(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_body("service_unavailable", f"{label} is not initialized"),
        )
    return service


def get_hold_manager(request: Request) -> HoldManager:
    return _service(request, "hold_manager", "Hold manager")


def get_availability_service(request: Request) -> AvailabilityService:
    return _service(request, "availability_service", "Availability service")


def get_date_blocker(request: Request) -> DateBlocker:
    return _service(request, "date_blocker", "Date blocker")


def get_channel_import_service(request: Request) -> ChannelImportService:
    return _service(request, "channel_import_service", "Channel import service")
