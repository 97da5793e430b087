"""Error taxonomy shared by services and mapped to HTTP by controllers."""

from __future__ import annotations


class HoldEngineError(Exception):
    """Base exception for inventory, hold and channel workflow failures."""

    code = "hold_engine_error"
    status_code = 500


class InvalidRequest(HoldEngineError):
    """Raised when input is malformed or missing required fields."""

    code = "invalid_request"
    status_code = 400


class InvalidHoldData(InvalidRequest):
    code = "invalid_hold_data"


class NotFound(HoldEngineError):
    code = "not_found"
    status_code = 404


class HoldNotFound(NotFound):
    """Raised when a hold is absent or no longer accepts the transition."""

    code = "hold_not_found"


class BookingNotFound(NotFound):
    code = "booking_not_found"


class RoomNotFound(NotFound):
    code = "room_not_found"


class Conflict(HoldEngineError):
    code = "conflict"
    status_code = 409


class InsufficientAvailability(Conflict):
    code = "insufficient_availability"


class HoldAlreadyExists(Conflict):
    code = "hold_exists"


class BlockConflict(Conflict):
    code = "block_conflict"


class UpstreamUnavailable(HoldEngineError):
    """Raised when the booking repository cannot be reached."""

    code = "upstream_unavailable"
    status_code = 500
