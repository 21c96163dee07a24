"""
Centralized error handling for booking/API failures.

Services raise BookingError subclasses; one rule table maps them to HTTP status codes so
routes stay thin and new error types are easy to add. Clients get a structured
{"detail": reason, "code": code} body, never a stack trace.
"""
from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

# ---------------------------------------------------------------------------
# Constants: status codes for known error categories
# ---------------------------------------------------------------------------

STATUS_NOT_FOUND = 404
STATUS_FORBIDDEN = 403
STATUS_CONFLICT = 409
STATUS_UNPROCESSABLE = 422
STATUS_SERVICE_UNAVAILABLE = 503  # admission retries exhausted


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------


class BookingError(Exception):
    """Base for every error the booking services raise on purpose."""

    code = "booking_error"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ConfigurationMissing(BookingError):
    """Branch has no booking settings; slots cannot be generated or booked."""

    code = "configuration_missing"


class InvalidSettings(BookingError):
    code = "invalid_settings"


class InvalidSlot(BookingError):
    """Slot does not exist, is closed, belongs to another branch or is in the past."""

    code = "invalid_slot"


class InvalidBooking(BookingError):
    """Booking request is malformed (party size, guest details)."""

    code = "invalid_booking"


class CapacityExceeded(BookingError):
    code = "capacity_exceeded"


class InvalidTransition(BookingError):
    code = "invalid_transition"


class OverrideConflict(BookingError):
    code = "override_conflict"


class BranchNotFound(BookingError):
    code = "branch_not_found"


class BookingNotFound(BookingError):
    code = "booking_not_found"


class OverrideNotFound(BookingError):
    code = "override_not_found"


class NotPermitted(BookingError):
    code = "not_permitted"


class IdempotencyKeyReused(BookingError):
    """Key already used by this requester for a different booking."""

    code = "idempotency_key_reused"


class AdmissionConflict(BookingError):
    """Admission kept hitting storage conflicts and gave up after the retry budget."""

    code = "admission_conflict"


# ---------------------------------------------------------------------------
# Error rules: (exception type, status_code). First match wins.
# Add new rules here instead of scattering checks in routes.
# ---------------------------------------------------------------------------

BOOKING_ERROR_RULES: list[tuple[type[BookingError], int]] = [
    (BranchNotFound, STATUS_NOT_FOUND),
    (BookingNotFound, STATUS_NOT_FOUND),
    (OverrideNotFound, STATUS_NOT_FOUND),
    (NotPermitted, STATUS_FORBIDDEN),
    (ConfigurationMissing, STATUS_CONFLICT),
    (CapacityExceeded, STATUS_CONFLICT),
    (InvalidTransition, STATUS_CONFLICT),
    (IdempotencyKeyReused, STATUS_CONFLICT),
    (InvalidSlot, STATUS_UNPROCESSABLE),
    (InvalidBooking, STATUS_UNPROCESSABLE),
    (OverrideConflict, STATUS_UNPROCESSABLE),
    (InvalidSettings, STATUS_UNPROCESSABLE),
    (AdmissionConflict, STATUS_SERVICE_UNAVAILABLE),
]


def booking_error_status(exc: BookingError) -> int:
    for exc_type, status_code in BOOKING_ERROR_RULES:
        if isinstance(exc, exc_type):
            return status_code
    return STATUS_UNPROCESSABLE


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """FastAPI exception handler registered in main for every BookingError."""
    return JSONResponse(
        status_code=booking_error_status(exc),
        content={"detail": exc.reason, "code": exc.code},
    )
