"""Typed errors raised by the scheduling engine.

Every error carries a stable ``code`` that the request layer returns verbatim
and the HTTP status it maps to. Nothing here is retried by the engine.
"""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    """Base class for all engine errors."""

    code = "scheduling_error"
    status_code = 400
    default_message = "Scheduling request rejected"

    def __init__(
        self, message: str | None = None, *, details: dict[str, Any] | None = None
    ) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def as_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, "details": self.details}


class InvalidFormat(SchedulingError):
    code = "invalid_format"
    default_message = "Malformed time or date value"


class InvalidRange(SchedulingError):
    code = "invalid_range"
    default_message = "Start must be before end"


class MissingRequiredField(SchedulingError):
    code = "missing_required_field"
    default_message = "A required field is missing"


class SlotConflict(SchedulingError):
    code = "slot_conflict"
    status_code = 409
    default_message = "The provider already has a session in that time range"


class AlreadyReserved(SchedulingError):
    code = "already_reserved"
    status_code = 409
    default_message = "Resource already reserved for that time range"


class ResourceInactive(SchedulingError):
    code = "resource_inactive"
    default_message = "Resource is not accepting reservations"


class NotFound(SchedulingError):
    code = "not_found"
    status_code = 404
    default_message = "Record not found"


class Forbidden(SchedulingError):
    code = "forbidden"
    status_code = 403
    default_message = "Actor is not allowed to perform this action"


class InvalidTransition(SchedulingError):
    code = "invalid_transition"
    status_code = 409
    default_message = "State change not allowed from the current status"


class ReservationMismatch(SchedulingError):
    code = "reservation_id_incorrect"
    default_message = "Reservation does not belong to the given resource"


__all__ = [
    "AlreadyReserved",
    "Forbidden",
    "InvalidFormat",
    "InvalidRange",
    "InvalidTransition",
    "MissingRequiredField",
    "NotFound",
    "ReservationMismatch",
    "ResourceInactive",
    "SchedulingError",
    "SlotConflict",
]
