"""SQLAlchemy models for the campus booking engine."""

from campus_booking.models.audit_log import AuditLog
from campus_booking.models.availability_template import (
    AvailabilityTemplate,
    Modality,
    Weekday,
)
from campus_booking.models.booking import Booking, BookingStatus
from campus_booking.models.owner_lock import OwnerLock
from campus_booking.models.resource import (
    ReservationStatus,
    Resource,
    ResourceKind,
    ResourceReservation,
)

__all__ = [
    "AuditLog",
    "AvailabilityTemplate",
    "Booking",
    "BookingStatus",
    "Modality",
    "OwnerLock",
    "ReservationStatus",
    "Resource",
    "ResourceKind",
    "ResourceReservation",
    "Weekday",
]
