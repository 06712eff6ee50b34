"""Import SQLAlchemy models for Alembic's autogenerate feature."""

from campus_booking.models.base import Base
from campus_booking.models import (  # noqa: F401
    AuditLog,
    AvailabilityTemplate,
    Booking,
    OwnerLock,
    Resource,
    ResourceReservation,
)

__all__ = [
    "Base",
    "AuditLog",
    "AvailabilityTemplate",
    "Booking",
    "OwnerLock",
    "Resource",
    "ResourceReservation",
]
