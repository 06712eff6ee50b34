"""Scheduling engine used by the campus booking API."""

from campus_booking.services.availability import Slot, expand, provider_availability
from campus_booking.services.bookings import (
    accept_booking,
    cancel_booking,
    complete_booking,
    complete_elapsed_bookings,
    create_booking,
    get_booking,
    list_bookings,
    read_booking,
    reopen_booking,
    reschedule_booking,
    serialize_booking,
)
from campus_booking.services.conflicts import find_conflicts, has_conflict
from campus_booking.services.errors import SchedulingError
from campus_booking.services.resources import (
    cancel_reservation,
    complete_elapsed_reservations,
    create_resource,
    delete_resource,
    get_reservation,
    get_resource,
    list_reservations,
    list_resources,
    list_user_reservations,
    move_reservation,
    reserve,
    serialize_reservation,
    serialize_resource,
    update_resource,
)
from campus_booking.services.templates import (
    create_template,
    delete_template,
    list_templates,
    serialize_template,
    update_template,
)

__all__ = [
    "SchedulingError",
    "Slot",
    "accept_booking",
    "cancel_booking",
    "cancel_reservation",
    "complete_booking",
    "complete_elapsed_bookings",
    "complete_elapsed_reservations",
    "create_booking",
    "create_resource",
    "create_template",
    "delete_resource",
    "delete_template",
    "expand",
    "find_conflicts",
    "get_booking",
    "get_reservation",
    "get_resource",
    "has_conflict",
    "list_bookings",
    "list_reservations",
    "list_resources",
    "list_templates",
    "list_user_reservations",
    "move_reservation",
    "provider_availability",
    "read_booking",
    "reopen_booking",
    "reschedule_booking",
    "reserve",
    "serialize_booking",
    "serialize_reservation",
    "serialize_resource",
    "serialize_template",
    "update_resource",
    "update_template",
]
