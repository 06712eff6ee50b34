"""Overlap detection against occupying bookings and reservations.

The same ``overlaps`` predicate backs both the availability listing (which
slots to hide) and the create/reschedule gate, so a slot that is advertised
is never refused for overlap and vice versa.
"""

from __future__ import annotations

import uuid
from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from campus_booking.models import (
    Booking,
    BookingStatus,
    ReservationStatus,
    ResourceReservation,
)
from campus_booking.services.scheduling import ensure_utc
from campus_booking.services.time_window import overlaps

BOOKING_OCCUPYING_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.RESCHEDULED}
)
RESERVATION_OCCUPYING_STATUSES: frozenset[ReservationStatus] = frozenset(
    {ReservationStatus.CONFIRMED}
)


@dataclass(frozen=True)
class Occupancy:
    """Time range held by a booking or reservation."""

    start_at: datetime
    end_at: datetime
    status: Enum
    record_id: uuid.UUID | None = None

    @classmethod
    def of(cls, record: Any) -> "Occupancy":
        """Build from an ORM row or a ``{start, end, status}`` mapping.

        Mappings may also use the column names ``start_at``/``end_at``.
        """

        if isinstance(record, Mapping):
            return cls(
                start_at=ensure_utc(record.get("start_at", record.get("start"))),
                end_at=ensure_utc(record.get("end_at", record.get("end"))),
                status=record["status"],
                record_id=record.get("id"),
            )
        return cls(
            start_at=ensure_utc(record.start_at),
            end_at=ensure_utc(record.end_at),
            status=record.status,
            record_id=getattr(record, "id", None),
        )


def find_conflicts(
    proposed_start: datetime,
    proposed_end: datetime,
    existing: Iterable[Any],
    occupying: Collection[Enum],
) -> list[Occupancy]:
    """Return the occupying entries of ``existing`` that overlap the proposal."""

    start = ensure_utc(proposed_start)
    end = ensure_utc(proposed_end)
    conflicts: list[Occupancy] = []
    for item in existing:
        occupancy = item if isinstance(item, Occupancy) else Occupancy.of(item)
        if occupancy.status not in occupying:
            continue
        if overlaps(start, end, occupancy.start_at, occupancy.end_at):
            conflicts.append(occupancy)
    return conflicts


def has_conflict(
    proposed_start: datetime,
    proposed_end: datetime,
    existing: Iterable[Any],
    occupying: Collection[Enum] = BOOKING_OCCUPYING_STATUSES,
) -> bool:
    return bool(find_conflicts(proposed_start, proposed_end, existing, occupying))


def provider_occupancies(
    db: Session,
    provider_id: str,
    window_start: datetime,
    window_end: datetime,
    *,
    exclude_booking_id: uuid.UUID | None = None,
) -> list[Booking]:
    """Load occupying bookings of a provider that intersect the window."""

    stmt = (
        select(Booking)
        .where(
            Booking.provider_id == provider_id,
            Booking.status.in_(BOOKING_OCCUPYING_STATUSES),
            Booking.start_at < ensure_utc(window_end),
            Booking.end_at > ensure_utc(window_start),
        )
        .order_by(Booking.start_at)
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    return list(db.execute(stmt).scalars().all())


def resource_occupancies(
    db: Session,
    resource_id: uuid.UUID,
    window_start: datetime,
    window_end: datetime,
    *,
    exclude_reservation_id: uuid.UUID | None = None,
) -> list[ResourceReservation]:
    """Load confirmed reservations of a resource that intersect the window."""

    stmt = (
        select(ResourceReservation)
        .where(
            ResourceReservation.resource_id == resource_id,
            ResourceReservation.status.in_(RESERVATION_OCCUPYING_STATUSES),
            ResourceReservation.start_at < ensure_utc(window_end),
            ResourceReservation.end_at > ensure_utc(window_start),
        )
        .order_by(ResourceReservation.start_at)
    )
    if exclude_reservation_id is not None:
        stmt = stmt.where(ResourceReservation.id != exclude_reservation_id)
    return list(db.execute(stmt).scalars().all())
