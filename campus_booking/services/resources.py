"""Shared physical resources and their reservations."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from campus_booking.core.config import settings
from campus_booking.metrics import CONFLICT_COUNTER, TRANSITION_COUNTER
from campus_booking.models import (
    ReservationStatus,
    Resource,
    ResourceKind,
    ResourceReservation,
)
from campus_booking.services.audit import record_event
from campus_booking.services.conflicts import (
    RESERVATION_OCCUPYING_STATUSES,
    find_conflicts,
    resource_occupancies,
)
from campus_booking.services.errors import (
    AlreadyReserved,
    Forbidden,
    InvalidFormat,
    InvalidRange,
    InvalidTransition,
    MissingRequiredField,
    NotFound,
    ReservationMismatch,
    ResourceInactive,
)
from campus_booking.services.locks import (
    RESERVATION_EXCLUSION_CONSTRAINT,
    exclusion_guard,
    lock_owner,
)
from campus_booking.services.paging import paginate
from campus_booking.services.scheduling import ensure_utc, utcnow
from campus_booking.services.time_window import require_range

logger = logging.getLogger(__name__)


def _resource_kind(kind: ResourceKind | str) -> ResourceKind:
    try:
        return ResourceKind(kind)
    except ValueError as exc:
        raise InvalidFormat(f"Invalid resource kind {kind!r}", details={"field": "kind"}) from exc


def _resource_name(name: str | None) -> str:
    if not name or not name.strip():
        raise MissingRequiredField("name is required", details={"field": "name"})
    return name.strip()


def _resource_capacity(capacity: int) -> int:
    if capacity < 1:
        raise InvalidRange("capacity must be at least 1", details={"capacity": capacity})
    return capacity


def create_resource(
    db: Session,
    *,
    name: str,
    kind: ResourceKind | str,
    capacity: int = 1,
    location: str | None = None,
    description: str | None = None,
    active: bool = True,
) -> Resource:
    resource_name = _resource_name(name)
    resource_kind = _resource_kind(kind)
    capacity = _resource_capacity(capacity)

    resource = Resource(
        name=resource_name,
        kind=resource_kind,
        capacity=capacity,
        location=location,
        description=description,
        active=active,
    )
    db.add(resource)
    db.flush()
    logger.info(
        "resource created",
        extra={"resource_id": str(resource.id), "kind": resource_kind.value},
    )
    return resource


def get_resource(db: Session, resource_id: uuid.UUID) -> Resource:
    resource = db.get(Resource, resource_id)
    if resource is None:
        raise NotFound("Resource not found", details={"resource_id": str(resource_id)})
    return resource


def list_resources(
    db: Session,
    *,
    kind: ResourceKind | str | None = None,
    active: bool | None = None,
    limit: int | None = None,
    page: int | None = None,
) -> list[Resource]:
    stmt = select(Resource).order_by(Resource.name, Resource.id)
    if kind is not None:
        stmt = stmt.where(Resource.kind == _resource_kind(kind))
    if active is not None:
        stmt = stmt.where(Resource.active.is_(active))
    return list(db.execute(paginate(stmt, limit, page)).scalars().all())


RESOURCE_FIELDS = frozenset({"name", "kind", "capacity", "location", "description", "active"})


def update_resource(
    db: Session, resource_id: uuid.UUID, changes: dict[str, Any]
) -> Resource:
    """Partial update. Closing a resource (``active=False``) keeps its reservations."""

    updates = {key: value for key, value in changes.items() if key in RESOURCE_FIELDS}
    if not updates:
        raise MissingRequiredField("No fields to update")
    for field in ("name", "kind", "capacity", "active"):
        if field in updates and updates[field] is None:
            raise MissingRequiredField(f"{field} cannot be null", details={"field": field})
    if "name" in updates:
        updates["name"] = _resource_name(updates["name"])
    if "kind" in updates:
        updates["kind"] = _resource_kind(updates["kind"])
    if "capacity" in updates:
        updates["capacity"] = _resource_capacity(updates["capacity"])

    resource = get_resource(db, resource_id)
    for key, value in updates.items():
        setattr(resource, key, value)
    db.flush()
    logger.info(
        "resource updated",
        extra={"resource_id": str(resource.id), "fields": sorted(updates)},
    )
    return resource


def delete_resource(db: Session, resource_id: uuid.UUID, *, actor: str) -> int:
    """Remove a resource and its reservations. Returns the reservations removed."""

    resource = get_resource(db, resource_id)
    lock_owner(db, "resource", resource.id)
    removed = db.execute(
        delete(ResourceReservation).where(ResourceReservation.resource_id == resource.id)
    ).rowcount
    db.delete(resource)
    db.flush()
    record_event(
        db,
        actor=actor,
        action="resource.deleted",
        resource=f"resource:{resource_id}",
        metadata={"name": resource.name, "reservations_removed": removed},
    )
    logger.info(
        "resource deleted",
        extra={"resource_id": str(resource_id), "reservations_removed": removed},
    )
    return removed


def _reservation_key(reservation: ResourceReservation) -> str:
    return f"reservation:{reservation.id}"


def _reservation_end(start: datetime, duration_hours: float) -> datetime:
    if not (settings.reservation_min_hours <= duration_hours <= settings.reservation_max_hours):
        raise InvalidRange(
            f"duration_hours must be between {settings.reservation_min_hours} "
            f"and {settings.reservation_max_hours}",
            details={"duration_hours": duration_hours},
        )
    end = start + timedelta(hours=duration_hours)
    require_range(start, end, label="reservation range")
    return end


def _reject_overlap(
    resource_id: uuid.UUID, start: datetime, end: datetime, conflicts: list
) -> AlreadyReserved:
    CONFLICT_COUNTER.labels(owner_kind="resource").inc()
    logger.info(
        "reservation rejected: already reserved",
        extra={
            "resource_id": str(resource_id),
            "start": start.isoformat(),
            "end": end.isoformat(),
        },
    )
    return AlreadyReserved(
        details={
            "resource_id": str(resource_id),
            "start": start.isoformat(),
            "end": end.isoformat(),
            "conflicting_reservation_ids": [str(item.record_id) for item in conflicts],
        }
    )


def _ensure_free(
    db: Session,
    resource_id: uuid.UUID,
    start: datetime,
    end: datetime,
    *,
    exclude_reservation_id: uuid.UUID | None = None,
) -> None:
    lock_owner(db, "resource", resource_id)
    existing = resource_occupancies(
        db, resource_id, start, end, exclude_reservation_id=exclude_reservation_id
    )
    conflicts = find_conflicts(start, end, existing, RESERVATION_OCCUPYING_STATUSES)
    if conflicts:
        raise _reject_overlap(resource_id, start, end, conflicts)


def reserve(
    db: Session,
    *,
    resource_id: uuid.UUID,
    requester_id: str,
    start: datetime,
    duration_hours: float = 1.0,
    notes: str | None = None,
) -> ResourceReservation:
    """Create a confirmed reservation if the resource is free for the window."""

    if not requester_id:
        raise MissingRequiredField("requester_id is required")
    resource = get_resource(db, resource_id)
    if not resource.active:
        raise ResourceInactive(details={"resource_id": str(resource_id)})

    start_utc = ensure_utc(start)
    end_utc = _reservation_end(start_utc, duration_hours)
    _ensure_free(db, resource.id, start_utc, end_utc)

    reservation = ResourceReservation(
        resource_id=resource.id,
        requester_id=requester_id,
        start_at=start_utc,
        end_at=end_utc,
        duration_hours=duration_hours,
        status=ReservationStatus.CONFIRMED,
        notes=notes,
    )
    with exclusion_guard(
        db,
        RESERVATION_EXCLUSION_CONSTRAINT,
        lambda: _reject_overlap(resource.id, start_utc, end_utc, []),
    ):
        db.add(reservation)

    record_event(
        db,
        actor=requester_id,
        action="reservation.confirmed",
        resource=_reservation_key(reservation),
        metadata={
            "resource_id": str(resource.id),
            "start": start_utc.isoformat(),
            "end": end_utc.isoformat(),
        },
    )
    TRANSITION_COUNTER.labels(
        entity="reservation", status=ReservationStatus.CONFIRMED.value
    ).inc()
    logger.info(
        "reservation created",
        extra={
            "reservation_id": str(reservation.id),
            "resource_id": str(resource.id),
            "requester_id": requester_id,
        },
    )
    return reservation


def _reservation_for(
    db: Session,
    reservation_id: uuid.UUID,
    resource_id: uuid.UUID,
    *,
    for_update: bool = True,
) -> ResourceReservation:
    stmt = select(ResourceReservation).where(ResourceReservation.id == reservation_id)
    if for_update:
        stmt = stmt.with_for_update()
    reservation = db.execute(stmt).scalars().first()
    if reservation is None:
        raise NotFound("Reservation not found", details={"reservation_id": str(reservation_id)})
    if reservation.resource_id != resource_id:
        raise ReservationMismatch(
            details={
                "reservation_id": str(reservation_id),
                "resource_id": str(resource_id),
            }
        )
    return reservation


def get_reservation(
    db: Session, reservation_id: uuid.UUID, resource_id: uuid.UUID
) -> ResourceReservation:
    """Fetch one reservation of ``resource_id``; ids of another resource are refused."""

    return _reservation_for(db, reservation_id, resource_id, for_update=False)


def _require_owner(
    reservation: ResourceReservation, acting_user_id: str, acting_is_admin: bool
) -> None:
    if reservation.requester_id != acting_user_id and not acting_is_admin:
        raise Forbidden(
            "Only the reserving user or an admin can change this reservation",
            details={"reservation_id": str(reservation.id)},
        )


def cancel_reservation(
    db: Session,
    *,
    reservation_id: uuid.UUID,
    acting_user_id: str,
    resource_id: uuid.UUID,
    acting_is_admin: bool = False,
) -> ResourceReservation:
    """Soft-cancel: the record is kept with ``status=cancelled``."""

    reservation = _reservation_for(db, reservation_id, resource_id)
    _require_owner(reservation, acting_user_id, acting_is_admin)
    if reservation.status is not ReservationStatus.CONFIRMED:
        raise InvalidTransition(
            f"Cannot cancel a reservation that is {reservation.status.value}",
            details={"reservation_id": str(reservation.id)},
        )

    reservation.status = ReservationStatus.CANCELLED
    db.flush()
    record_event(
        db,
        actor=acting_user_id,
        action="reservation.cancelled",
        resource=_reservation_key(reservation),
        metadata={"resource_id": str(resource_id), "admin": acting_is_admin},
    )
    TRANSITION_COUNTER.labels(
        entity="reservation", status=ReservationStatus.CANCELLED.value
    ).inc()
    logger.info(
        "reservation cancelled",
        extra={"reservation_id": str(reservation.id), "resource_id": str(resource_id)},
    )
    return reservation


def move_reservation(
    db: Session,
    *,
    reservation_id: uuid.UUID,
    acting_user_id: str,
    resource_id: uuid.UUID,
    new_start: datetime,
    acting_is_admin: bool = False,
) -> ResourceReservation:
    """Shift a reservation to a new start keeping its duration."""

    reservation = _reservation_for(db, reservation_id, resource_id)
    _require_owner(reservation, acting_user_id, acting_is_admin)
    if reservation.status is not ReservationStatus.CONFIRMED:
        raise InvalidTransition(
            f"Cannot move a reservation that is {reservation.status.value}",
            details={"reservation_id": str(reservation.id)},
        )

    start_utc = ensure_utc(new_start)
    end_utc = _reservation_end(start_utc, reservation.duration_hours)
    _ensure_free(
        db, resource_id, start_utc, end_utc, exclude_reservation_id=reservation.id
    )

    previous_start = ensure_utc(reservation.start_at)
    with exclusion_guard(
        db,
        RESERVATION_EXCLUSION_CONSTRAINT,
        lambda: _reject_overlap(resource_id, start_utc, end_utc, []),
    ):
        reservation.start_at = start_utc
        reservation.end_at = end_utc

    record_event(
        db,
        actor=acting_user_id,
        action="reservation.moved",
        resource=_reservation_key(reservation),
        metadata={
            "previous_start": previous_start.isoformat(),
            "start": start_utc.isoformat(),
        },
    )
    logger.info(
        "reservation moved",
        extra={"reservation_id": str(reservation.id), "start": start_utc.isoformat()},
    )
    return reservation


def list_reservations(
    db: Session,
    resource_id: uuid.UUID,
    *,
    window_start: datetime | None = None,
    window_end: datetime | None = None,
    now: datetime | None = None,
    limit: int | None = None,
    page: int | None = None,
) -> list[ResourceReservation]:
    """Reservations of a resource intersecting the window, oldest first."""

    get_resource(db, resource_id)
    if window_start is not None and window_end is not None:
        require_range(ensure_utc(window_start), ensure_utc(window_end), label="window")
    complete_elapsed_reservations(db, now=now, resource_id=resource_id)

    stmt = (
        select(ResourceReservation)
        .where(ResourceReservation.resource_id == resource_id)
        .order_by(ResourceReservation.start_at, ResourceReservation.created_at)
    )
    if window_end is not None:
        stmt = stmt.where(ResourceReservation.start_at < ensure_utc(window_end))
    if window_start is not None:
        stmt = stmt.where(ResourceReservation.end_at > ensure_utc(window_start))
    return list(db.execute(paginate(stmt, limit, page)).scalars().all())


def list_user_reservations(
    db: Session,
    user_id: str,
    *,
    limit: int | None = None,
    now: datetime | None = None,
) -> list[ResourceReservation]:
    """A user's reservations across every resource, newest first."""

    cap = settings.user_reservation_list_limit
    complete_elapsed_reservations(db, now=now, requester_id=user_id)
    stmt = (
        select(ResourceReservation)
        .where(ResourceReservation.requester_id == user_id)
        .order_by(ResourceReservation.start_at.desc())
        .limit(min(limit, cap) if limit else cap)
    )
    return list(db.execute(stmt).scalars().all())


def complete_elapsed_reservations(
    db: Session,
    *,
    now: datetime | None = None,
    resource_id: uuid.UUID | None = None,
    requester_id: str | None = None,
) -> int:
    """Complete every confirmed reservation that has ended. Returns the count."""

    current = ensure_utc(now) if now else utcnow()
    stmt = select(ResourceReservation).where(
        ResourceReservation.status == ReservationStatus.CONFIRMED,
        ResourceReservation.end_at <= current,
    )
    if resource_id is not None:
        stmt = stmt.where(ResourceReservation.resource_id == resource_id)
    if requester_id:
        stmt = stmt.where(ResourceReservation.requester_id == requester_id)

    completed = 0
    for reservation in db.execute(stmt.with_for_update()).scalars().all():
        reservation.status = ReservationStatus.COMPLETED
        record_event(
            db,
            actor="system",
            action="reservation.completed",
            resource=_reservation_key(reservation),
        )
        completed += 1
    if completed:
        db.flush()
        TRANSITION_COUNTER.labels(
            entity="reservation", status=ReservationStatus.COMPLETED.value
        ).inc(completed)
        logger.info("reservations completed", extra={"count": completed})
    return completed


def serialize_resource(resource: Resource) -> dict[str, Any]:
    return {
        "id": str(resource.id),
        "name": resource.name,
        "kind": resource.kind.value,
        "capacity": resource.capacity,
        "location": resource.location,
        "description": resource.description,
        "active": resource.active,
    }


def serialize_reservation(
    reservation: ResourceReservation, *, tz: ZoneInfo
) -> dict[str, Any]:
    start = ensure_utc(reservation.start_at)
    end = ensure_utc(reservation.end_at)
    return {
        "id": str(reservation.id),
        "resource_id": str(reservation.resource_id),
        "requester_id": reservation.requester_id,
        "status": reservation.status.value,
        "start_ts": start.isoformat(),
        "end_ts": end.isoformat(),
        "start_local": start.astimezone(tz).isoformat(),
        "end_local": end.astimezone(tz).isoformat(),
        "duration_hours": reservation.duration_hours,
        "notes": reservation.notes,
    }
