"""Booking lifecycle: create, accept, cancel, reschedule and complete.

State machine::

    pending ──accept──▶ confirmed ──complete──▶ completed
       │                   │
       ├──reschedule──▶ rescheduled ──accept──▶ confirmed
       │                   │        └─reopen──▶ pending
       └──cancel──▶ cancelled ◀──cancel──┘

``rescheduled`` keeps occupying the provider's calendar exactly like
``pending``. ``cancelled`` and ``completed`` are terminal and cancelled
bookings are retained for history.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from campus_booking.metrics import CONFLICT_COUNTER, TRANSITION_COUNTER
from campus_booking.models import Booking, BookingStatus, Modality
from campus_booking.services.audit import record_event
from campus_booking.services.conflicts import (
    BOOKING_OCCUPYING_STATUSES,
    find_conflicts,
    provider_occupancies,
)
from campus_booking.services.errors import (
    Forbidden,
    InvalidFormat,
    InvalidTransition,
    MissingRequiredField,
    NotFound,
    SlotConflict,
)
from campus_booking.services.locks import (
    BOOKING_EXCLUSION_CONSTRAINT,
    exclusion_guard,
    lock_owner,
)
from campus_booking.services.paging import paginate
from campus_booking.services.scheduling import ensure_utc, utcnow
from campus_booking.services.templates import validated_location
from campus_booking.services.time_window import require_range

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})
CANCELLABLE_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.RESCHEDULED}
)
ACCEPTABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.RESCHEDULED})
RESCHEDULABLE_STATUSES = CANCELLABLE_STATUSES
TOPIC_MAX_LENGTH = 200


def _resource_key(booking: Booking) -> str:
    return f"booking:{booking.id}"


def _transition(
    db: Session,
    booking: Booking,
    new_status: BookingStatus,
    *,
    actor: str | None,
    metadata: dict[str, Any] | None = None,
) -> None:
    previous = booking.status
    booking.status = new_status
    db.flush()
    record_event(
        db,
        actor=actor,
        action=f"booking.{new_status.value}",
        resource=_resource_key(booking),
        metadata={"from": previous.value, **(metadata or {})},
    )
    TRANSITION_COUNTER.labels(entity="booking", status=new_status.value).inc()
    logger.info(
        "booking transitioned",
        extra={
            "booking_id": str(booking.id),
            "provider_id": booking.provider_id,
            "from_status": previous.value,
            "status": new_status.value,
        },
    )


def _reject_conflict(
    provider_id: str, start: datetime, end: datetime, conflicts: list
) -> SlotConflict:
    CONFLICT_COUNTER.labels(owner_kind="provider").inc()
    logger.info(
        "booking rejected: slot conflict",
        extra={
            "provider_id": provider_id,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "conflicting": [str(item.record_id) for item in conflicts],
        },
    )
    return SlotConflict(
        details={
            "provider_id": provider_id,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "conflicting_booking_ids": [str(item.record_id) for item in conflicts],
        }
    )


def _coerce_modality(value: Modality | str) -> Modality:
    try:
        return Modality(value)
    except ValueError as exc:
        raise InvalidFormat(
            f"Invalid modality {value!r}", details={"field": "modality"}
        ) from exc


def create_booking(
    db: Session,
    *,
    provider_id: str,
    requester_id: str,
    start: datetime,
    end: datetime,
    topic: str,
    modality: Modality | str = Modality.PRESENCIAL,
    location: str | None = None,
    description: str | None = None,
    notes: str | None = None,
) -> Booking:
    """Insert a pending booking after re-validating the provider's calendar."""

    if not provider_id or not requester_id:
        raise MissingRequiredField("provider_id and requester_id are required")
    if not topic or not topic.strip():
        raise MissingRequiredField("topic is required", details={"field": "topic"})
    if len(topic.strip()) > TOPIC_MAX_LENGTH:
        raise InvalidFormat(f"topic must be at most {TOPIC_MAX_LENGTH} characters")

    start_utc, end_utc = ensure_utc(start), ensure_utc(end)
    require_range(start_utc, end_utc, label="booking range")
    session_modality = _coerce_modality(modality)
    cleaned_location = validated_location(session_modality, location)

    lock_owner(db, "provider", provider_id)
    existing = provider_occupancies(db, provider_id, start_utc, end_utc)
    conflicts = find_conflicts(start_utc, end_utc, existing, BOOKING_OCCUPYING_STATUSES)
    if conflicts:
        raise _reject_conflict(provider_id, start_utc, end_utc, conflicts)

    booking = Booking(
        provider_id=provider_id,
        requester_id=requester_id,
        start_at=start_utc,
        end_at=end_utc,
        topic=topic.strip(),
        description=description,
        notes=notes,
        modality=session_modality,
        location=cleaned_location,
        status=BookingStatus.PENDING,
    )
    with exclusion_guard(
        db,
        BOOKING_EXCLUSION_CONSTRAINT,
        lambda: _reject_conflict(provider_id, start_utc, end_utc, []),
    ):
        db.add(booking)

    record_event(
        db,
        actor=requester_id,
        action="booking.created",
        resource=_resource_key(booking),
        metadata={
            "provider_id": provider_id,
            "start": start_utc.isoformat(),
            "end": end_utc.isoformat(),
        },
    )
    TRANSITION_COUNTER.labels(entity="booking", status=BookingStatus.PENDING.value).inc()
    logger.info(
        "booking created",
        extra={
            "booking_id": str(booking.id),
            "provider_id": provider_id,
            "requester_id": requester_id,
        },
    )
    return booking


def get_booking(
    db: Session, booking_id: uuid.UUID, *, for_update: bool = False
) -> Booking:
    if for_update:
        stmt = select(Booking).where(Booking.id == booking_id).with_for_update()
        booking = db.execute(stmt).scalars().first()
    else:
        booking = db.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found", details={"booking_id": str(booking_id)})
    return booking


def read_booking(
    db: Session, booking_id: uuid.UUID, *, now: datetime | None = None
) -> Booking:
    """Fetch one booking, completing it first if it is confirmed and has ended."""

    booking = get_booking(db, booking_id)
    complete_elapsed_bookings(db, now=now, booking_id=booking.id)
    return booking


def _require_provider(booking: Booking, acting_provider_id: str) -> None:
    if booking.provider_id != acting_provider_id:
        raise Forbidden(
            "Only the booking's provider can perform this action",
            details={"booking_id": str(booking.id)},
        )


def _require_status(
    booking: Booking, allowed: frozenset[BookingStatus], action: str
) -> None:
    if booking.status not in allowed:
        raise InvalidTransition(
            f"Cannot {action} a booking that is {booking.status.value}",
            details={"booking_id": str(booking.id), "status": booking.status.value},
        )


def accept_booking(
    db: Session, booking_id: uuid.UUID, *, acting_provider_id: str
) -> Booking:
    """Provider confirms a pending (or freshly rescheduled) booking."""

    booking = get_booking(db, booking_id, for_update=True)
    _require_provider(booking, acting_provider_id)
    _require_status(booking, ACCEPTABLE_STATUSES, "accept")
    _transition(db, booking, BookingStatus.CONFIRMED, actor=acting_provider_id)
    return booking


def reopen_booking(
    db: Session, booking_id: uuid.UUID, *, acting_provider_id: str
) -> Booking:
    """Provider sends a rescheduled booking back to pending."""

    booking = get_booking(db, booking_id, for_update=True)
    _require_provider(booking, acting_provider_id)
    _require_status(booking, frozenset({BookingStatus.RESCHEDULED}), "reopen")
    _transition(db, booking, BookingStatus.PENDING, actor=acting_provider_id)
    return booking


def cancel_booking(
    db: Session,
    booking_id: uuid.UUID,
    *,
    acting_user_id: str,
    now: datetime | None = None,
) -> Booking:
    """Soft-cancel a booking on behalf of its provider or requester.

    A requester may only cancel sessions that have not started yet; the
    provider may cancel any non-terminal booking.
    """

    booking = get_booking(db, booking_id, for_update=True)
    is_provider = booking.provider_id == acting_user_id
    is_requester = booking.requester_id == acting_user_id
    if not (is_provider or is_requester):
        raise Forbidden(
            "Only the provider or the requester can cancel this booking",
            details={"booking_id": str(booking.id)},
        )
    _require_status(booking, CANCELLABLE_STATUSES, "cancel")

    current = ensure_utc(now) if now else utcnow()
    if not is_provider and ensure_utc(booking.start_at) <= current:
        raise InvalidTransition(
            "Cannot cancel a session that has already started",
            details={"booking_id": str(booking.id)},
        )

    _transition(
        db,
        booking,
        BookingStatus.CANCELLED,
        actor=acting_user_id,
        metadata={"by": "provider" if is_provider else "requester"},
    )
    return booking


def reschedule_booking(
    db: Session,
    booking_id: uuid.UUID,
    *,
    acting_provider_id: str,
    new_start: datetime,
    new_end: datetime,
) -> Booking:
    """Move a booking to a new range; the booking is untouched on any failure."""

    start_utc, end_utc = ensure_utc(new_start), ensure_utc(new_end)
    require_range(start_utc, end_utc, label="booking range")

    booking = get_booking(db, booking_id, for_update=True)
    _require_provider(booking, acting_provider_id)
    _require_status(booking, RESCHEDULABLE_STATUSES, "reschedule")

    lock_owner(db, "provider", booking.provider_id)
    existing = provider_occupancies(
        db, booking.provider_id, start_utc, end_utc, exclude_booking_id=booking.id
    )
    conflicts = find_conflicts(start_utc, end_utc, existing, BOOKING_OCCUPYING_STATUSES)
    if conflicts:
        raise _reject_conflict(booking.provider_id, start_utc, end_utc, conflicts)

    previous_start = ensure_utc(booking.start_at)
    previous_end = ensure_utc(booking.end_at)
    with exclusion_guard(
        db,
        BOOKING_EXCLUSION_CONSTRAINT,
        lambda: _reject_conflict(booking.provider_id, start_utc, end_utc, []),
    ):
        booking.start_at = start_utc
        booking.end_at = end_utc

    _transition(
        db,
        booking,
        BookingStatus.RESCHEDULED,
        actor=acting_provider_id,
        metadata={
            "previous_start": previous_start.isoformat(),
            "previous_end": previous_end.isoformat(),
            "start": start_utc.isoformat(),
            "end": end_utc.isoformat(),
        },
    )
    return booking


def complete_booking(
    db: Session,
    booking_id: uuid.UUID,
    *,
    acting_user_id: str | None = None,
    now: datetime | None = None,
) -> Booking:
    """Mark a confirmed booking whose end has passed as completed.

    ``acting_user_id`` of ``None`` means the system itself is completing it.
    """

    booking = get_booking(db, booking_id, for_update=True)
    if acting_user_id is not None:
        _require_provider(booking, acting_user_id)
    _require_status(booking, frozenset({BookingStatus.CONFIRMED}), "complete")

    current = ensure_utc(now) if now else utcnow()
    if ensure_utc(booking.end_at) > current:
        raise InvalidTransition(
            "Cannot complete a session before it ends",
            details={"booking_id": str(booking.id), "end": ensure_utc(booking.end_at).isoformat()},
        )
    _transition(db, booking, BookingStatus.COMPLETED, actor=acting_user_id or "system")
    return booking


def complete_elapsed_bookings(
    db: Session,
    *,
    now: datetime | None = None,
    provider_id: str | None = None,
    requester_id: str | None = None,
    booking_id: uuid.UUID | None = None,
) -> int:
    """Complete every confirmed booking that has ended. Returns the count."""

    current = ensure_utc(now) if now else utcnow()
    stmt = select(Booking).where(
        Booking.status == BookingStatus.CONFIRMED,
        Booking.end_at <= current,
    )
    if provider_id:
        stmt = stmt.where(Booking.provider_id == provider_id)
    if requester_id:
        stmt = stmt.where(Booking.requester_id == requester_id)
    if booking_id:
        stmt = stmt.where(Booking.id == booking_id)

    completed = 0
    for booking in db.execute(stmt.with_for_update()).scalars().all():
        _transition(db, booking, BookingStatus.COMPLETED, actor="system")
        completed += 1
    return completed


def list_bookings(
    db: Session,
    *,
    provider_id: str | None = None,
    requester_id: str | None = None,
    window_start: datetime | None = None,
    window_end: datetime | None = None,
    now: datetime | None = None,
    limit: int | None = None,
    page: int | None = None,
) -> list[Booking]:
    """Bookings of a provider and/or requester ordered by start.

    Window bounds use the same half-open overlap rule as the conflict check.
    Elapsed confirmed bookings are completed before reading. Results are
    paged, ``list_page_size`` rows per page by default.
    """

    if not provider_id and not requester_id:
        raise MissingRequiredField("provider_id or requester_id is required")
    if window_start is not None and window_end is not None:
        require_range(ensure_utc(window_start), ensure_utc(window_end), label="window")

    complete_elapsed_bookings(
        db, now=now, provider_id=provider_id, requester_id=requester_id
    )

    stmt = select(Booking).order_by(Booking.start_at, Booking.created_at)
    if provider_id:
        stmt = stmt.where(Booking.provider_id == provider_id)
    if requester_id:
        stmt = stmt.where(Booking.requester_id == requester_id)
    if window_end is not None:
        stmt = stmt.where(Booking.start_at < ensure_utc(window_end))
    if window_start is not None:
        stmt = stmt.where(Booking.end_at > ensure_utc(window_start))
    return list(db.execute(paginate(stmt, limit, page)).scalars().all())


def serialize_booking(booking: Booking, *, tz: ZoneInfo) -> dict[str, Any]:
    """Return a JSON-friendly representation of a booking."""

    start = ensure_utc(booking.start_at)
    end = ensure_utc(booking.end_at)
    return {
        "id": str(booking.id),
        "provider_id": booking.provider_id,
        "requester_id": booking.requester_id,
        "status": booking.status.value,
        "start_ts": start.isoformat(),
        "end_ts": end.isoformat(),
        "start_local": start.astimezone(tz).isoformat(),
        "end_local": end.astimezone(tz).isoformat(),
        "topic": booking.topic,
        "description": booking.description,
        "notes": booking.notes,
        "modality": booking.modality.value,
        "location": booking.location,
    }
