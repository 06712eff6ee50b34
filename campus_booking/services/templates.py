"""Management of recurring availability templates."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from campus_booking.models import AvailabilityTemplate, Modality, Weekday
from campus_booking.services.errors import (
    Forbidden,
    InvalidFormat,
    MissingRequiredField,
    NotFound,
    SchedulingError,
)
from campus_booking.services.time_window import parse_wall_clock, parse_wall_clock_range

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"subject", "modality", "location", "day_of_week", "start_time", "end_time", "active"}
)


def _coerce_enum(enum_cls: type, value: Any, field: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidFormat(
            f"Invalid {field} {value!r}. Allowed: {allowed}", details={"field": field}
        ) from exc


def validated_location(modality: Modality, location: str | None) -> str | None:
    """Return the cleaned location, enforcing it for in-person sessions."""

    cleaned = location.strip() if isinstance(location, str) else None
    if modality is Modality.PRESENCIAL and not cleaned:
        raise MissingRequiredField(
            "location is required for presencial modality", details={"field": "location"}
        )
    return cleaned or None


def _validate(template: AvailabilityTemplate) -> None:
    if not template.subject or not template.subject.strip():
        raise MissingRequiredField("subject is required", details={"field": "subject"})
    parse_wall_clock_range(template.start_time, template.end_time)
    template.location = validated_location(template.modality, template.location)


def create_template(
    db: Session,
    *,
    provider_id: str,
    subject: str,
    modality: Modality | str,
    day_of_week: Weekday | str,
    start_time: str,
    end_time: str,
    location: str | None = None,
    active: bool = True,
) -> AvailabilityTemplate:
    if not provider_id:
        raise MissingRequiredField("provider_id is required", details={"field": "provider_id"})

    template = AvailabilityTemplate(
        provider_id=provider_id,
        subject=subject.strip() if subject else subject,
        modality=_coerce_enum(Modality, modality, "modality"),
        location=location,
        day_of_week=_coerce_enum(Weekday, day_of_week, "day_of_week"),
        start_time=start_time,
        end_time=end_time,
        active=active,
    )
    _validate(template)
    db.add(template)
    db.flush()
    logger.info(
        "template created",
        extra={"template_id": str(template.id), "provider_id": provider_id},
    )
    return template


def get_template(db: Session, template_id: uuid.UUID) -> AvailabilityTemplate:
    template = db.get(AvailabilityTemplate, template_id)
    if template is None:
        raise NotFound("Availability template not found", details={"template_id": str(template_id)})
    return template


def _owned_template(
    db: Session, template_id: uuid.UUID, acting_user_id: str
) -> AvailabilityTemplate:
    template = get_template(db, template_id)
    if template.provider_id != acting_user_id:
        raise Forbidden("Only the owning provider can modify this template")
    return template


def update_template(
    db: Session,
    template_id: uuid.UUID,
    *,
    acting_user_id: str,
    changes: dict[str, Any],
) -> AvailabilityTemplate:
    """Apply a full or partial update; at least one known field is required."""

    updates = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
    if not updates:
        raise MissingRequiredField("No fields to update")

    template = _owned_template(db, template_id, acting_user_id)
    if "modality" in updates:
        updates["modality"] = _coerce_enum(Modality, updates["modality"], "modality")
    if "day_of_week" in updates:
        updates["day_of_week"] = _coerce_enum(Weekday, updates["day_of_week"], "day_of_week")

    for key, value in updates.items():
        setattr(template, key, value)
    try:
        _validate(template)
    except SchedulingError:
        # discard the rejected changes
        db.expire(template)
        raise
    db.flush()
    logger.info(
        "template updated",
        extra={"template_id": str(template.id), "fields": sorted(updates)},
    )
    return template


def delete_template(db: Session, template_id: uuid.UUID, *, acting_user_id: str) -> None:
    """Remove a template. Bookings copied their range and are unaffected."""

    template = _owned_template(db, template_id, acting_user_id)
    db.delete(template)
    db.flush()
    logger.info("template deleted", extra={"template_id": str(template_id)})


def list_templates(
    db: Session,
    *,
    provider_id: str | None = None,
    include_inactive: bool = False,
) -> list[AvailabilityTemplate]:
    """Templates ordered by weekday then start time."""

    stmt = select(AvailabilityTemplate)
    if provider_id:
        stmt = stmt.where(AvailabilityTemplate.provider_id == provider_id)
    if not include_inactive:
        stmt = stmt.where(AvailabilityTemplate.active.is_(True))
    templates = db.execute(stmt).scalars().all()
    return sorted(
        templates,
        key=lambda t: (
            Weekday(t.day_of_week).position,
            parse_wall_clock(t.start_time),
            t.provider_id,
        ),
    )


def serialize_template(template: AvailabilityTemplate) -> dict[str, Any]:
    return {
        "id": str(template.id),
        "provider_id": template.provider_id,
        "subject": template.subject,
        "modality": template.modality.value,
        "location": template.location,
        "day_of_week": template.day_of_week.value,
        "start_time": template.start_time,
        "end_time": template.end_time,
        "active": template.active,
    }
