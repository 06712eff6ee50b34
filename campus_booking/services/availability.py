"""Expansion of recurring weekly templates into concrete bookable slots."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from campus_booking.core.config import settings
from campus_booking.models import AvailabilityTemplate, Weekday
from campus_booking.services.conflicts import (
    BOOKING_OCCUPYING_STATUSES,
    has_conflict,
    provider_occupancies,
)
from campus_booking.services.errors import InvalidRange
from campus_booking.services.scheduling import campus_timezone, ensure_utc, utcnow
from campus_booking.services.time_window import parse_wall_clock, wall_clock_time


@dataclass(frozen=True)
class Slot:
    """Concrete bookable range derived from a template. Never persisted."""

    start_utc: datetime
    end_utc: datetime
    provider_id: str
    template_id: uuid.UUID | None
    subject: str | None = None
    modality: str | None = None
    location: str | None = None

    def as_dict(self, tz: ZoneInfo) -> dict[str, Any]:
        """Convert the slot into JSON-friendly values."""

        return {
            "provider_id": self.provider_id,
            "template_id": str(self.template_id) if self.template_id else None,
            "start_ts": self.start_utc.isoformat(),
            "end_ts": self.end_utc.isoformat(),
            "start_local": self.start_utc.astimezone(tz).isoformat(),
            "end_local": self.end_utc.astimezone(tz).isoformat(),
            "subject": self.subject,
            "modality": self.modality,
            "location": self.location,
        }


def _exists_locally(local: datetime, tz: ZoneInfo) -> bool:
    """False for wall-clock times skipped by a spring-forward transition."""

    round_trip = local.astimezone(timezone.utc).astimezone(tz)
    return round_trip.replace(tzinfo=None) == local.replace(tzinfo=None)


def _template_day_slots(
    template: Any,
    day: date,
    granularity_minutes: int,
    tz: ZoneInfo,
    now_utc: datetime,
) -> Iterator[Slot]:
    start_min = parse_wall_clock(template.start_time)
    end_min = parse_wall_clock(template.end_time)
    modality = getattr(template, "modality", None)
    length = timedelta(minutes=granularity_minutes)

    cursor = start_min
    # fragments that would spill past end_time are dropped
    while cursor + granularity_minutes <= end_min:
        local_start = datetime.combine(day, wall_clock_time(cursor), tzinfo=tz)
        local_end = datetime.combine(
            day, wall_clock_time(cursor + granularity_minutes), tzinfo=tz
        )
        start_utc = local_start.astimezone(timezone.utc)
        end_utc = local_end.astimezone(timezone.utc)
        # across a DST change only slots that exist on the wall clock and
        # last exactly one granule survive
        if (
            _exists_locally(local_start, tz)
            and end_utc - start_utc == length
            and end_utc > now_utc
        ):
            yield Slot(
                start_utc=start_utc,
                end_utc=end_utc,
                provider_id=template.provider_id,
                template_id=getattr(template, "id", None),
                subject=getattr(template, "subject", None),
                modality=getattr(modality, "value", modality),
                location=getattr(template, "location", None),
            )
        cursor += granularity_minutes


def expand(
    templates: Iterable[Any],
    horizon_days: int,
    granularity_minutes: int,
    now: datetime,
    tz: ZoneInfo | None = None,
) -> list[Slot]:
    """Expand active templates into slots over the next ``horizon_days`` days.

    Day one is today in the campus timezone. Slots ending at or before ``now``
    are discarded and the result is sorted by start. Pure: no I/O, no mutation.
    """

    if horizon_days < 1:
        raise InvalidRange("horizon_days must be at least 1")
    if granularity_minutes < 1:
        raise InvalidRange("granularity_minutes must be positive")

    zone = tz or campus_timezone()
    now_utc = ensure_utc(now)
    today = now_utc.astimezone(zone).date()
    active = [template for template in templates if template.active]

    slots: list[Slot] = []
    for offset in range(horizon_days):
        day = today + timedelta(days=offset)
        weekday = Weekday.of(day)
        for template in active:
            if Weekday(template.day_of_week) is not weekday:
                continue
            slots.extend(
                _template_day_slots(template, day, granularity_minutes, zone, now_utc)
            )

    slots.sort(key=lambda slot: (slot.start_utc, slot.end_utc, str(slot.template_id)))
    return slots


def active_templates_for(db: Session, provider_id: str) -> list[AvailabilityTemplate]:
    stmt = select(AvailabilityTemplate).where(
        AvailabilityTemplate.provider_id == provider_id,
        AvailabilityTemplate.active.is_(True),
    )
    return list(db.execute(stmt).scalars().all())


def provider_availability(
    db: Session,
    provider_id: str,
    *,
    horizon_days: int | None = None,
    granularity_minutes: int | None = None,
    now: datetime | None = None,
    tz: ZoneInfo | None = None,
) -> list[Slot]:
    """Open slots for a provider, hiding ranges already held by a booking."""

    horizon = (
        settings.availability_horizon_days if horizon_days is None else horizon_days
    )
    if horizon > settings.max_horizon_days:
        raise InvalidRange(
            f"horizon_days must not exceed {settings.max_horizon_days}",
            details={"horizon_days": horizon},
        )
    granularity = (
        settings.slot_granularity_minutes
        if granularity_minutes is None
        else granularity_minutes
    )
    now_utc = ensure_utc(now) if now else utcnow()

    slots = expand(
        active_templates_for(db, provider_id), horizon, granularity, now_utc, tz
    )
    if not slots:
        return []

    booked = provider_occupancies(
        db, provider_id, slots[0].start_utc, max(slot.end_utc for slot in slots)
    )
    seen: set[tuple[datetime, datetime]] = set()
    open_slots: list[Slot] = []
    for slot in slots:
        span = (slot.start_utc, slot.end_utc)
        if span in seen:
            continue
        if has_conflict(slot.start_utc, slot.end_utc, booked, BOOKING_OCCUPYING_STATUSES):
            continue
        seen.add(span)
        open_slots.append(slot)
    return open_slots
