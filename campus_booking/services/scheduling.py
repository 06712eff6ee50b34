"""Timezone helpers shared by the scheduling services."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from campus_booking.core.config import settings
from campus_booking.services.errors import InvalidFormat

logger = logging.getLogger(__name__)


def campus_timezone(name: str | None = None) -> ZoneInfo:
    """Return the configured campus timezone, falling back to UTC."""

    tz_name = name or settings.timezone
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown timezone, using UTC", extra={"timezone": tz_name})
        return ZoneInfo("UTC")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Coerce a datetime into UTC timezone-aware form."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_utc(value: datetime, tz: ZoneInfo | None = None) -> datetime:
    """Convert a datetime to UTC assuming the campus timezone when naive."""

    zone = tz or campus_timezone()
    if value.tzinfo is None:
        localized = value.replace(tzinfo=zone)
    else:
        localized = value.astimezone(zone)
    return localized.astimezone(timezone.utc)


def parse_instant(raw: str, tz: ZoneInfo | None = None) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""

    try:
        value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError) as exc:
        raise InvalidFormat(f"Invalid ISO-8601 timestamp {raw!r}") from exc
    return to_utc(value, tz)


def local_day_start(target_date: date, tz: ZoneInfo) -> datetime:
    """Return the UTC instant of local midnight on ``target_date``."""

    return datetime.combine(target_date, time.min, tzinfo=tz).astimezone(timezone.utc)


def local_day_bounds(target_date: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    return local_day_start(target_date, tz), local_day_start(
        target_date + timedelta(days=1), tz
    )
