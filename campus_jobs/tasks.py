from __future__ import annotations

from datetime import datetime
from typing import Any

from celery.utils.log import get_task_logger

from campus_booking.db.session import SessionLocal
from campus_booking.logging_utils import log_context
from campus_booking.services.bookings import complete_elapsed_bookings
from campus_booking.services.resources import complete_elapsed_reservations
from campus_booking.services.scheduling import parse_instant, utcnow
from campus_jobs.celery_app import celery_app

logger = get_task_logger(__name__)


def _resolve_now(now_iso: str | None) -> datetime:
    """Return the sweep cut-off, defaulting to the current instant."""

    if now_iso:
        return parse_instant(now_iso)
    return utcnow()


def sweep_elapsed(now: datetime) -> dict[str, Any]:
    session = SessionLocal()
    try:
        bookings = complete_elapsed_bookings(session, now=now)
        reservations = complete_elapsed_reservations(session, now=now)
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Completion sweep failed at %s", now.isoformat())
        raise
    finally:
        session.close()

    logger.info(
        "Completed %s bookings and %s reservations ended before %s",
        bookings,
        reservations,
        now.isoformat(),
    )
    return {
        "bookings_completed": bookings,
        "reservations_completed": reservations,
        "swept_at": now.isoformat(),
    }


@celery_app.task(name="jobs.complete_elapsed")
def complete_elapsed(now_iso: str | None = None) -> dict[str, Any]:
    """Move confirmed bookings and reservations whose end has passed to completed."""

    with log_context(request_id=complete_elapsed.request.id, actor_id="jobs"):
        return sweep_elapsed(_resolve_now(now_iso))
