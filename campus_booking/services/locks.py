"""Per-owner serialisation of check-then-write sequences.

Two guards keep occupying intervals from overlapping under concurrent requests:

* ``lock_owner`` takes a row lock on ``owner_locks`` for the provider or
  resource key and bumps its version, so concurrent creates for the same
  owner queue behind each other until the surrounding transaction ends.
  On SQLite the write itself takes the database lock.
* On PostgreSQL the migrations add exclusion constraints; ``exclusion_guard``
  turns their violation into the matching domain error.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_booking.models import OwnerLock
from campus_booking.services.errors import SchedulingError

logger = logging.getLogger(__name__)

BOOKING_EXCLUSION_CONSTRAINT = "bookings_no_overlap_per_provider"
RESERVATION_EXCLUSION_CONSTRAINT = "resource_reservations_no_overlap"


def owner_key(owner_kind: str, owner_id: object) -> str:
    return f"{owner_kind}:{owner_id}"


def lock_owner(db: Session, owner_kind: str, owner_id: object) -> None:
    """Block until this transaction holds the lock for the owner key."""

    key = owner_key(owner_kind, owner_id)
    lock = db.get(OwnerLock, key, with_for_update=True)
    if lock is None:
        try:
            with db.begin_nested():
                db.add(OwnerLock(owner_key=key, version=0))
        except IntegrityError:
            # created concurrently; fall through and wait on its row lock
            logger.debug("owner lock row created concurrently", extra={"owner_key": key})
        lock = db.get(OwnerLock, key, with_for_update=True, populate_existing=True)
    lock.version += 1
    db.flush()


def violated_constraint(exc: IntegrityError) -> str:
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    name = getattr(diag, "constraint_name", None) if diag is not None else None
    if name:
        return name
    text = str(orig) if orig is not None else str(exc)
    for candidate in (BOOKING_EXCLUSION_CONSTRAINT, RESERVATION_EXCLUSION_CONSTRAINT):
        if candidate in text:
            return candidate
    return ""


@contextmanager
def exclusion_guard(
    db: Session,
    constraint_name: str,
    on_violation: Callable[[], SchedulingError],
) -> Iterator[None]:
    """Run the enclosed writes in a savepoint, mapping overlap violations to a domain error.

    Objects added or modified inside the block are rolled back with the
    savepoint when the constraint fires, leaving earlier state untouched.
    """

    try:
        with db.begin_nested():
            yield
    except IntegrityError as exc:
        if violated_constraint(exc) != constraint_name:
            raise
        logger.info(
            "exclusion constraint rejected write",
            extra={"constraint": constraint_name},
        )
        raise on_violation() from exc
