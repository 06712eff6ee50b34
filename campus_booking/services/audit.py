"""Audit trail for committed state changes."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from campus_booking.models import AuditLog
from campus_booking.services.scheduling import utcnow


def record_event(
    db: Session,
    *,
    actor: str | None,
    action: str,
    resource: str,
    metadata: dict[str, Any] | None = None,
    occurred_at: datetime | None = None,
) -> AuditLog:
    entry = AuditLog(
        actor=actor,
        action=action,
        resource=resource,
        occurred_at=occurred_at or utcnow(),
        metadata_json=metadata,
    )
    db.add(entry)
    return entry


def history(db: Session, resource: str) -> list[AuditLog]:
    """Return audit entries for a resource key, oldest first."""

    stmt = (
        select(AuditLog)
        .where(AuditLog.resource == resource)
        .order_by(AuditLog.occurred_at, AuditLog.created_at)
    )
    return list(db.execute(stmt).scalars().all())
