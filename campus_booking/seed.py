from __future__ import annotations

import logging

from sqlalchemy import select

from campus_booking.db.session import SessionLocal
from campus_booking.logging_utils import configure_logging, set_actor_context
from campus_booking.models import AvailabilityTemplate, Resource, ResourceKind, Weekday
from campus_booking.services.resources import create_resource
from campus_booking.services.templates import create_template

logger = logging.getLogger(__name__)

RESOURCE_CATALOG: list[tuple[str, ResourceKind, int, str]] = [
    ("Sala de Cálculo 1", ResourceKind.SALA_CALCULO, 20, "Edificio de Matemáticas, planta 1"),
    ("Sala de Cálculo 2", ResourceKind.SALA_CALCULO, 16, "Edificio de Matemáticas, planta 1"),
    ("Carrel B-12", ResourceKind.CARREL, 1, "Biblioteca General, planta 2"),
    ("Sala de Reuniones Norte", ResourceKind.SALA_REUNION, 8, "Aulario Norte"),
    ("Impresora 3D Prusa", ResourceKind.IMPRESORA_3D, 1, "FabLab"),
]

# provider, subject, modality, weekday, start, end, location
TEMPLATE_CATALOG: list[tuple[str, str, str, str, str, str, str | None]] = [
    ("tutor-ana", "Cálculo I", "presencial", "monday", "10:00", "12:00", "Despacho 2.14"),
    ("tutor-ana", "Cálculo I", "online", "wednesday", "16:00", "18:00", None),
    ("tutor-bruno", "Programación", "presencial", "tuesday", "09:00", "11:00", "Laboratorio 3"),
    ("tutor-bruno", "Programación", "online", "thursday", "15:00", "17:30", None),
]


def ensure_resources(session) -> list[Resource]:
    created = 0
    resources: list[Resource] = []
    for name, kind, capacity, location in RESOURCE_CATALOG:
        resource = session.execute(
            select(Resource).where(Resource.name == name)
        ).scalar_one_or_none()
        if not resource:
            resource = create_resource(
                session, name=name, kind=kind, capacity=capacity, location=location
            )
            created += 1
        resources.append(resource)

    logger.info("ensured resources", extra={"created": created, "total": len(resources)})
    return resources


def ensure_templates(session) -> list[AvailabilityTemplate]:
    created = 0
    templates: list[AvailabilityTemplate] = []
    for provider_id, subject, modality, weekday, start, end, location in TEMPLATE_CATALOG:
        template = session.execute(
            select(AvailabilityTemplate).where(
                AvailabilityTemplate.provider_id == provider_id,
                AvailabilityTemplate.day_of_week == Weekday(weekday),
                AvailabilityTemplate.start_time == start,
                AvailabilityTemplate.subject == subject,
            )
        ).scalar_one_or_none()
        if not template:
            template = create_template(
                session,
                provider_id=provider_id,
                subject=subject,
                modality=modality,
                day_of_week=weekday,
                start_time=start,
                end_time=end,
                location=location,
            )
            created += 1
        templates.append(template)

    logger.info("ensured templates", extra={"created": created, "total": len(templates)})
    return templates


def seed() -> None:
    configure_logging()
    set_actor_context("seed")
    logger.info("starting seed process")

    session = SessionLocal()
    try:
        ensure_resources(session)
        ensure_templates(session)
        session.commit()
        logger.info("seed complete")
    except Exception:
        session.rollback()
        logger.exception("seed failed")
        raise
    finally:
        session.close()


if __name__ == "__main__":  # pragma: no cover - script entrypoint
    seed()
