from __future__ import annotations

import enum
import uuid
from datetime import date

from sqlalchemy import Boolean, Enum, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from campus_booking.models.base import Base, TimestampMixin


class Weekday(str, enum.Enum):
    """Day of the week a recurring template applies to."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def position(self) -> int:
        """ISO position minus one, matching ``date.weekday()``."""

        return list(Weekday).index(self)

    @classmethod
    def of(cls, value: date) -> "Weekday":
        return list(cls)[value.weekday()]


class Modality(str, enum.Enum):
    """Where a tutoring session takes place."""

    PRESENCIAL = "presencial"
    ONLINE = "online"


class AvailabilityTemplate(Base, TimestampMixin):
    """Recurring weekly window offered by a provider."""

    __tablename__ = "availability_templates"
    __table_args__ = (
        Index("ix_availability_templates_provider_day", "provider_id", "day_of_week"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    modality: Mapped[Modality] = mapped_column(
        Enum(Modality, name="session_modality"), nullable=False
    )
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    day_of_week: Mapped[Weekday] = mapped_column(
        Enum(Weekday, name="weekday"), nullable=False
    )
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
