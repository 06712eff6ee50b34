from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Enum, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from campus_booking.models.availability_template import Modality
from campus_booking.models.base import Base, TimestampMixin, UTCDateTime


class BookingStatus(str, enum.Enum):
    """Possible statuses for a tutoring booking lifecycle."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"


class Booking(Base, TimestampMixin):
    """Tutoring session agreed between a provider and a requester."""

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="time_range"),
        Index("ix_bookings_provider_start", "provider_id", "start_at"),
        Index("ix_bookings_requester_start", "requester_id", "start_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False)
    requester_id: Mapped[str] = mapped_column(String(64), nullable=False)
    start_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    topic: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    modality: Mapped[Modality] = mapped_column(
        Enum(Modality, name="session_modality"),
        default=Modality.PRESENCIAL,
        nullable=False,
    )
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status"),
        default=BookingStatus.PENDING,
        nullable=False,
    )
