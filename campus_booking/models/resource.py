from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from campus_booking.models.base import Base, TimestampMixin, UTCDateTime


class ResourceKind(str, enum.Enum):
    """Kinds of shared physical resources that can be reserved."""

    SALA_CALCULO = "sala_calculo"
    CARREL = "carrel"
    SALA_REUNION = "sala_reunion"
    IMPRESORA_3D = "impresora_3d"


class ReservationStatus(str, enum.Enum):
    """Possible statuses for a resource reservation."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Resource(Base, TimestampMixin):
    """Room, carrel or device that users reserve by the hour."""

    __tablename__ = "resources"
    __table_args__ = (Index("ix_resources_kind_active", "kind", "active"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    kind: Mapped[ResourceKind] = mapped_column(
        Enum(ResourceKind, name="resource_kind"), nullable=False
    )
    capacity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class ResourceReservation(Base, TimestampMixin):
    """Single-party hold on a resource for a contiguous window."""

    __tablename__ = "resource_reservations"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="time_range"),
        Index("ix_resource_reservations_resource_start", "resource_id", "start_at"),
        Index("ix_resource_reservations_requester_start", "requester_id", "start_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    resource_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("resources.id", ondelete="CASCADE"), nullable=False
    )
    requester_id: Mapped[str] = mapped_column(String(64), nullable=False)
    start_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    duration_hours: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(ReservationStatus, name="reservation_status"),
        default=ReservationStatus.CONFIRMED,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
