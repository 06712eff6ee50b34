from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from campus_booking.models.base import Base, TimestampMixin


class OwnerLock(Base, TimestampMixin):
    """Row used to serialise conflict checks per provider or resource."""

    __tablename__ = "owner_locks"

    owner_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
