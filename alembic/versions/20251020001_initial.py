"""Initial campus booking schema."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20251020001"
down_revision = None
branch_labels = None
depends_on = None


session_modality_enum = postgresql.ENUM(
    "PRESENCIAL", "ONLINE", name="session_modality", create_type=False
)
weekday_enum = postgresql.ENUM(
    "MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY",
    name="weekday",
    create_type=False,
)
booking_status_enum = postgresql.ENUM(
    "PENDING", "CONFIRMED", "CANCELLED", "RESCHEDULED", "COMPLETED",
    name="booking_status",
    create_type=False,
)
resource_kind_enum = postgresql.ENUM(
    "SALA_CALCULO", "CARREL", "SALA_REUNION", "IMPRESORA_3D",
    name="resource_kind",
    create_type=False,
)
reservation_status_enum = postgresql.ENUM(
    "CONFIRMED", "CANCELLED", "COMPLETED", name="reservation_status", create_type=False
)

ALL_ENUMS = (
    session_modality_enum,
    weekday_enum,
    booking_status_enum,
    resource_kind_enum,
    reservation_status_enum,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "availability_templates",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.Column("provider_id", sa.String(length=64), nullable=False),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("modality", session_modality_enum, nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("day_of_week", weekday_enum, nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.PrimaryKeyConstraint("id", name="pk_availability_templates"),
    )
    op.create_index(
        "ix_availability_templates_provider_day",
        "availability_templates",
        ["provider_id", "day_of_week"],
        unique=False,
    )

    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.Column("provider_id", sa.String(length=64), nullable=False),
        sa.Column("requester_id", sa.String(length=64), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("topic", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("modality", session_modality_enum, nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("status", booking_status_enum, nullable=False, server_default="PENDING"),
        sa.PrimaryKeyConstraint("id", name="pk_bookings"),
        sa.CheckConstraint("start_at < end_at", name="ck_bookings_time_range"),
    )
    op.create_index(
        "ix_bookings_provider_start", "bookings", ["provider_id", "start_at"], unique=False
    )
    op.create_index(
        "ix_bookings_requester_start", "bookings", ["requester_id", "start_at"], unique=False
    )

    op.create_table(
        "resources",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("kind", resource_kind_enum, nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.PrimaryKeyConstraint("id", name="pk_resources"),
    )
    op.create_index("ix_resources_name", "resources", ["name"], unique=False)
    op.create_index("ix_resources_kind_active", "resources", ["kind", "active"], unique=False)

    op.create_table(
        "resource_reservations",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.Column("resource_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("requester_id", sa.String(length=64), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_hours", sa.Float(), nullable=False),
        sa.Column(
            "status", reservation_status_enum, nullable=False, server_default="CONFIRMED"
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_resource_reservations"),
        sa.CheckConstraint("start_at < end_at", name="ck_resource_reservations_time_range"),
        sa.ForeignKeyConstraint(
            ["resource_id"],
            ["resources.id"],
            name="fk_resource_reservations_resource_id_resources",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_resource_reservations_resource_start",
        "resource_reservations",
        ["resource_id", "start_at"],
        unique=False,
    )
    op.create_index(
        "ix_resource_reservations_requester_start",
        "resource_reservations",
        ["requester_id", "start_at"],
        unique=False,
    )

    op.create_table(
        "owner_locks",
        *_timestamps(),
        sa.Column("owner_key", sa.String(length=128), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("owner_key", name="pk_owner_locks"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.Column("actor", sa.String(length=255), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("resource", sa.String(length=255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_resource", "audit_logs", ["resource"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_resource", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("owner_locks")
    op.drop_index(
        "ix_resource_reservations_requester_start", table_name="resource_reservations"
    )
    op.drop_index(
        "ix_resource_reservations_resource_start", table_name="resource_reservations"
    )
    op.drop_table("resource_reservations")
    op.drop_index("ix_resources_kind_active", table_name="resources")
    op.drop_index("ix_resources_name", table_name="resources")
    op.drop_table("resources")
    op.drop_index("ix_bookings_requester_start", table_name="bookings")
    op.drop_index("ix_bookings_provider_start", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index(
        "ix_availability_templates_provider_day", table_name="availability_templates"
    )
    op.drop_table("availability_templates")

    bind = op.get_bind()
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)
