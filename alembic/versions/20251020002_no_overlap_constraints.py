"""Reject overlapping occupying bookings and reservations at the storage level."""

from __future__ import annotations

from alembic import op

# revision identifiers, used by Alembic.
revision = "20251020002"
down_revision = "20251020001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # half-open ranges so back-to-back sessions do not collide
    op.execute(
        """
        ALTER TABLE bookings
        ADD CONSTRAINT bookings_no_overlap_per_provider
        EXCLUDE USING gist (
            provider_id WITH =,
            tstzrange(start_at, end_at, '[)') WITH &&
        )
        WHERE (status IN ('PENDING', 'CONFIRMED', 'RESCHEDULED'))
        """
    )
    op.execute(
        """
        ALTER TABLE resource_reservations
        ADD CONSTRAINT resource_reservations_no_overlap
        EXCLUDE USING gist (
            resource_id WITH =,
            tstzrange(start_at, end_at, '[)') WITH &&
        )
        WHERE (status = 'CONFIRMED')
        """
    )


def downgrade() -> None:
    op.execute(
        "ALTER TABLE resource_reservations DROP CONSTRAINT IF EXISTS resource_reservations_no_overlap"
    )
    op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS bookings_no_overlap_per_provider")
