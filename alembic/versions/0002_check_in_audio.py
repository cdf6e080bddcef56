"""check_in_audio

Revision ID: 0002_check_in_audio
Revises: 0001_ledger_core
Create Date: 2026-10-19 15:30:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0002_check_in_audio"
down_revision: str | None = "0001_ledger_core"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.add_column(
        "credit_reservations",
        sa.Column("media_url", sa.String(length=2048), nullable=True),
    )
    op.add_column(
        "daily_check_ins",
        sa.Column("reservation_id", postgresql.UUID(as_uuid=True), nullable=True),
    )
    op.create_index(
        "idx_daily_check_ins_reservation",
        "daily_check_ins",
        ["reservation_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_daily_check_ins_reservation", table_name="daily_check_ins")
    op.drop_column("daily_check_ins", "reservation_id")
    op.drop_column("credit_reservations", "media_url")
