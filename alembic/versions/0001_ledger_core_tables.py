"""ledger_core_tables

Revision ID: 0001_ledger_core
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("tier", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("credits_remaining", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("external_subscription_id", sa.String(128), nullable=True),
        sa.Column("renews_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("tier IN ('free','one-time','unlimited')", name="ck_subscriptions_tier"),
        sa.CheckConstraint("status IN ('active','canceled')", name="ck_subscriptions_status"),
        sa.CheckConstraint("credits_remaining >= 0", name="ck_subscriptions_credits_non_negative"),
        sa.UniqueConstraint("user_id", name="subscriptions_user_id_key"),
        sa.UniqueConstraint("external_subscription_id", name="subscriptions_external_subscription_id_key"),
    )
    op.create_index("idx_subscriptions_renews_at", "subscriptions", ["renews_at"])

    op.create_table(
        "weekly_usage_counters",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("count >= 0", name="ck_weekly_usage_counters_count_non_negative"),
    )

    op.create_table(
        "processed_events",
        sa.Column("event_id", sa.String(128), primary_key=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("outcome", sa.String(255), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_processed_events_processed_at", "processed_events", ["processed_at"])
    op.create_index("idx_processed_events_type", "processed_events", ["event_type"])

    op.create_table(
        "daily_check_ins",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("check_in_date", sa.Date(), nullable=False),
        sa.Column("mood", sa.String(32), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "check_in_date", name="uq_daily_check_ins_user_date"),
    )
    op.create_index("idx_daily_check_ins_date", "daily_check_ins", ["check_in_date"])

    op.create_table(
        "credit_reservations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("source", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("job_id", sa.String(128), nullable=True),
        sa.Column("quota_window_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_reason", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("source IN ('CREDITS','WEEKLY_QUOTA')", name="ck_credit_reservations_source"),
        sa.CheckConstraint(
            "status IN ('RESERVED','COMMITTED','REFUNDED')",
            name="ck_credit_reservations_status",
        ),
        sa.CheckConstraint(
            "(source != 'WEEKLY_QUOTA') OR quota_window_start IS NOT NULL",
            name="ck_credit_reservations_quota_window_required",
        ),
        sa.UniqueConstraint("job_id", name="credit_reservations_job_id_key"),
    )
    op.create_index(
        "idx_credit_reservations_user_created",
        "credit_reservations",
        ["user_id", "created_at"],
    )
    op.create_index(
        "idx_credit_reservations_reserved_age",
        "credit_reservations",
        ["created_at"],
        postgresql_where=sa.text("status = 'RESERVED'"),
    )

    op.create_table(
        "content_unlocks",
        sa.Column("item_id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("transaction_id", sa.String(128), nullable=False),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_content_unlocks_user", "content_unlocks", ["user_id"])


def downgrade() -> None:
    op.drop_index("idx_content_unlocks_user", table_name="content_unlocks")
    op.drop_table("content_unlocks")

    op.drop_index("idx_credit_reservations_reserved_age", table_name="credit_reservations")
    op.drop_index("idx_credit_reservations_user_created", table_name="credit_reservations")
    op.drop_table("credit_reservations")

    op.drop_index("idx_daily_check_ins_date", table_name="daily_check_ins")
    op.drop_table("daily_check_ins")

    op.drop_index("idx_processed_events_type", table_name="processed_events")
    op.drop_index("idx_processed_events_processed_at", table_name="processed_events")
    op.drop_table("processed_events")

    op.drop_table("weekly_usage_counters")

    op.drop_index("idx_subscriptions_renews_at", table_name="subscriptions")
    op.drop_table("subscriptions")
