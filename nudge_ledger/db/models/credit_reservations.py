from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, Index, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from nudge_ledger.db.models.base import Base


class CreditReservation(Base):
    __tablename__ = "credit_reservations"
    __table_args__ = (
        CheckConstraint(
            "source IN ('CREDITS','WEEKLY_QUOTA')",
            name="ck_credit_reservations_source",
        ),
        CheckConstraint(
            "status IN ('RESERVED','COMMITTED','REFUNDED')",
            name="ck_credit_reservations_status",
        ),
        CheckConstraint(
            "(source != 'WEEKLY_QUOTA') OR quota_window_start IS NOT NULL",
            name="ck_credit_reservations_quota_window_required",
        ),
        Index("idx_credit_reservations_user_created", "user_id", "created_at"),
        Index(
            "idx_credit_reservations_reserved_age",
            "created_at",
            postgresql_where=text("status = 'RESERVED'"),
        ),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    job_id: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    quota_window_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refund_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
    media_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
