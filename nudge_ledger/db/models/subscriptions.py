from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from nudge_ledger.db.models.base import Base


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint(
            "tier IN ('free','one-time','unlimited')",
            name="ck_subscriptions_tier",
        ),
        CheckConstraint("status IN ('active','canceled')", name="ck_subscriptions_status"),
        CheckConstraint(
            "credits_remaining >= 0",
            name="ck_subscriptions_credits_non_negative",
        ),
        Index("idx_subscriptions_renews_at", "renews_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    tier: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    credits_remaining: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    external_subscription_id: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    renews_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
