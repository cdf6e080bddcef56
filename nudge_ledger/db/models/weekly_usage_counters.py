from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from nudge_ledger.db.models.base import Base


class WeeklyUsageCounter(Base):
    __tablename__ = "weekly_usage_counters"
    __table_args__ = (
        CheckConstraint("count >= 0", name="ck_weekly_usage_counters_count_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False)
    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
