from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from nudge_ledger.db.models.base import Base


class ContentUnlock(Base):
    __tablename__ = "content_unlocks"
    __table_args__ = (Index("idx_content_unlocks_user", "user_id"),)

    item_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transaction_id: Mapped[str] = mapped_column(String(128), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
