from __future__ import annotations

from datetime import datetime

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from nudge_ledger.db.models.content_unlocks import ContentUnlock


class ContentUnlocksRepo:
    @staticmethod
    async def try_unlock(
        session: AsyncSession,
        *,
        item_id: str,
        user_id: str | None,
        transaction_id: str,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            postgresql_insert(ContentUnlock)
            .values(
                item_id=item_id,
                user_id=user_id,
                transaction_id=transaction_id,
                unlocked_at=now_utc,
            )
            .on_conflict_do_nothing(index_elements=[ContentUnlock.item_id])
            .returning(ContentUnlock.item_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
