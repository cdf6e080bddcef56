from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from nudge_ledger.db.models.processed_events import ProcessedEvent


class ProcessedEventsRepo:
    @staticmethod
    async def try_record(
        session: AsyncSession,
        *,
        event_id: str,
        event_type: str,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            postgresql_insert(ProcessedEvent)
            .values(
                event_id=event_id,
                event_type=event_type,
                outcome="PROCESSING",
                processed_at=now_utc,
            )
            .on_conflict_do_nothing(index_elements=[ProcessedEvent.event_id])
            .returning(ProcessedEvent.event_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def set_outcome(session: AsyncSession, *, event_id: str, outcome: str) -> int:
        stmt = (
            update(ProcessedEvent)
            .where(ProcessedEvent.event_id == event_id)
            .values(outcome=outcome)
            .returning(ProcessedEvent.event_id)
        )
        result = await session.execute(stmt)
        return 1 if result.scalar_one_or_none() is not None else 0
