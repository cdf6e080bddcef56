from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import case, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from nudge_ledger.db.models.weekly_usage_counters import WeeklyUsageCounter

COUNTER_COLUMNS = (
    WeeklyUsageCounter.user_id,
    WeeklyUsageCounter.count,
    WeeklyUsageCounter.window_start,
)


class WeeklyUsageRepo:
    @staticmethod
    async def get(session: AsyncSession, *, user_id: str) -> Row[Any] | None:
        stmt = select(*COUNTER_COLUMNS).where(WeeklyUsageCounter.user_id == user_id)
        result = await session.execute(stmt)
        return result.one_or_none()

    @staticmethod
    async def try_consume(
        session: AsyncSession,
        *,
        user_id: str,
        cap: int,
        window: timedelta,
        now_utc: datetime,
    ) -> Row[Any] | None:
        # The window reset and the increment share one statement so a reset
        # can never race with a concurrent consume.
        expired = WeeklyUsageCounter.window_start <= now_utc - window
        stmt = postgresql_insert(WeeklyUsageCounter).values(
            user_id=user_id,
            count=1,
            window_start=now_utc,
            updated_at=now_utc,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[WeeklyUsageCounter.user_id],
            set_={
                "count": case((expired, 1), else_=WeeklyUsageCounter.count + 1),
                "window_start": case(
                    (expired, stmt.excluded.window_start),
                    else_=WeeklyUsageCounter.window_start,
                ),
                "updated_at": stmt.excluded.updated_at,
            },
            where=or_(expired, WeeklyUsageCounter.count < cap),
        ).returning(*COUNTER_COLUMNS)
        result = await session.execute(stmt)
        return result.one_or_none()

    @staticmethod
    async def release(
        session: AsyncSession,
        *,
        user_id: str,
        window_start: datetime,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(WeeklyUsageCounter)
            .where(
                WeeklyUsageCounter.user_id == user_id,
                WeeklyUsageCounter.window_start == window_start,
                WeeklyUsageCounter.count > 0,
            )
            .values(count=WeeklyUsageCounter.count - 1, updated_at=now_utc)
            .returning(WeeklyUsageCounter.user_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def reset_if_expired(
        session: AsyncSession,
        *,
        user_id: str,
        window: timedelta,
        now_utc: datetime,
    ) -> Row[Any] | None:
        stmt = (
            update(WeeklyUsageCounter)
            .where(
                WeeklyUsageCounter.user_id == user_id,
                WeeklyUsageCounter.window_start <= now_utc - window,
            )
            .values(count=0, window_start=now_utc, updated_at=now_utc)
            .returning(*COUNTER_COLUMNS)
        )
        result = await session.execute(stmt)
        return result.one_or_none()
