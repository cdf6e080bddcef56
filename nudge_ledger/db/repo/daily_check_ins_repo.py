from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from nudge_ledger.db.models.credit_reservations import CreditReservation
from nudge_ledger.db.models.daily_check_ins import DailyCheckIn


class DailyCheckInsRepo:
    @staticmethod
    async def try_create(
        session: AsyncSession,
        *,
        user_id: str,
        check_in_date: date,
        mood: str,
        message: str,
        now_utc: datetime,
    ) -> int | None:
        stmt = (
            postgresql_insert(DailyCheckIn)
            .values(
                user_id=user_id,
                check_in_date=check_in_date,
                mood=mood,
                message=message,
                created_at=now_utc,
            )
            .on_conflict_do_nothing(constraint="uq_daily_check_ins_user_date")
            .returning(DailyCheckIn.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def link_reservation(
        session: AsyncSession,
        *,
        check_in_id: int,
        reservation_id: UUID,
    ) -> bool:
        stmt = (
            update(DailyCheckIn)
            .where(
                DailyCheckIn.id == check_in_id,
                DailyCheckIn.reservation_id.is_(None),
            )
            .values(reservation_id=reservation_id)
            .returning(DailyCheckIn.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def get_for_day(
        session: AsyncSession,
        *,
        user_id: str,
        check_in_date: date,
    ) -> Row[Any] | None:
        stmt = (
            select(
                DailyCheckIn.id,
                DailyCheckIn.user_id,
                DailyCheckIn.check_in_date,
                DailyCheckIn.mood,
                DailyCheckIn.message,
                DailyCheckIn.reservation_id,
                CreditReservation.status.label("reservation_status"),
                CreditReservation.media_url,
            )
            .outerjoin(CreditReservation, CreditReservation.id == DailyCheckIn.reservation_id)
            .where(
                DailyCheckIn.user_id == user_id,
                DailyCheckIn.check_in_date == check_in_date,
            )
        )
        result = await session.execute(stmt)
        return result.one_or_none()

    @staticmethod
    async def list_dates_since(session: AsyncSession, *, user_id: str, since: date) -> list[date]:
        stmt = (
            select(DailyCheckIn.check_in_date)
            .where(
                DailyCheckIn.user_id == user_id,
                DailyCheckIn.check_in_date >= since,
            )
            .order_by(DailyCheckIn.check_in_date.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
