from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nudge_ledger.db.models.credit_reservations import CreditReservation


class CreditReservationsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        reservation_id: UUID,
        user_id: str,
        source: str,
        quota_window_start: datetime | None,
        now_utc: datetime,
    ) -> CreditReservation:
        reservation = CreditReservation(
            id=reservation_id,
            user_id=user_id,
            source=source,
            status="RESERVED",
            quota_window_start=quota_window_start,
            created_at=now_utc,
            updated_at=now_utc,
        )
        session.add(reservation)
        await session.flush()
        return reservation

    @staticmethod
    async def get_by_id(session: AsyncSession, *, reservation_id: UUID) -> CreditReservation | None:
        return await session.get(CreditReservation, reservation_id)

    @staticmethod
    async def get_by_job_id(session: AsyncSession, *, job_id: str) -> CreditReservation | None:
        stmt = select(CreditReservation).where(CreditReservation.job_id == job_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def try_transition(
        session: AsyncSession,
        *,
        reservation_id: UUID,
        from_status: str,
        to_status: str,
        now_utc: datetime,
        refund_reason: str | None = None,
        media_url: str | None = None,
    ) -> CreditReservation | None:
        stmt = (
            update(CreditReservation)
            .where(
                CreditReservation.id == reservation_id,
                CreditReservation.status == from_status,
            )
            .values(
                status=to_status,
                refund_reason=refund_reason,
                media_url=media_url,
                updated_at=now_utc,
            )
            .returning(CreditReservation)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def attach_job(
        session: AsyncSession,
        *,
        reservation_id: UUID,
        job_id: str,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(CreditReservation)
            .where(
                CreditReservation.id == reservation_id,
                CreditReservation.job_id.is_(None),
            )
            .values(job_id=job_id, updated_at=now_utc)
            .returning(CreditReservation.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_stale_reserved(
        session: AsyncSession,
        *,
        older_than_utc: datetime,
        limit: int,
    ) -> list[CreditReservation]:
        stmt = (
            select(CreditReservation)
            .where(
                CreditReservation.status == "RESERVED",
                CreditReservation.created_at < older_than_utc,
            )
            .order_by(CreditReservation.created_at.asc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
