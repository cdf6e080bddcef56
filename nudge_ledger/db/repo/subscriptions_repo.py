from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from nudge_ledger.db.models.subscriptions import Subscription

SUBSCRIPTION_COLUMNS = (
    Subscription.user_id,
    Subscription.tier,
    Subscription.status,
    Subscription.credits_remaining,
    Subscription.external_subscription_id,
    Subscription.renews_at,
)


class SubscriptionsRepo:
    @staticmethod
    async def get_by_user_id(session: AsyncSession, *, user_id: str) -> Row[Any] | None:
        stmt = select(*SUBSCRIPTION_COLUMNS).where(Subscription.user_id == user_id)
        result = await session.execute(stmt)
        return result.one_or_none()

    @staticmethod
    async def get_by_external_id(
        session: AsyncSession,
        *,
        external_subscription_id: str,
    ) -> Row[Any] | None:
        stmt = select(*SUBSCRIPTION_COLUMNS).where(
            Subscription.external_subscription_id == external_subscription_id
        )
        result = await session.execute(stmt)
        return result.one_or_none()

    @staticmethod
    async def upsert_from_subscription_event(
        session: AsyncSession,
        *,
        user_id: str,
        tier: str,
        status: str,
        credits_remaining: int,
        external_subscription_id: str | None,
        renews_at: datetime | None,
        now_utc: datetime,
        replace_active: bool = True,
    ) -> Row[Any] | None:
        stmt = postgresql_insert(Subscription).values(
            user_id=user_id,
            tier=tier,
            status=status,
            credits_remaining=credits_remaining,
            external_subscription_id=external_subscription_id,
            renews_at=renews_at,
            created_at=now_utc,
            updated_at=now_utc,
        )
        # A row already provisioned from this subscription keeps its state.
        replace_condition = Subscription.external_subscription_id.is_distinct_from(
            stmt.excluded.external_subscription_id
        )
        if not replace_active:
            replace_condition = and_(
                replace_condition,
                or_(
                    Subscription.external_subscription_id.is_(None),
                    Subscription.status == "canceled",
                ),
            )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Subscription.user_id],
            set_={
                "tier": stmt.excluded.tier,
                "status": stmt.excluded.status,
                "credits_remaining": stmt.excluded.credits_remaining,
                "external_subscription_id": stmt.excluded.external_subscription_id,
                "renews_at": stmt.excluded.renews_at,
                "updated_at": stmt.excluded.updated_at,
            },
            where=replace_condition,
        ).returning(*SUBSCRIPTION_COLUMNS)
        result = await session.execute(stmt)
        return result.one_or_none()

    @staticmethod
    async def update_by_external_id(
        session: AsyncSession,
        *,
        external_subscription_id: str,
        now_utc: datetime,
        tier: str | None = None,
        status: str | None = None,
        renews_at: datetime | None = None,
    ) -> Row[Any] | None:
        values: dict[str, object] = {"updated_at": now_utc}
        if tier is not None:
            values["tier"] = tier
        if status is not None:
            values["status"] = case(
                (Subscription.status == "canceled", Subscription.status),
                else_=status,
            )
        if renews_at is not None:
            # GREATEST ignores NULL, so an unset renews_at takes the new value.
            values["renews_at"] = func.greatest(Subscription.renews_at, renews_at)

        stmt = (
            update(Subscription)
            .where(Subscription.external_subscription_id == external_subscription_id)
            .values(**values)
            .returning(*SUBSCRIPTION_COLUMNS)
        )
        result = await session.execute(stmt)
        return result.one_or_none()

    @staticmethod
    async def try_debit_credit(
        session: AsyncSession,
        *,
        user_id: str,
        paid_tiers: tuple[str, ...],
        now_utc: datetime,
    ) -> int | None:
        stmt = (
            update(Subscription)
            .where(
                Subscription.user_id == user_id,
                Subscription.tier.in_(paid_tiers),
                Subscription.credits_remaining > 0,
            )
            .values(
                credits_remaining=Subscription.credits_remaining - 1,
                updated_at=now_utc,
            )
            .returning(Subscription.credits_remaining)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def add_credits(
        session: AsyncSession,
        *,
        user_id: str,
        amount: int,
        now_utc: datetime,
    ) -> int | None:
        stmt = (
            update(Subscription)
            .where(Subscription.user_id == user_id)
            .values(
                credits_remaining=Subscription.credits_remaining + amount,
                updated_at=now_utc,
            )
            .returning(Subscription.credits_remaining)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def grant_credit_pack(
        session: AsyncSession,
        *,
        user_id: str,
        amount: int,
        tier: str,
        now_utc: datetime,
    ) -> int:
        stmt = postgresql_insert(Subscription).values(
            user_id=user_id,
            tier=tier,
            status="active",
            credits_remaining=amount,
            created_at=now_utc,
            updated_at=now_utc,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Subscription.user_id],
            set_={
                "credits_remaining": Subscription.credits_remaining + stmt.excluded.credits_remaining,
                "tier": case(
                    (Subscription.tier == "free", stmt.excluded.tier),
                    else_=Subscription.tier,
                ),
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(Subscription.credits_remaining)
        result = await session.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    async def refill_credits(
        session: AsyncSession,
        *,
        external_subscription_id: str,
        amount: int,
        additive: bool,
        period_end: datetime,
        now_utc: datetime,
    ) -> Row[Any] | None:
        if additive:
            refilled = Subscription.credits_remaining + amount
        else:
            refilled = amount

        # Every renewal signal for one period carries the same period end; only the first matches.
        stmt = (
            update(Subscription)
            .where(
                Subscription.external_subscription_id == external_subscription_id,
                Subscription.tier == "unlimited",
                Subscription.status == "active",
                or_(Subscription.renews_at.is_(None), Subscription.renews_at < period_end),
            )
            .values(credits_remaining=refilled, renews_at=period_end, updated_at=now_utc)
            .returning(*SUBSCRIPTION_COLUMNS)
        )
        result = await session.execute(stmt)
        return result.one_or_none()
