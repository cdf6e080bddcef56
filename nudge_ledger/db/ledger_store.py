from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from nudge_ledger.db.models.credit_reservations import CreditReservation
from nudge_ledger.db.repo.content_unlocks_repo import ContentUnlocksRepo
from nudge_ledger.db.repo.credit_reservations_repo import CreditReservationsRepo
from nudge_ledger.db.repo.daily_check_ins_repo import DailyCheckInsRepo
from nudge_ledger.db.repo.processed_events_repo import ProcessedEventsRepo
from nudge_ledger.db.repo.subscriptions_repo import SubscriptionsRepo
from nudge_ledger.db.repo.weekly_usage_repo import WeeklyUsageRepo
from nudge_ledger.db.session import SessionLocal
from nudge_ledger.economy.ports import (
    CheckInRecord,
    ReservationRecord,
    SubscriptionRecord,
    WeeklyCounterRecord,
)


def _subscription_record(row: Row[Any] | None) -> SubscriptionRecord | None:
    if row is None:
        return None
    return SubscriptionRecord(
        user_id=row.user_id,
        tier=row.tier,
        status=row.status,
        credits_remaining=int(row.credits_remaining),
        external_subscription_id=row.external_subscription_id,
        renews_at=row.renews_at,
    )


def _counter_record(row: Row[Any] | None) -> WeeklyCounterRecord | None:
    if row is None:
        return None
    return WeeklyCounterRecord(
        user_id=row.user_id,
        count=int(row.count),
        window_start=row.window_start,
    )


def _reservation_record(model: CreditReservation) -> ReservationRecord:
    return ReservationRecord(
        id=model.id,
        user_id=model.user_id,
        source=model.source,
        status=model.status,
        job_id=model.job_id,
        quota_window_start=model.quota_window_start,
        refund_reason=model.refund_reason,
        created_at=model.created_at,
        updated_at=model.updated_at,
        media_url=model.media_url,
    )


def _check_in_record(row: Row[Any] | None) -> CheckInRecord | None:
    if row is None:
        return None
    return CheckInRecord(
        id=int(row.id),
        user_id=row.user_id,
        check_in_date=row.check_in_date,
        mood=row.mood,
        message=row.message,
        reservation_id=row.reservation_id,
        reservation_status=row.reservation_status,
        media_url=row.media_url,
    )


class SqlLedgerStore:
    """LedgerStore over one AsyncSession; the caller owns the transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_subscription(self, user_id: str) -> SubscriptionRecord | None:
        row = await SubscriptionsRepo.get_by_user_id(self.session, user_id=user_id)
        return _subscription_record(row)

    async def get_subscription_by_external_id(
        self,
        external_subscription_id: str,
    ) -> SubscriptionRecord | None:
        row = await SubscriptionsRepo.get_by_external_id(
            self.session,
            external_subscription_id=external_subscription_id,
        )
        return _subscription_record(row)

    async def upsert_subscription(
        self,
        *,
        user_id: str,
        tier: str,
        status: str,
        credits_remaining: int,
        external_subscription_id: str | None,
        renews_at: datetime | None,
        now_utc: datetime,
        replace_active: bool = True,
    ) -> SubscriptionRecord | None:
        row = await SubscriptionsRepo.upsert_from_subscription_event(
            self.session,
            user_id=user_id,
            tier=tier,
            status=status,
            credits_remaining=credits_remaining,
            external_subscription_id=external_subscription_id,
            renews_at=renews_at,
            now_utc=now_utc,
            replace_active=replace_active,
        )
        return _subscription_record(row)

    async def update_subscription_by_external_id(
        self,
        external_subscription_id: str,
        *,
        now_utc: datetime,
        tier: str | None = None,
        status: str | None = None,
        renews_at: datetime | None = None,
    ) -> SubscriptionRecord | None:
        row = await SubscriptionsRepo.update_by_external_id(
            self.session,
            external_subscription_id=external_subscription_id,
            now_utc=now_utc,
            tier=tier,
            status=status,
            renews_at=renews_at,
        )
        return _subscription_record(row)

    async def try_debit_credit(
        self,
        user_id: str,
        *,
        paid_tiers: tuple[str, ...],
        now_utc: datetime,
    ) -> int | None:
        return await SubscriptionsRepo.try_debit_credit(
            self.session,
            user_id=user_id,
            paid_tiers=paid_tiers,
            now_utc=now_utc,
        )

    async def add_credits(self, user_id: str, *, amount: int, now_utc: datetime) -> int | None:
        return await SubscriptionsRepo.add_credits(
            self.session,
            user_id=user_id,
            amount=amount,
            now_utc=now_utc,
        )

    async def grant_credit_pack(
        self,
        user_id: str,
        *,
        amount: int,
        tier: str,
        now_utc: datetime,
    ) -> int:
        return await SubscriptionsRepo.grant_credit_pack(
            self.session,
            user_id=user_id,
            amount=amount,
            tier=tier,
            now_utc=now_utc,
        )

    async def refill_credits(
        self,
        external_subscription_id: str,
        *,
        amount: int,
        additive: bool,
        period_end: datetime,
        now_utc: datetime,
    ) -> SubscriptionRecord | None:
        row = await SubscriptionsRepo.refill_credits(
            self.session,
            external_subscription_id=external_subscription_id,
            amount=amount,
            additive=additive,
            period_end=period_end,
            now_utc=now_utc,
        )
        return _subscription_record(row)

    async def get_weekly_counter(self, user_id: str) -> WeeklyCounterRecord | None:
        row = await WeeklyUsageRepo.get(self.session, user_id=user_id)
        return _counter_record(row)

    async def try_consume_weekly_slot(
        self,
        user_id: str,
        *,
        cap: int,
        window: timedelta,
        now_utc: datetime,
    ) -> WeeklyCounterRecord | None:
        row = await WeeklyUsageRepo.try_consume(
            self.session,
            user_id=user_id,
            cap=cap,
            window=window,
            now_utc=now_utc,
        )
        return _counter_record(row)

    async def release_weekly_slot(
        self,
        user_id: str,
        *,
        window_start: datetime,
        now_utc: datetime,
    ) -> bool:
        return await WeeklyUsageRepo.release(
            self.session,
            user_id=user_id,
            window_start=window_start,
            now_utc=now_utc,
        )

    async def reset_expired_weekly_window(
        self,
        user_id: str,
        *,
        window: timedelta,
        now_utc: datetime,
    ) -> WeeklyCounterRecord | None:
        row = await WeeklyUsageRepo.reset_if_expired(
            self.session,
            user_id=user_id,
            window=window,
            now_utc=now_utc,
        )
        return _counter_record(row)

    async def try_record_event(self, event_id: str, *, event_type: str, now_utc: datetime) -> bool:
        return await ProcessedEventsRepo.try_record(
            self.session,
            event_id=event_id,
            event_type=event_type,
            now_utc=now_utc,
        )

    async def set_event_outcome(self, event_id: str, *, outcome: str) -> None:
        await ProcessedEventsRepo.set_outcome(self.session, event_id=event_id, outcome=outcome)

    async def try_create_check_in(
        self,
        user_id: str,
        *,
        check_in_date: date,
        mood: str,
        message: str,
        now_utc: datetime,
    ) -> int | None:
        return await DailyCheckInsRepo.try_create(
            self.session,
            user_id=user_id,
            check_in_date=check_in_date,
            mood=mood,
            message=message,
            now_utc=now_utc,
        )

    async def link_check_in_reservation(self, check_in_id: int, *, reservation_id: UUID) -> bool:
        return await DailyCheckInsRepo.link_reservation(
            self.session,
            check_in_id=check_in_id,
            reservation_id=reservation_id,
        )

    async def get_check_in(self, user_id: str, *, check_in_date: date) -> CheckInRecord | None:
        row = await DailyCheckInsRepo.get_for_day(
            self.session,
            user_id=user_id,
            check_in_date=check_in_date,
        )
        return _check_in_record(row)

    async def list_check_in_dates(self, user_id: str, *, since: date) -> list[date]:
        return await DailyCheckInsRepo.list_dates_since(self.session, user_id=user_id, since=since)

    async def try_unlock_content(
        self,
        item_id: str,
        *,
        user_id: str | None,
        transaction_id: str,
        now_utc: datetime,
    ) -> bool:
        return await ContentUnlocksRepo.try_unlock(
            self.session,
            item_id=item_id,
            user_id=user_id,
            transaction_id=transaction_id,
            now_utc=now_utc,
        )

    async def create_reservation(
        self,
        *,
        reservation_id: UUID,
        user_id: str,
        source: str,
        quota_window_start: datetime | None,
        now_utc: datetime,
    ) -> ReservationRecord:
        model = await CreditReservationsRepo.create(
            self.session,
            reservation_id=reservation_id,
            user_id=user_id,
            source=source,
            quota_window_start=quota_window_start,
            now_utc=now_utc,
        )
        return _reservation_record(model)

    async def get_reservation(self, reservation_id: UUID) -> ReservationRecord | None:
        model = await CreditReservationsRepo.get_by_id(self.session, reservation_id=reservation_id)
        return _reservation_record(model) if model is not None else None

    async def get_reservation_by_job_id(self, job_id: str) -> ReservationRecord | None:
        model = await CreditReservationsRepo.get_by_job_id(self.session, job_id=job_id)
        return _reservation_record(model) if model is not None else None

    async def transition_reservation(
        self,
        reservation_id: UUID,
        *,
        to_status: str,
        now_utc: datetime,
        refund_reason: str | None = None,
        media_url: str | None = None,
    ) -> ReservationRecord | None:
        model = await CreditReservationsRepo.try_transition(
            self.session,
            reservation_id=reservation_id,
            from_status="RESERVED",
            to_status=to_status,
            now_utc=now_utc,
            refund_reason=refund_reason,
            media_url=media_url,
        )
        return _reservation_record(model) if model is not None else None

    async def attach_job_id(self, reservation_id: UUID, *, job_id: str, now_utc: datetime) -> bool:
        return await CreditReservationsRepo.attach_job(
            self.session,
            reservation_id=reservation_id,
            job_id=job_id,
            now_utc=now_utc,
        )

    async def list_stale_reservations(
        self,
        *,
        older_than_utc: datetime,
        limit: int,
    ) -> list[ReservationRecord]:
        models = await CreditReservationsRepo.list_stale_reserved(
            self.session,
            older_than_utc=older_than_utc,
            limit=limit,
        )
        return [_reservation_record(model) for model in models]


@asynccontextmanager
async def ledger_store_scope() -> AsyncIterator[SqlLedgerStore]:
    async with SessionLocal.begin() as session:
        yield SqlLedgerStore(session)
