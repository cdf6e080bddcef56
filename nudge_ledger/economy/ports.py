"""Persistence port for the credit ledger.

Every mutating method maps to exactly one atomic storage statement
(conditional update or insert-or-noop). Implementations carry no business
rules; callers decide what the returned rows mean.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Protocol
from uuid import UUID


@dataclass(frozen=True, slots=True)
class SubscriptionRecord:
    user_id: str
    tier: str
    status: str
    credits_remaining: int
    external_subscription_id: str | None
    renews_at: datetime | None


@dataclass(frozen=True, slots=True)
class WeeklyCounterRecord:
    user_id: str
    count: int
    window_start: datetime


@dataclass(frozen=True, slots=True)
class ReservationRecord:
    id: UUID
    user_id: str
    source: str
    status: str
    job_id: str | None
    quota_window_start: datetime | None
    refund_reason: str | None
    created_at: datetime
    updated_at: datetime
    media_url: str | None = None


@dataclass(frozen=True, slots=True)
class CheckInRecord:
    id: int
    user_id: str
    check_in_date: date
    mood: str
    message: str
    reservation_id: UUID | None
    reservation_status: str | None
    media_url: str | None


class LedgerStore(Protocol):
    async def get_subscription(self, user_id: str) -> SubscriptionRecord | None: ...

    async def get_subscription_by_external_id(
        self,
        external_subscription_id: str,
    ) -> SubscriptionRecord | None: ...

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
        """Creates or replaces the user's row; None when the row already carries this external id.

        With ``replace_active=False`` a row linked to another, still active
        subscription is left alone as well.
        """
        ...

    async def update_subscription_by_external_id(
        self,
        external_subscription_id: str,
        *,
        now_utc: datetime,
        tier: str | None = None,
        status: str | None = None,
        renews_at: datetime | None = None,
    ) -> SubscriptionRecord | None:
        """A canceled row stays canceled and ``renews_at`` only moves forward."""
        ...

    async def try_debit_credit(
        self,
        user_id: str,
        *,
        paid_tiers: tuple[str, ...],
        now_utc: datetime,
    ) -> int | None:
        """Decrements by one only when the balance is positive; returns the new balance."""
        ...

    async def add_credits(self, user_id: str, *, amount: int, now_utc: datetime) -> int | None: ...

    async def grant_credit_pack(
        self,
        user_id: str,
        *,
        amount: int,
        tier: str,
        now_utc: datetime,
    ) -> int: ...

    async def refill_credits(
        self,
        external_subscription_id: str,
        *,
        amount: int,
        additive: bool,
        period_end: datetime,
        now_utc: datetime,
    ) -> SubscriptionRecord | None:
        """Refills an active unlimited row once per billing period, moving ``renews_at`` to ``period_end``."""
        ...

    async def get_weekly_counter(self, user_id: str) -> WeeklyCounterRecord | None: ...

    async def try_consume_weekly_slot(
        self,
        user_id: str,
        *,
        cap: int,
        window: timedelta,
        now_utc: datetime,
    ) -> WeeklyCounterRecord | None:
        """Resets an expired window and increments in one step; None when the cap is reached."""
        ...

    async def release_weekly_slot(
        self,
        user_id: str,
        *,
        window_start: datetime,
        now_utc: datetime,
    ) -> bool: ...

    async def reset_expired_weekly_window(
        self,
        user_id: str,
        *,
        window: timedelta,
        now_utc: datetime,
    ) -> WeeklyCounterRecord | None: ...

    async def try_record_event(self, event_id: str, *, event_type: str, now_utc: datetime) -> bool:
        """Insert-or-noop on the event id; False means the event was already processed."""
        ...

    async def set_event_outcome(self, event_id: str, *, outcome: str) -> None: ...

    async def try_create_check_in(
        self,
        user_id: str,
        *,
        check_in_date: date,
        mood: str,
        message: str,
        now_utc: datetime,
    ) -> int | None: ...

    async def link_check_in_reservation(self, check_in_id: int, *, reservation_id: UUID) -> bool:
        """Links the audio reservation once; False when the check-in already has one."""
        ...

    async def get_check_in(self, user_id: str, *, check_in_date: date) -> CheckInRecord | None: ...

    async def list_check_in_dates(self, user_id: str, *, since: date) -> list[date]: ...

    async def try_unlock_content(
        self,
        item_id: str,
        *,
        user_id: str | None,
        transaction_id: str,
        now_utc: datetime,
    ) -> bool: ...

    async def create_reservation(
        self,
        *,
        reservation_id: UUID,
        user_id: str,
        source: str,
        quota_window_start: datetime | None,
        now_utc: datetime,
    ) -> ReservationRecord: ...

    async def get_reservation(self, reservation_id: UUID) -> ReservationRecord | None: ...

    async def get_reservation_by_job_id(self, job_id: str) -> ReservationRecord | None: ...

    async def transition_reservation(
        self,
        reservation_id: UUID,
        *,
        to_status: str,
        now_utc: datetime,
        refund_reason: str | None = None,
        media_url: str | None = None,
    ) -> ReservationRecord | None:
        """Moves a RESERVED reservation to ``to_status``; None when it is no longer RESERVED."""
        ...

    async def attach_job_id(self, reservation_id: UUID, *, job_id: str, now_utc: datetime) -> bool: ...

    async def list_stale_reservations(
        self,
        *,
        older_than_utc: datetime,
        limit: int,
    ) -> list[ReservationRecord]: ...


StoreScope = Callable[[], AbstractAsyncContextManager[LedgerStore]]
