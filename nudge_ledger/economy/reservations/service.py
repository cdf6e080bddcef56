from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

import structlog

from nudge_ledger.economy.entitlements.service import require_user_id
from nudge_ledger.economy.entitlements.types import PAID_TIERS, Tier
from nudge_ledger.economy.ports import LedgerStore, ReservationRecord, StoreScope
from nudge_ledger.economy.quota.constants import WEEKLY_WINDOW
from nudge_ledger.economy.reservations.errors import ReservationNotFoundError, ReservationStateError
from nudge_ledger.economy.reservations.types import (
    DenialReason,
    RefundReason,
    ReservationSource,
    ReservationState,
    ReservationSweepResult,
    ReservationTransitionResult,
    ReserveResult,
)

logger = structlog.get_logger(__name__)

PAID_TIER_VALUES = tuple(tier.value for tier in PAID_TIERS)


def _denied(reason: DenialReason) -> ReserveResult:
    return ReserveResult(
        allowed=False,
        state=ReservationState.DENIED,
        reservation_id=None,
        source=None,
        denial_reason=reason,
        credits_remaining=None,
        weekly_usage_count=None,
        quota_window_start=None,
    )


class ReservationService:
    @staticmethod
    async def reserve(
        store: LedgerStore,
        *,
        user_id: str | None,
        now_utc: datetime,
        weekly_limit: int,
    ) -> ReserveResult:
        resolved_user_id = require_user_id(user_id)
        subscription = await store.get_subscription(resolved_user_id)
        tier = Tier(subscription.tier) if subscription is not None else Tier.FREE

        credits_remaining: int | None = None
        weekly_usage_count: int | None = None
        quota_window_start: datetime | None = None

        if tier in PAID_TIERS:
            credits_remaining = await store.try_debit_credit(
                resolved_user_id,
                paid_tiers=PAID_TIER_VALUES,
                now_utc=now_utc,
            )
            if credits_remaining is None:
                logger.info("reservation_denied", user_id=resolved_user_id, reason=DenialReason.NO_CREDITS.value)
                return _denied(DenialReason.NO_CREDITS)
            source = ReservationSource.CREDITS
        else:
            counter = await store.try_consume_weekly_slot(
                resolved_user_id,
                cap=weekly_limit,
                window=WEEKLY_WINDOW,
                now_utc=now_utc,
            )
            if counter is None:
                logger.info(
                    "reservation_denied",
                    user_id=resolved_user_id,
                    reason=DenialReason.WEEKLY_LIMIT_REACHED.value,
                )
                return _denied(DenialReason.WEEKLY_LIMIT_REACHED)
            source = ReservationSource.WEEKLY_QUOTA
            weekly_usage_count = counter.count
            quota_window_start = counter.window_start

        reservation = await store.create_reservation(
            reservation_id=uuid4(),
            user_id=resolved_user_id,
            source=source.value,
            quota_window_start=quota_window_start,
            now_utc=now_utc,
        )
        logger.info(
            "reservation_created",
            user_id=resolved_user_id,
            reservation_id=str(reservation.id),
            source=source.value,
            credits_remaining=credits_remaining,
            weekly_usage_count=weekly_usage_count,
        )
        return ReserveResult(
            allowed=True,
            state=ReservationState.RESERVED,
            reservation_id=reservation.id,
            source=source,
            denial_reason=None,
            credits_remaining=credits_remaining,
            weekly_usage_count=weekly_usage_count,
            quota_window_start=quota_window_start,
        )

    @staticmethod
    async def _get_existing(store: LedgerStore, reservation_id: UUID) -> ReservationRecord:
        existing = await store.get_reservation(reservation_id)
        if existing is None:
            raise ReservationNotFoundError
        return existing

    @staticmethod
    async def commit(
        store: LedgerStore,
        *,
        reservation_id: UUID,
        now_utc: datetime,
        media_url: str | None = None,
    ) -> ReservationTransitionResult:
        committed = await store.transition_reservation(
            reservation_id,
            to_status=ReservationState.COMMITTED.value,
            now_utc=now_utc,
            media_url=media_url,
        )
        if committed is not None:
            logger.info(
                "reservation_committed",
                reservation_id=str(reservation_id),
                user_id=committed.user_id,
            )
            return ReservationTransitionResult(
                reservation_id=reservation_id,
                user_id=committed.user_id,
                state=ReservationState.COMMITTED,
                idempotent_replay=False,
            )

        existing = await ReservationService._get_existing(store, reservation_id)
        if existing.status == ReservationState.COMMITTED.value:
            return ReservationTransitionResult(
                reservation_id=reservation_id,
                user_id=existing.user_id,
                state=ReservationState.COMMITTED,
                idempotent_replay=True,
            )

        logger.warning(
            "reservation_commit_rejected",
            reservation_id=str(reservation_id),
            user_id=existing.user_id,
            status=existing.status,
            refund_reason=existing.refund_reason,
        )
        raise ReservationStateError

    @staticmethod
    async def refund(
        store: LedgerStore,
        *,
        reservation_id: UUID,
        reason: RefundReason,
        now_utc: datetime,
    ) -> ReservationTransitionResult:
        refunded = await store.transition_reservation(
            reservation_id,
            to_status=ReservationState.REFUNDED.value,
            now_utc=now_utc,
            refund_reason=reason.value,
        )
        if refunded is None:
            existing = await ReservationService._get_existing(store, reservation_id)
            return ReservationTransitionResult(
                reservation_id=reservation_id,
                user_id=existing.user_id,
                state=ReservationState(existing.status),
                idempotent_replay=True,
            )

        # Only the caller that won the RESERVED -> REFUNDED transition reverses the effect.
        if refunded.source == ReservationSource.CREDITS.value:
            await store.add_credits(refunded.user_id, amount=1, now_utc=now_utc)
            restored = True
        else:
            assert refunded.quota_window_start is not None
            restored = await store.release_weekly_slot(
                refunded.user_id,
                window_start=refunded.quota_window_start,
                now_utc=now_utc,
            )

        logger.info(
            "reservation_refunded",
            reservation_id=str(reservation_id),
            user_id=refunded.user_id,
            source=refunded.source,
            reason=reason.value,
            restored=restored,
        )
        return ReservationTransitionResult(
            reservation_id=reservation_id,
            user_id=refunded.user_id,
            state=ReservationState.REFUNDED,
            idempotent_replay=False,
        )

    @staticmethod
    async def sweep_stale(
        store_scope: StoreScope,
        *,
        older_than_utc: datetime,
        now_utc: datetime,
        limit: int = 100,
    ) -> ReservationSweepResult:
        async with store_scope() as store:
            stale = await store.list_stale_reservations(older_than_utc=older_than_utc, limit=limit)

        result = ReservationSweepResult(examined=len(stale))
        # One transaction per reservation so a single failure does not roll back the batch.
        for reservation in stale:
            try:
                async with store_scope() as store:
                    refund = await ReservationService.refund(
                        store,
                        reservation_id=reservation.id,
                        reason=RefundReason.STALE,
                        now_utc=now_utc,
                    )
            except Exception:
                result.errors += 1
                logger.exception("stale_reservation_refund_error", reservation_id=str(reservation.id))
                continue

            if refund.idempotent_replay:
                result.skipped += 1
            else:
                result.refunded += 1
        return result
