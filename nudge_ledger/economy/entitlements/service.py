from __future__ import annotations

from datetime import datetime

import structlog

from nudge_ledger.economy.entitlements.errors import UserIdRequiredError
from nudge_ledger.economy.entitlements.types import (
    PAID_TIERS,
    EntitlementSnapshot,
    SubscriptionStatus,
    Tier,
)
from nudge_ledger.economy.ports import LedgerStore
from nudge_ledger.economy.quota.constants import WEEKLY_WINDOW
from nudge_ledger.economy.quota.window import is_weekly_limit_reached, project_weekly_window

logger = structlog.get_logger(__name__)


def require_user_id(user_id: str | None) -> str:
    normalized = (user_id or "").strip()
    if not normalized:
        raise UserIdRequiredError
    return normalized


class EntitlementService:
    @staticmethod
    async def resolve(
        store: LedgerStore,
        *,
        user_id: str | None,
        now_utc: datetime,
        weekly_limit: int,
        reconcile: bool = False,
    ) -> EntitlementSnapshot:
        resolved_user_id = require_user_id(user_id)

        subscription = await store.get_subscription(resolved_user_id)
        if subscription is None:
            tier = Tier.FREE
            status = SubscriptionStatus.ACTIVE
            credits_remaining = 0
        else:
            tier = Tier(subscription.tier)
            status = SubscriptionStatus(subscription.status)
            credits_remaining = subscription.credits_remaining

        counter = await store.get_weekly_counter(resolved_user_id)
        projected = project_weekly_window(
            counter.count if counter is not None else 0,
            counter.window_start if counter is not None else None,
            now_utc,
            window=WEEKLY_WINDOW,
        )

        window_start = projected.window_start
        if reconcile and projected.was_reset:
            reset_counter = await store.reset_expired_weekly_window(
                resolved_user_id,
                window=WEEKLY_WINDOW,
                now_utc=now_utc,
            )
            if reset_counter is not None:
                window_start = reset_counter.window_start
                logger.info(
                    "weekly_window_reset",
                    user_id=resolved_user_id,
                    window_start=window_start.isoformat(),
                )

        limit_reached = is_weekly_limit_reached(projected.count, cap=weekly_limit)
        if tier in PAID_TIERS:
            can_perform = credits_remaining > 0
        else:
            can_perform = not limit_reached

        return EntitlementSnapshot(
            user_id=resolved_user_id,
            tier=tier,
            status=status,
            credits_remaining=credits_remaining,
            free_count_this_window=projected.count,
            window_start=window_start,
            weekly_limit=weekly_limit,
            weekly_limit_reached=limit_reached,
            can_perform_gated_action=can_perform,
        )
