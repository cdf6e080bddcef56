from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

from nudge_ledger.economy.entitlements.types import SubscriptionStatus, Tier
from nudge_ledger.economy.ports import LedgerStore, SubscriptionRecord
from nudge_ledger.economy.webhooks.catalog import PriceActionKind, PriceCatalog
from nudge_ledger.economy.webhooks.events import (
    CustomData,
    PaymentEvent,
    SubscriptionCanceledEvent,
    SubscriptionCreatedEvent,
    SubscriptionData,
    SubscriptionRenewedEvent,
    SubscriptionUpdatedEvent,
    TransactionCompletedEvent,
    UnhandledEvent,
    parse_payment_event,
)
from nudge_ledger.economy.webhooks.signature import verify_signature

logger = structlog.get_logger(__name__)


class WebhookStatus(str, Enum):
    ACCEPTED = "ACCEPTED"
    DUPLICATE = "DUPLICATE"


@dataclass(slots=True)
class WebhookResult:
    status: WebhookStatus
    event_id: str
    event_type: str
    outcome: str | None


@dataclass(frozen=True, slots=True)
class WebhookPolicy:
    secret: str
    tolerance_seconds: int
    unlimited_tier_credits: int
    refill_additive: bool
    catalog: PriceCatalog

    @classmethod
    def from_settings(cls, settings: Any, *, catalog: PriceCatalog) -> WebhookPolicy:
        return cls(
            secret=settings.payment_webhook_secret,
            tolerance_seconds=settings.payment_webhook_tolerance_seconds,
            unlimited_tier_credits=settings.unlimited_tier_credits,
            refill_additive=settings.credit_refill_mode == "additive",
            catalog=catalog,
        )


def _subscription_status(raw_status: str) -> SubscriptionStatus:
    if raw_status == SubscriptionStatus.CANCELED.value:
        return SubscriptionStatus.CANCELED
    return SubscriptionStatus.ACTIVE


def _custom(data: Any) -> CustomData:
    return data.custom_data or CustomData()


class WebhookProcessor:
    def __init__(self, policy: WebhookPolicy) -> None:
        self.policy = policy

    def verify_and_parse(
        self,
        *,
        raw_body: bytes,
        signature_header: str | None,
        now_utc: datetime,
    ) -> PaymentEvent:
        verify_signature(
            secret=self.policy.secret,
            body=raw_body,
            header=signature_header,
            now_unix=int(now_utc.timestamp()),
            tolerance_seconds=self.policy.tolerance_seconds,
        )
        return parse_payment_event(raw_body)

    async def process(
        self,
        store: LedgerStore,
        *,
        raw_body: bytes,
        signature_header: str | None,
        now_utc: datetime,
    ) -> WebhookResult:
        event = self.verify_and_parse(
            raw_body=raw_body,
            signature_header=signature_header,
            now_utc=now_utc,
        )
        return await self.apply(store, event=event, now_utc=now_utc)

    async def apply(self, store: LedgerStore, *, event: PaymentEvent, now_utc: datetime) -> WebhookResult:
        created = await store.try_record_event(
            event.event_id,
            event_type=event.event_type,
            now_utc=now_utc,
        )
        if not created:
            logger.info(
                "webhook_event_duplicate",
                event_id=event.event_id,
                event_type=event.event_type,
            )
            return WebhookResult(
                status=WebhookStatus.DUPLICATE,
                event_id=event.event_id,
                event_type=event.event_type,
                outcome=None,
            )

        outcome = await self._dispatch(store, event=event, now_utc=now_utc)
        await store.set_event_outcome(event.event_id, outcome=outcome)
        logger.info(
            "webhook_event_processed",
            event_id=event.event_id,
            event_type=event.event_type,
            outcome=outcome,
        )
        return WebhookResult(
            status=WebhookStatus.ACCEPTED,
            event_id=event.event_id,
            event_type=event.event_type,
            outcome=outcome,
        )

    async def _dispatch(self, store: LedgerStore, *, event: PaymentEvent, now_utc: datetime) -> str:
        if isinstance(event, SubscriptionCreatedEvent):
            return await self._on_subscription_created(store, data=event.data, now_utc=now_utc)
        if isinstance(event, SubscriptionUpdatedEvent):
            return await self._on_subscription_updated(store, data=event.data, now_utc=now_utc)
        if isinstance(event, SubscriptionRenewedEvent):
            return await self._refill(
                store,
                external_subscription_id=event.data.id,
                period_end=event.data.next_billed_at,
                now_utc=now_utc,
            )
        if isinstance(event, SubscriptionCanceledEvent):
            return await self._on_subscription_canceled(store, data=event.data, now_utc=now_utc)
        if isinstance(event, TransactionCompletedEvent):
            return await self._on_transaction_completed(store, event=event, now_utc=now_utc)

        assert isinstance(event, UnhandledEvent)
        logger.info("webhook_event_unhandled", event_id=event.event_id, event_type=event.event_type)
        return "unhandled_event"

    def _credits_for_tier(self, tier: Tier) -> int:
        if tier == Tier.UNLIMITED:
            return self.policy.unlimited_tier_credits
        return 0

    def _tier_for(self, data: SubscriptionData) -> Tier | None:
        return _custom(data).tier or self.policy.catalog.tier_for_prices(
            [item.resolved_price_id for item in data.items]
        )

    async def _provision(
        self,
        store: LedgerStore,
        *,
        user_id: str,
        data: SubscriptionData,
        status: SubscriptionStatus,
        now_utc: datetime,
        replace_active: bool = True,
    ) -> SubscriptionRecord | None:
        tier = self._tier_for(data) or Tier.UNLIMITED
        return await store.upsert_subscription(
            user_id=user_id,
            tier=tier.value,
            status=status.value,
            credits_remaining=self._credits_for_tier(tier),
            external_subscription_id=data.id,
            renews_at=data.next_billed_at,
            now_utc=now_utc,
            replace_active=replace_active,
        )

    async def _on_subscription_created(
        self,
        store: LedgerStore,
        *,
        data: SubscriptionData,
        now_utc: datetime,
    ) -> str:
        custom = _custom(data)
        if not custom.user_id:
            logger.warning("webhook_subscription_user_missing", subscription_id=data.id)
            return "user_missing"

        record = await self._provision(
            store,
            user_id=custom.user_id,
            data=data,
            status=SubscriptionStatus.ACTIVE,
            now_utc=now_utc,
        )
        if record is None:
            # An earlier update or cancel for this subscription already created the row.
            logger.info(
                "subscription_already_provisioned",
                user_id=custom.user_id,
                subscription_id=data.id,
            )
            return "subscription_already_provisioned"

        logger.info(
            "subscription_created",
            user_id=record.user_id,
            subscription_id=data.id,
            tier=record.tier,
            credits_remaining=record.credits_remaining,
        )
        return "subscription_created"

    async def _provision_out_of_order(
        self,
        store: LedgerStore,
        *,
        data: SubscriptionData,
        status: SubscriptionStatus,
        now_utc: datetime,
    ) -> SubscriptionRecord | None:
        custom = _custom(data)
        if not custom.user_id:
            logger.warning("webhook_subscription_not_found", subscription_id=data.id)
            return None

        # A late event for an older subscription must not displace the user's active one.
        record = await self._provision(
            store,
            user_id=custom.user_id,
            data=data,
            status=status,
            now_utc=now_utc,
            replace_active=False,
        )
        if record is None:
            logger.warning("webhook_subscription_not_found", subscription_id=data.id)
            return None

        logger.info(
            "subscription_provisioned_before_created",
            user_id=record.user_id,
            subscription_id=data.id,
            status=record.status,
            credits_remaining=record.credits_remaining,
        )
        return record

    async def _on_subscription_updated(
        self,
        store: LedgerStore,
        *,
        data: SubscriptionData,
        now_utc: datetime,
    ) -> str:
        tier = self._tier_for(data)
        status = _subscription_status(data.status)
        updated = await store.update_subscription_by_external_id(
            data.id,
            now_utc=now_utc,
            tier=tier.value if tier is not None else None,
            status=status.value,
        )
        if updated is None:
            provisioned = await self._provision_out_of_order(store, data=data, status=status, now_utc=now_utc)
            return "subscription_created" if provisioned is not None else "subscription_not_found"

        if data.next_billed_at is None:
            return "subscription_updated"

        # A later billing date on an active subscription starts a new period.
        if status == SubscriptionStatus.ACTIVE:
            outcome = await self._refill(
                store,
                external_subscription_id=data.id,
                period_end=data.next_billed_at,
                now_utc=now_utc,
            )
            if outcome == "subscription_renewed":
                return outcome

        await store.update_subscription_by_external_id(
            data.id,
            now_utc=now_utc,
            renews_at=data.next_billed_at,
        )
        return "subscription_updated"

    async def _refill(
        self,
        store: LedgerStore,
        *,
        external_subscription_id: str,
        period_end: datetime | None,
        now_utc: datetime,
    ) -> str:
        if period_end is None:
            logger.warning("webhook_renewal_period_missing", subscription_id=external_subscription_id)
            return "renewal_period_missing"

        refilled = await store.refill_credits(
            external_subscription_id,
            amount=self.policy.unlimited_tier_credits,
            additive=self.policy.refill_additive,
            period_end=period_end,
            now_utc=now_utc,
        )
        if refilled is None:
            logger.info(
                "webhook_refill_skipped",
                subscription_id=external_subscription_id,
                period_end=period_end.isoformat(),
            )
            return "refill_skipped"

        logger.info(
            "subscription_credits_refilled",
            user_id=refilled.user_id,
            subscription_id=external_subscription_id,
            credits_remaining=refilled.credits_remaining,
            period_end=period_end.isoformat(),
            additive=self.policy.refill_additive,
        )
        return "subscription_renewed"

    async def _on_subscription_canceled(
        self,
        store: LedgerStore,
        *,
        data: SubscriptionData,
        now_utc: datetime,
    ) -> str:
        canceled = await store.update_subscription_by_external_id(
            data.id,
            now_utc=now_utc,
            status=SubscriptionStatus.CANCELED.value,
        )
        if canceled is None:
            canceled = await self._provision_out_of_order(
                store,
                data=data,
                status=SubscriptionStatus.CANCELED,
                now_utc=now_utc,
            )
            if canceled is None:
                return "subscription_not_found"

        logger.info(
            "subscription_canceled",
            user_id=canceled.user_id,
            subscription_id=data.id,
            credits_remaining=canceled.credits_remaining,
        )
        return "subscription_canceled"

    async def _on_transaction_completed(
        self,
        store: LedgerStore,
        *,
        event: TransactionCompletedEvent,
        now_utc: datetime,
    ) -> str:
        data = event.data
        custom = _custom(data)
        outcomes: list[str] = []

        if data.is_subscription_renewal:
            assert data.subscription_id is not None
            outcomes.append(
                await self._refill(
                    store,
                    external_subscription_id=data.subscription_id,
                    period_end=data.billing_period_end,
                    now_utc=now_utc,
                )
            )

        for item in data.items:
            action = self.policy.catalog.lookup(item.resolved_price_id)
            if action.kind == PriceActionKind.CREDITS:
                if not custom.user_id:
                    logger.warning("webhook_transaction_user_missing", transaction_id=data.id)
                    outcomes.append("user_missing")
                    continue
                balance = await store.grant_credit_pack(
                    custom.user_id,
                    amount=action.credits_amount * item.quantity,
                    tier=(action.tier or Tier.ONE_TIME).value,
                    now_utc=now_utc,
                )
                logger.info(
                    "credits_added",
                    user_id=custom.user_id,
                    transaction_id=data.id,
                    price_id=action.price_id,
                    credits_remaining=balance,
                )
                outcomes.append("credits_added")
            elif action.kind == PriceActionKind.PURCHASE:
                outcomes.append(await self._unlock_content(store, data_id=data.id, custom=custom, now_utc=now_utc))
            elif action.kind == PriceActionKind.SUBSCRIPTION:
                continue
            else:
                logger.info(
                    "webhook_price_unmapped",
                    transaction_id=data.id,
                    price_id=item.resolved_price_id,
                )
                outcomes.append("no_action")

        if not outcomes:
            return "no_action"
        return ",".join(dict.fromkeys(outcomes))

    async def _unlock_content(
        self,
        store: LedgerStore,
        *,
        data_id: str,
        custom: CustomData,
        now_utc: datetime,
    ) -> str:
        if not custom.item_id:
            logger.warning("webhook_purchase_item_missing", transaction_id=data_id)
            return "item_missing"

        unlocked = await store.try_unlock_content(
            custom.item_id,
            user_id=custom.user_id,
            transaction_id=data_id,
            now_utc=now_utc,
        )
        if not unlocked:
            logger.info("content_already_unlocked", item_id=custom.item_id, transaction_id=data_id)
            return "content_already_unlocked"

        logger.info(
            "content_unlocked",
            item_id=custom.item_id,
            user_id=custom.user_id,
            transaction_id=data_id,
        )
        return "content_unlocked"
