from __future__ import annotations

import json
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from nudge_ledger.economy.entitlements.types import Tier
from nudge_ledger.economy.webhooks.errors import WebhookPayloadError

RECURRING_TRANSACTION_ORIGIN = "subscription_recurring"


class CustomData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str | None = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    tier: Tier | None = None
    item_id: str | None = Field(default=None, validation_alias=AliasChoices("songId", "item_id"))


class PriceRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)


class LineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    price: PriceRef | None = None
    price_id: str | None = None
    quantity: int = Field(default=1, ge=1)

    @property
    def resolved_price_id(self) -> str | None:
        if self.price is not None:
            return self.price.id
        return self.price_id


class SubscriptionData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    status: str = "active"
    custom_data: CustomData | None = None
    next_billed_at: datetime | None = None
    items: list[LineItem] = Field(default_factory=list)


class BillingPeriod(BaseModel):
    model_config = ConfigDict(extra="ignore")

    starts_at: datetime | None = None
    ends_at: datetime | None = None


class TransactionData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    origin: str | None = None
    subscription_id: str | None = None
    custom_data: CustomData | None = None
    billing_period: BillingPeriod | None = None
    items: list[LineItem] = Field(default_factory=list)

    @property
    def is_subscription_renewal(self) -> bool:
        return self.origin == RECURRING_TRANSACTION_ORIGIN and bool(self.subscription_id)

    @property
    def billing_period_end(self) -> datetime | None:
        # Matches the subscription's next_billed_at once the renewal is billed.
        if self.billing_period is None:
            return None
        return self.billing_period.ends_at


class _EventBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event_id: str = Field(min_length=1, max_length=128)
    occurred_at: datetime | None = None


class SubscriptionCreatedEvent(_EventBase):
    event_type: Literal["subscription.created"]
    data: SubscriptionData


class SubscriptionUpdatedEvent(_EventBase):
    event_type: Literal["subscription.updated"]
    data: SubscriptionData


class SubscriptionRenewedEvent(_EventBase):
    event_type: Literal["subscription.renewed"]
    data: SubscriptionData


class SubscriptionCanceledEvent(_EventBase):
    event_type: Literal["subscription.canceled"]
    data: SubscriptionData


class TransactionCompletedEvent(_EventBase):
    event_type: Literal["transaction.completed"]
    data: TransactionData


class UnhandledEvent(_EventBase):
    event_type: str = Field(min_length=1, max_length=64)
    data: dict[str, Any] = Field(default_factory=dict)


KnownEvent = Annotated[
    Union[
        SubscriptionCreatedEvent,
        SubscriptionUpdatedEvent,
        SubscriptionRenewedEvent,
        SubscriptionCanceledEvent,
        TransactionCompletedEvent,
    ],
    Field(discriminator="event_type"),
]
PaymentEvent = Union[
    SubscriptionCreatedEvent,
    SubscriptionUpdatedEvent,
    SubscriptionRenewedEvent,
    SubscriptionCanceledEvent,
    TransactionCompletedEvent,
    UnhandledEvent,
]

KNOWN_EVENT_TYPES = frozenset(
    {
        "subscription.created",
        "subscription.updated",
        "subscription.renewed",
        "subscription.canceled",
        "transaction.completed",
    }
)

_known_event_adapter: TypeAdapter[Any] = TypeAdapter(KnownEvent)


def parse_payment_event(raw_body: bytes) -> PaymentEvent:
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, ValueError) as exc:
        raise WebhookPayloadError("body is not valid JSON") from exc

    if not isinstance(payload, dict):
        raise WebhookPayloadError("body must be a JSON object")

    try:
        if payload.get("event_type") in KNOWN_EVENT_TYPES:
            return _known_event_adapter.validate_python(payload)
        return UnhandledEvent.model_validate(payload)
    except ValidationError as exc:
        raise WebhookPayloadError(str(exc)) from exc
