from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from nudge_ledger.core.config import get_settings
from nudge_ledger.economy.entitlements.types import Tier
from nudge_ledger.economy.webhooks.errors import PriceCatalogError


class PriceActionKind(str, Enum):
    SUBSCRIPTION = "subscription"
    CREDITS = "credits"
    PURCHASE = "purchase"
    NO_ACTION = "no_action"


@dataclass(frozen=True, slots=True)
class PriceAction:
    price_id: str
    kind: PriceActionKind
    tier: Tier | None = None
    credits_amount: int = 0


class _PriceActionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: PriceActionKind
    tier: Tier | None = None
    credits_amount: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_kind(self) -> _PriceActionConfig:
        if self.kind == PriceActionKind.NO_ACTION:
            raise ValueError("no_action is implicit for unmapped prices")
        if self.kind == PriceActionKind.CREDITS and self.credits_amount <= 0:
            raise ValueError("credits prices need a positive credits_amount")
        if self.kind == PriceActionKind.SUBSCRIPTION and self.tier == Tier.FREE:
            raise ValueError("subscription prices cannot grant the free tier")
        return self


class PriceCatalog:
    def __init__(self, actions: Mapping[str, PriceAction]) -> None:
        self._actions = MappingProxyType(dict(actions))

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, price_id: object) -> bool:
        return price_id in self._actions

    def lookup(self, price_id: str | None) -> PriceAction:
        if price_id and price_id in self._actions:
            return self._actions[price_id]
        return PriceAction(price_id=price_id or "", kind=PriceActionKind.NO_ACTION)

    def tier_for_prices(self, price_ids: list[str | None]) -> Tier | None:
        for price_id in price_ids:
            action = self.lookup(price_id)
            if action.kind == PriceActionKind.SUBSCRIPTION and action.tier is not None:
                return action.tier
        return None


def build_price_catalog(
    *,
    price_actions_json: str,
    single_purchase_price_id: str = "",
    credit_pack_price_id: str = "",
    credit_pack_amount: int = 20,
) -> PriceCatalog:
    actions: dict[str, PriceAction] = {}

    # Legacy one-off price ids first so an explicit PRICE_ACTIONS entry wins.
    if single_purchase_price_id:
        actions[single_purchase_price_id] = PriceAction(
            price_id=single_purchase_price_id,
            kind=PriceActionKind.PURCHASE,
            tier=Tier.ONE_TIME,
        )
    if credit_pack_price_id:
        if credit_pack_amount <= 0:
            raise PriceCatalogError("credit pack amount must be positive")
        actions[credit_pack_price_id] = PriceAction(
            price_id=credit_pack_price_id,
            kind=PriceActionKind.CREDITS,
            tier=Tier.ONE_TIME,
            credits_amount=credit_pack_amount,
        )

    if price_actions_json.strip():
        try:
            raw = json.loads(price_actions_json)
        except ValueError as exc:
            raise PriceCatalogError("PRICE_ACTIONS is not valid JSON") from exc
        if not isinstance(raw, dict):
            raise PriceCatalogError("PRICE_ACTIONS must be a JSON object keyed by price id")

        for price_id, entry in raw.items():
            if not price_id:
                raise PriceCatalogError("PRICE_ACTIONS contains an empty price id")
            try:
                config = _PriceActionConfig.model_validate(entry)
            except ValidationError as exc:
                raise PriceCatalogError(f"invalid PRICE_ACTIONS entry for {price_id}: {exc}") from exc

            tier = config.tier
            if tier is None and config.kind in {PriceActionKind.CREDITS, PriceActionKind.PURCHASE}:
                tier = Tier.ONE_TIME
            actions[price_id] = PriceAction(
                price_id=price_id,
                kind=config.kind,
                tier=tier,
                credits_amount=config.credits_amount,
            )

    return PriceCatalog(actions)


@lru_cache(maxsize=1)
def get_price_catalog() -> PriceCatalog:
    settings = get_settings()
    return build_price_catalog(
        price_actions_json=settings.price_actions,
        single_purchase_price_id=settings.price_id_single_purchase,
        credit_pack_price_id=settings.price_id_credit_pack,
        credit_pack_amount=settings.credit_pack_amount,
    )
