from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Tier(str, Enum):
    FREE = "free"
    ONE_TIME = "one-time"
    UNLIMITED = "unlimited"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"


PAID_TIERS: tuple[Tier, ...] = (Tier.UNLIMITED, Tier.ONE_TIME)


@dataclass(frozen=True, slots=True)
class EntitlementSnapshot:
    user_id: str
    tier: Tier
    status: SubscriptionStatus
    credits_remaining: int
    free_count_this_window: int
    window_start: datetime
    weekly_limit: int
    weekly_limit_reached: bool
    can_perform_gated_action: bool

    @property
    def is_paid(self) -> bool:
        return self.tier in PAID_TIERS
