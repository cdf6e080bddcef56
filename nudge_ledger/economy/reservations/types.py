from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class ReservationState(str, Enum):
    REQUESTED = "REQUESTED"
    RESERVED = "RESERVED"
    COMMITTED = "COMMITTED"
    REFUNDED = "REFUNDED"
    DENIED = "DENIED"


class ReservationSource(str, Enum):
    CREDITS = "CREDITS"
    WEEKLY_QUOTA = "WEEKLY_QUOTA"


class DenialReason(str, Enum):
    NO_CREDITS = "no_credits"
    WEEKLY_LIMIT_REACHED = "weekly_limit_reached"


class RefundReason(str, Enum):
    SUBMIT_FAILED = "submit_failed"
    JOB_FAILED = "job_failed"
    STALE = "stale"


@dataclass(slots=True)
class ReserveResult:
    allowed: bool
    state: ReservationState
    reservation_id: UUID | None
    source: ReservationSource | None
    denial_reason: DenialReason | None
    credits_remaining: int | None
    weekly_usage_count: int | None
    quota_window_start: datetime | None


@dataclass(slots=True)
class ReservationTransitionResult:
    reservation_id: UUID
    user_id: str
    state: ReservationState
    idempotent_replay: bool


@dataclass(slots=True)
class ReservationSweepResult:
    examined: int
    refunded: int = 0
    skipped: int = 0
    errors: int = 0
