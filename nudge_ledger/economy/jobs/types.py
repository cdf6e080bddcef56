from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from nudge_ledger.economy.reservations.types import DenialReason


class GenerationKind(str, Enum):
    AUDIO_NUDGE = "audio_nudge"


class GenerationRequestStatus(str, Enum):
    ACCEPTED = "accepted"
    DENIED = "denied"


@dataclass(frozen=True, slots=True)
class GenerationJobRequest:
    user_id: str
    kind: GenerationKind
    reservation_id: UUID
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class GenerationRequestResult:
    status: GenerationRequestStatus
    denial_reason: DenialReason | None
    reservation_id: UUID | None
    job_id: str | None
    credits_remaining: int | None = None
    weekly_usage_count: int | None = None


class GenerationGateway(Protocol):
    async def submit(self, request: GenerationJobRequest) -> str:
        """Hands the job to the provider and returns its job id; raises GenerationGatewayError."""
        ...
