from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from nudge_ledger.economy.jobs.types import GenerationKind


class CreditsResponse(BaseModel):
    user_id: str
    tier: str
    status: str
    credits_remaining: int = Field(ge=0)
    weekly_usage_count: int = Field(ge=0)
    weekly_limit_reached: bool
    window_start: datetime
    can_perform_gated_action: bool
    max_free_actions_per_week: int = Field(ge=1)


class GenerationRequest(BaseModel):
    kind: GenerationKind = GenerationKind.AUDIO_NUDGE
    payload: dict[str, Any] = Field(default_factory=dict)


class GenerationResponse(BaseModel):
    status: Literal["accepted", "denied"]
    denial_reason: str | None = None
    reservation_id: UUID | None = None
    job_id: str | None = None
    credits_remaining: int | None = None
    weekly_usage_count: int | None = None


class CheckInRequest(BaseModel):
    mood: str | None = Field(default=None, max_length=32)
    message: str | None = Field(default=None, max_length=2000)
    prefer_audio: bool = False


class CheckInResponse(BaseModel):
    check_in_id: int
    check_in_date: date
    motivation: str
    streak: int = Field(ge=1)
    audio_requested: bool
    audio_limit_reached: bool = False
    audio_limit_reason: str | None = None
    reservation_id: UUID | None = None
    job_id: str | None = None


class TodayCheckInResponse(BaseModel):
    check_in_id: int
    check_in_date: date
    mood: str
    message: str
    streak: int = Field(ge=0)
    reservation_id: UUID | None = None
    audio_status: Literal["pending", "ready", "failed"] | None = None
    audio_url: str | None = None


class GenerationJobResultRequest(BaseModel):
    status: Literal["completed", "failed"]
    media_url: str | None = Field(default=None, max_length=2048)
    # Reservation id sent to the provider with the job; resolves results that
    # arrive before the job id is attached.
    reference_id: UUID | None = None


class GenerationJobResultResponse(BaseModel):
    job_id: str
    reservation_id: UUID
    state: str
    idempotent_replay: bool
