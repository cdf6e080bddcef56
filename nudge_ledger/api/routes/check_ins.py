from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from nudge_ledger.api.routes.generation_helpers import build_job_enqueuer, error_content
from nudge_ledger.api.routes.user_models import CheckInRequest, CheckInResponse, TodayCheckInResponse
from nudge_ledger.core.config import get_settings
from nudge_ledger.db.ledger_store import ledger_store_scope
from nudge_ledger.economy.check_ins.errors import (
    AlreadyCheckedInError,
    CheckInNotFoundError,
    CheckInValidationError,
)
from nudge_ledger.economy.check_ins.service import CheckInService
from nudge_ledger.economy.entitlements.errors import UserIdRequiredError
from nudge_ledger.economy.jobs.errors import GenerationSubmitError
from nudge_ledger.economy.jobs.types import GenerationKind, GenerationRequestStatus

router = APIRouter(tags=["check-ins"])
logger = structlog.get_logger(__name__)


@router.post("/users/{user_id}/check-ins", response_model=CheckInResponse)
async def create_check_in(user_id: str, body: CheckInRequest) -> JSONResponse:
    settings = get_settings()
    now_utc = datetime.now(timezone.utc)
    try:
        async with ledger_store_scope() as store:
            check_in = await CheckInService.check_in(
                store,
                user_id=user_id,
                mood=body.mood,
                message=body.message,
                now_utc=now_utc,
                timezone_name=settings.check_in_timezone,
            )
    except UserIdRequiredError:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=error_content("user_not_found"),
        )
    except CheckInValidationError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_content("check_in_invalid"),
        )
    except AlreadyCheckedInError:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=error_content("already_checked_in"),
        )

    response = CheckInResponse(
        check_in_id=check_in.check_in_id,
        check_in_date=check_in.check_in_date,
        motivation=check_in.motivation,
        streak=check_in.streak,
        audio_requested=body.prefer_audio,
    )

    if body.prefer_audio:
        # The check-in is already saved; audio problems degrade to a text-only answer.
        enqueuer = build_job_enqueuer()
        try:
            result = await enqueuer.reserve_and_submit(
                user_id=check_in.user_id,
                kind=GenerationKind.AUDIO_NUDGE,
                payload={
                    "check_in_id": check_in.check_in_id,
                    "mood": body.mood,
                    "message": body.message,
                    "motivation_text": check_in.motivation,
                    "day_number": check_in.streak,
                },
                now_utc=now_utc,
                check_in_id=check_in.check_in_id,
            )
        except GenerationSubmitError:
            logger.warning("check_in_audio_submit_failed", user_id=check_in.user_id)
            response.audio_limit_reason = "submit_failed"
        else:
            if result.status == GenerationRequestStatus.DENIED:
                response.audio_limit_reached = True
                response.audio_limit_reason = (
                    result.denial_reason.value if result.denial_reason is not None else None
                )
            else:
                response.reservation_id = result.reservation_id
                response.job_id = result.job_id

    return JSONResponse(status_code=status.HTTP_200_OK, content=response.model_dump(mode="json"))


@router.get("/users/{user_id}/check-ins/today", response_model=TodayCheckInResponse)
async def get_today_check_in(user_id: str) -> JSONResponse:
    settings = get_settings()
    try:
        async with ledger_store_scope() as store:
            today = await CheckInService.get_today(
                store,
                user_id=user_id,
                now_utc=datetime.now(timezone.utc),
                timezone_name=settings.check_in_timezone,
            )
    except UserIdRequiredError:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=error_content("user_not_found"),
        )
    except CheckInNotFoundError:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=error_content("check_in_not_found"),
        )

    response = TodayCheckInResponse(
        check_in_id=today.check_in.id,
        check_in_date=today.check_in.check_in_date,
        mood=today.check_in.mood,
        message=today.check_in.message,
        streak=today.streak,
        reservation_id=today.check_in.reservation_id,
        audio_status=today.audio_status,
        audio_url=today.audio_url,
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=response.model_dump(mode="json"))
