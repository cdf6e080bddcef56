from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from nudge_ledger.api.routes.generation_helpers import build_job_enqueuer, error_content
from nudge_ledger.api.routes.user_models import GenerationRequest, GenerationResponse
from nudge_ledger.economy.entitlements.errors import UserIdRequiredError
from nudge_ledger.economy.jobs.errors import GenerationSubmitError

router = APIRouter(tags=["generations"])
logger = structlog.get_logger(__name__)


@router.post("/users/{user_id}/generations", response_model=GenerationResponse)
async def request_generation(user_id: str, body: GenerationRequest) -> JSONResponse:
    enqueuer = build_job_enqueuer()
    try:
        result = await enqueuer.reserve_and_submit(
            user_id=user_id,
            kind=body.kind,
            payload=body.payload,
            now_utc=datetime.now(timezone.utc),
        )
    except UserIdRequiredError:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=error_content("user_not_found"),
        )
    except GenerationSubmitError:
        logger.warning("generation_request_submit_failed", user_id=user_id, kind=body.kind.value)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=error_content("generation_submit_failed"),
        )

    response = GenerationResponse(
        status=result.status.value,
        denial_reason=result.denial_reason.value if result.denial_reason is not None else None,
        reservation_id=result.reservation_id,
        job_id=result.job_id,
        credits_remaining=result.credits_remaining,
        weekly_usage_count=result.weekly_usage_count,
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=response.model_dump(mode="json"))
