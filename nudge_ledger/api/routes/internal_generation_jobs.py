from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from nudge_ledger.api.routes.generation_helpers import build_job_enqueuer, error_content
from nudge_ledger.api.routes.user_models import GenerationJobResultRequest, GenerationJobResultResponse
from nudge_ledger.core.config import get_settings
from nudge_ledger.economy.jobs.errors import GenerationJobNotFoundError
from nudge_ledger.economy.reservations.errors import ReservationStateError
from nudge_ledger.services.internal_auth import is_internal_request_authenticated

router = APIRouter(tags=["internal-generation-jobs"])
logger = structlog.get_logger(__name__)


@router.post(
    "/internal/generation-jobs/{job_id}/result",
    response_model=GenerationJobResultResponse,
)
async def report_generation_job_result(
    job_id: str,
    body: GenerationJobResultRequest,
    request: Request,
) -> JSONResponse:
    settings = get_settings()
    if not is_internal_request_authenticated(request, expected_token=settings.internal_api_token):
        logger.warning("internal_generation_jobs_auth_failed", job_id=job_id)
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content=error_content("E_FORBIDDEN"),
        )

    enqueuer = build_job_enqueuer()
    now_utc = datetime.now(timezone.utc)
    try:
        if body.status == "completed":
            result = await enqueuer.report_completed(
                job_id=job_id,
                now_utc=now_utc,
                reference_id=body.reference_id,
                media_url=body.media_url,
            )
        else:
            result = await enqueuer.report_failed(
                job_id=job_id,
                now_utc=now_utc,
                reference_id=body.reference_id,
            )
    except GenerationJobNotFoundError:
        logger.warning(
            "generation_job_result_unmatched",
            job_id=job_id,
            reference_id=str(body.reference_id) if body.reference_id is not None else None,
        )
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=error_content("job_not_found"),
        )
    except ReservationStateError:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=error_content("reservation_already_refunded"),
        )

    logger.info(
        "generation_job_result_recorded",
        job_id=job_id,
        job_status=body.status,
        reservation_id=str(result.reservation_id),
        state=result.state.value,
        idempotent_replay=result.idempotent_replay,
        has_media_url=body.media_url is not None,
    )
    response = GenerationJobResultResponse(
        job_id=job_id,
        reservation_id=result.reservation_id,
        state=result.state.value,
        idempotent_replay=result.idempotent_replay,
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=response.model_dump(mode="json"))
