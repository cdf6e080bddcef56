from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from nudge_ledger.api.routes.generation_helpers import error_content
from nudge_ledger.api.routes.user_models import CreditsResponse
from nudge_ledger.core.config import get_settings
from nudge_ledger.db.ledger_store import ledger_store_scope
from nudge_ledger.economy.entitlements.errors import UserIdRequiredError
from nudge_ledger.economy.entitlements.service import EntitlementService

router = APIRouter(tags=["credits"])


@router.get("/users/{user_id}/credits", response_model=CreditsResponse)
async def get_user_credits(user_id: str) -> JSONResponse:
    settings = get_settings()
    now_utc = datetime.now(timezone.utc)
    try:
        async with ledger_store_scope() as store:
            snapshot = await EntitlementService.resolve(
                store,
                user_id=user_id,
                now_utc=now_utc,
                weekly_limit=settings.free_weekly_gated_actions,
            )
    except UserIdRequiredError:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=error_content("user_not_found"),
        )

    response = CreditsResponse(
        user_id=snapshot.user_id,
        tier=snapshot.tier.value,
        status=snapshot.status.value,
        credits_remaining=snapshot.credits_remaining,
        weekly_usage_count=snapshot.free_count_this_window,
        weekly_limit_reached=snapshot.weekly_limit_reached,
        window_start=snapshot.window_start,
        can_perform_gated_action=snapshot.can_perform_gated_action,
        max_free_actions_per_week=snapshot.weekly_limit,
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=response.model_dump(mode="json"))
