from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from nudge_ledger.core.config import get_settings
from nudge_ledger.db.ledger_store import ledger_store_scope
from nudge_ledger.economy.webhooks.catalog import get_price_catalog
from nudge_ledger.economy.webhooks.errors import WebhookPayloadError, WebhookSignatureError
from nudge_ledger.economy.webhooks.service import (
    WebhookPolicy,
    WebhookProcessor,
    WebhookStatus,
)

router = APIRouter(tags=["payments"])
logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "Paddle-Signature"


def _build_processor() -> WebhookProcessor:
    return WebhookProcessor(WebhookPolicy.from_settings(get_settings(), catalog=get_price_catalog()))


@router.post("/webhooks/payments")
async def payments_webhook(request: Request) -> JSONResponse:
    raw_body = await request.body()
    now_utc = datetime.now(timezone.utc)
    processor = _build_processor()

    try:
        event = processor.verify_and_parse(
            raw_body=raw_body,
            signature_header=request.headers.get(SIGNATURE_HEADER),
            now_utc=now_utc,
        )
    except WebhookSignatureError as exc:
        logger.warning("payments_webhook_rejected", reason=str(exc))
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"status": "rejected"},
        )
    except WebhookPayloadError:
        logger.warning("payments_webhook_invalid_payload", body_bytes=len(raw_body))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "invalid"},
        )

    try:
        async with ledger_store_scope() as store:
            result = await processor.apply(store, event=event, now_utc=now_utc)
    except (SQLAlchemyError, OSError) as exc:
        logger.warning(
            "payments_webhook_storage_failed",
            event_id=event.event_id,
            event_type=event.event_type,
            error_type=type(exc).__name__,
        )
        # Never acknowledge an event that was not recorded; the provider retries on non-2xx.
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "retry"},
        )

    if result.status == WebhookStatus.DUPLICATE:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "duplicate", "noop": True},
        )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "processed", "noop": False, "outcome": result.outcome},
    )
