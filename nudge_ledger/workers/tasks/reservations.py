from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timedelta, timezone

import structlog

from nudge_ledger.core.config import get_settings
from nudge_ledger.db.ledger_store import ledger_store_scope
from nudge_ledger.economy.reservations.service import ReservationService
from nudge_ledger.workers.asyncio_runner import run_async_job
from nudge_ledger.workers.celery_app import celery_app
from nudge_ledger.workers.tasks.reservations_schedule import configure_reservations_schedule

logger = structlog.get_logger(__name__)


async def sweep_stale_reservations_async(*, batch_size: int = 100) -> dict[str, int]:
    settings = get_settings()
    now_utc = datetime.now(timezone.utc)
    older_than_utc = now_utc - timedelta(seconds=settings.reservation_ttl_seconds)

    result = await ReservationService.sweep_stale(
        ledger_store_scope,
        older_than_utc=older_than_utc,
        now_utc=now_utc,
        limit=batch_size,
    )
    summary = asdict(result)

    if summary["refunded"] or summary["errors"]:
        logger.warning("stale_reservations_refunded", ttl_seconds=settings.reservation_ttl_seconds, **summary)
    else:
        logger.info("stale_reservations_sweep_finished", **summary)
    return summary


@celery_app.task(name="nudge_ledger.workers.tasks.reservations.sweep_stale_reservations")
def sweep_stale_reservations(batch_size: int = 100) -> dict[str, int]:
    return run_async_job(
        sweep_stale_reservations_async(batch_size=batch_size),
        job_name="sweep_stale_reservations",
    )


configure_reservations_schedule(celery_app)
