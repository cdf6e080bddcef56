from __future__ import annotations

from nudge_ledger.core.config import get_settings
from nudge_ledger.db.ledger_store import ledger_store_scope
from nudge_ledger.economy.jobs.service import JobEnqueuer
from nudge_ledger.services.generation_gateway import HttpGenerationGateway


def build_job_enqueuer() -> JobEnqueuer:
    settings = get_settings()
    return JobEnqueuer(
        gateway=HttpGenerationGateway.from_settings(),
        store_scope=ledger_store_scope,
        submit_timeout_seconds=settings.generation_submit_timeout_ms / 1000,
        weekly_limit=settings.free_weekly_gated_actions,
    )


def error_content(code: str) -> dict[str, str]:
    return {"code": code}
