from __future__ import annotations

import pytest
from sqlalchemy import text

from nudge_ledger.core.integration_db_safety import assess_integration_db_safety
from nudge_ledger.db import models  # noqa: F401
from nudge_ledger.db.models.base import Base
from nudge_ledger.db.session import engine

TRUNCATE_TABLES = (
    "credit_reservations",
    "content_unlocks",
    "daily_check_ins",
    "processed_events",
    "weekly_usage_counters",
    "subscriptions",
)

TRUNCATE_SQL = f"TRUNCATE TABLE {', '.join(TRUNCATE_TABLES)} RESTART IDENTITY CASCADE"


@pytest.fixture(scope="session", autouse=True)
def guard_integration_db_target() -> None:
    result = assess_integration_db_safety(engine.url.render_as_string(hide_password=False))
    if not result.is_safe:
        pytest.skip(f"Refusing to truncate ledger tables: {result.reason}")


@pytest.fixture(autouse=True)
async def cleanup_db() -> None:
    # Dispose pooled connections between tests to avoid cross-event-loop asyncpg reuse.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text(TRUNCATE_SQL))

    yield

    await engine.dispose()
