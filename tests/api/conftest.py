from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from nudge_ledger.api.routes import check_ins, credits, generations, internal_generation_jobs
from nudge_ledger.economy.jobs.service import JobEnqueuer
from nudge_ledger.main import app
from tests.api.api_settings import api_settings
from tests.economy.ledger_fakes import InMemoryLedgerStore, StubGenerationGateway


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def gateway(store: InMemoryLedgerStore) -> StubGenerationGateway:
    return StubGenerationGateway(store=store)


@pytest.fixture
def client(monkeypatch, store: InMemoryLedgerStore, gateway: StubGenerationGateway) -> TestClient:
    def _build_job_enqueuer() -> JobEnqueuer:
        return JobEnqueuer(
            gateway=gateway,
            store_scope=store.scope,
            submit_timeout_seconds=1.0,
            weekly_limit=1,
        )

    for module in (check_ins, credits, internal_generation_jobs):
        monkeypatch.setattr(module, "get_settings", lambda: api_settings())
    for module in (check_ins, credits):
        monkeypatch.setattr(module, "ledger_store_scope", store.scope)
    for module in (check_ins, generations, internal_generation_jobs):
        monkeypatch.setattr(module, "build_job_enqueuer", _build_job_enqueuer)

    return TestClient(app)
