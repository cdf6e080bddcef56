from __future__ import annotations

import time
from contextlib import asynccontextmanager

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from nudge_ledger.api.routes import payments_webhook
from nudge_ledger.economy.webhooks.signature import build_signature_header
from nudge_ledger.main import app
from tests.economy.ledger_fakes import InMemoryLedgerStore
from tests.economy.webhook_payloads import (
    SECRET,
    encode,
    make_processor,
    subscription_event,
    transaction_event,
)


def _client(monkeypatch, store: InMemoryLedgerStore) -> TestClient:
    monkeypatch.setattr(payments_webhook, "_build_processor", lambda: make_processor())
    monkeypatch.setattr(payments_webhook, "ledger_store_scope", store.scope)
    return TestClient(app)


def _post(client: TestClient, payload: dict, *, secret: str = SECRET, timestamp: int | None = None):
    body = encode(payload)
    header = build_signature_header(
        secret=secret,
        timestamp=int(time.time()) if timestamp is None else timestamp,
        body=body,
    )
    return client.post(
        "/webhooks/payments",
        content=body,
        headers={"Content-Type": "application/json", "Paddle-Signature": header},
    )


def test_webhook_processes_signed_event(monkeypatch) -> None:
    store = InMemoryLedgerStore()
    client = _client(monkeypatch, store)

    response = _post(client, subscription_event("subscription.created"))

    assert response.status_code == 200
    assert response.json() == {"status": "processed", "noop": False, "outcome": "subscription_created"}
    assert store.credits("u-1") == 20


def test_webhook_duplicate_is_acknowledged_as_noop(monkeypatch) -> None:
    store = InMemoryLedgerStore()
    client = _client(monkeypatch, store)
    payload = transaction_event(event_id="evt_twice")

    first = _post(client, payload)
    second = _post(client, payload)

    assert first.json()["noop"] is False
    assert second.status_code == 200
    assert second.json() == {"status": "duplicate", "noop": True}
    assert store.credits("u-1") == 20


def test_webhook_rejects_bad_signature(monkeypatch) -> None:
    store = InMemoryLedgerStore()
    client = _client(monkeypatch, store)

    response = _post(client, subscription_event("subscription.created"), secret="not-the-secret")

    assert response.status_code == 401
    assert response.json() == {"status": "rejected"}
    assert store.state.events == {}


def test_webhook_rejects_missing_signature(monkeypatch) -> None:
    client = _client(monkeypatch, InMemoryLedgerStore())

    response = client.post("/webhooks/payments", json=subscription_event("subscription.created"))

    assert response.status_code == 401


def test_webhook_rejects_stale_timestamp(monkeypatch) -> None:
    client = _client(monkeypatch, InMemoryLedgerStore())

    response = _post(
        client,
        subscription_event("subscription.created"),
        timestamp=int(time.time()) - 3600,
    )

    assert response.status_code == 401


def test_webhook_invalid_payload_returns_400(monkeypatch) -> None:
    client = _client(monkeypatch, InMemoryLedgerStore())

    response = _post(client, {"event_type": "subscription.created"})

    assert response.status_code == 400
    assert response.json() == {"status": "invalid"}


def test_webhook_storage_failure_is_not_acknowledged(monkeypatch) -> None:
    store = InMemoryLedgerStore()

    @asynccontextmanager
    async def _broken_scope():
        raise OperationalError("INSERT", {}, ConnectionError("db down"))
        yield store

    client = _client(monkeypatch, store)
    monkeypatch.setattr(payments_webhook, "ledger_store_scope", _broken_scope)

    response = _post(client, subscription_event("subscription.created"))

    assert response.status_code == 503
    assert response.json() == {"status": "retry"}


def test_webhook_failure_midway_rolls_back_dedupe_row(monkeypatch) -> None:
    store = InMemoryLedgerStore()
    client = _client(monkeypatch, store)

    async def _failing_upsert(**kwargs):
        raise OperationalError("INSERT", {}, ConnectionError("db down"))

    original_upsert = store.upsert_subscription
    monkeypatch.setattr(store, "upsert_subscription", _failing_upsert)

    failed = _post(client, subscription_event("subscription.created", event_id="evt_retry"))

    assert failed.status_code == 503
    assert store.state.events == {}

    monkeypatch.setattr(store, "upsert_subscription", original_upsert)
    retried = _post(client, subscription_event("subscription.created", event_id="evt_retry"))

    assert retried.json()["status"] == "processed"
    assert store.credits("u-1") == 20
