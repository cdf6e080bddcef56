from __future__ import annotations

from nudge_ledger.economy.jobs.errors import GenerationGatewayError


def test_generation_request_accepted_for_paid_user(client, store, gateway) -> None:
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=2)

    response = client.post("/users/u-1/generations", json={"payload": {"mood": "angry"}})

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "accepted"
    assert payload["job_id"] == "job-1"
    assert payload["credits_remaining"] == 1
    assert payload["reservation_id"] is not None
    assert gateway.open_scopes_at_submit == [0]


def test_generation_request_denied_when_weekly_quota_used(client, store, gateway) -> None:
    first = client.post("/users/u-free/generations", json={})
    second = client.post("/users/u-free/generations", json={})

    assert first.json()["status"] == "accepted"
    assert first.json()["weekly_usage_count"] == 1
    assert second.status_code == 200
    assert second.json()["status"] == "denied"
    assert second.json()["denial_reason"] == "weekly_limit_reached"
    assert len(gateway.requests) == 1


def test_generation_request_denied_without_credits(client, store) -> None:
    store.seed_subscription(user_id="u-1", tier="one-time", credits_remaining=0)

    response = client.post("/users/u-1/generations", json={})

    assert response.json()["status"] == "denied"
    assert response.json()["denial_reason"] == "no_credits"


def test_generation_submit_failure_returns_502_and_refunds(client, store, gateway) -> None:
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=1)
    gateway.fail_with = GenerationGatewayError("provider down")

    response = client.post("/users/u-1/generations", json={})

    assert response.status_code == 502
    assert response.json() == {"code": "generation_submit_failed"}
    assert store.credits("u-1") == 1


def test_generation_request_rejects_unknown_kind(client) -> None:
    response = client.post("/users/u-1/generations", json={"kind": "video"})

    assert response.status_code == 422
