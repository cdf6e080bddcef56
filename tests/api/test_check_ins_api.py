from __future__ import annotations

from nudge_ledger.economy.check_ins.motivations import MOTIVATIONS
from nudge_ledger.economy.jobs.errors import GenerationGatewayError
from tests.api.api_settings import INTERNAL_TOKEN


def test_check_in_text_only(client, gateway) -> None:
    response = client.post("/users/u-1/check-ins", json={"mood": "confidence", "message": "got the job"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["motivation"] == MOTIVATIONS["confidence"]
    assert payload["audio_requested"] is False
    assert payload["job_id"] is None
    assert gateway.requests == []


def test_check_in_twice_same_day_conflicts(client) -> None:
    body = {"mood": "angry", "message": "again"}

    first = client.post("/users/u-1/check-ins", json=body)
    second = client.post("/users/u-1/check-ins", json=body)

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json() == {"code": "already_checked_in"}


def test_check_in_without_message_is_invalid(client) -> None:
    response = client.post("/users/u-1/check-ins", json={"mood": "angry"})

    assert response.status_code == 400
    assert response.json() == {"code": "check_in_invalid"}


def test_check_in_with_audio_submits_job(client, store, gateway) -> None:
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=3)

    response = client.post(
        "/users/u-1/check-ins",
        json={"mood": "hurting", "message": "long week", "prefer_audio": True},
    )

    payload = response.json()
    assert response.status_code == 200
    assert payload["audio_requested"] is True
    assert payload["job_id"] == "job-1"
    assert payload["audio_limit_reached"] is False
    assert gateway.requests[0].payload["motivation_text"] == MOTIVATIONS["hurting"]
    assert store.credits("u-1") == 2


def test_check_in_audio_denied_still_returns_text(client, store, gateway) -> None:
    store.seed_subscription(user_id="u-1", tier="one-time", credits_remaining=0)

    response = client.post(
        "/users/u-1/check-ins",
        json={"mood": "angry", "message": "no credits left", "prefer_audio": True},
    )

    payload = response.json()
    assert response.status_code == 200
    assert payload["motivation"] == MOTIVATIONS["angry"]
    assert payload["audio_limit_reached"] is True
    assert payload["audio_limit_reason"] == "no_credits"
    assert gateway.requests == []
    assert len(store.state.check_ins) == 1


def test_check_in_audio_submit_failure_degrades(client, store, gateway) -> None:
    gateway.fail_with = GenerationGatewayError("provider down")

    response = client.post(
        "/users/u-free/check-ins",
        json={"mood": "unstoppable", "message": "let's go", "prefer_audio": True},
    )

    payload = response.json()
    assert response.status_code == 200
    assert payload["audio_limit_reason"] == "submit_failed"
    assert payload["job_id"] is None
    assert store.weekly_count("u-free") == 0


def test_check_in_reports_streak_and_day_number(client, store, gateway) -> None:
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=3)

    response = client.post(
        "/users/u-1/check-ins",
        json={"mood": "hurting", "message": "long week", "prefer_audio": True},
    )

    assert response.json()["streak"] == 1
    assert gateway.requests[0].payload["day_number"] == 1


def test_today_check_in_not_found(client) -> None:
    response = client.get("/users/u-1/check-ins/today")

    assert response.status_code == 404
    assert response.json() == {"code": "check_in_not_found"}


def test_today_check_in_shows_audio_once_job_completes(client, store) -> None:
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=3)
    created = client.post(
        "/users/u-1/check-ins",
        json={"mood": "confidence", "message": "big interview", "prefer_audio": True},
    ).json()

    pending = client.get("/users/u-1/check-ins/today").json()
    client.post(
        f"/internal/generation-jobs/{created['job_id']}/result",
        json={"status": "completed", "media_url": "https://cdn.example.test/today.mp3"},
        headers={"Authorization": f"Bearer {INTERNAL_TOKEN}"},
    )
    ready = client.get("/users/u-1/check-ins/today").json()

    assert pending["check_in_id"] == created["check_in_id"]
    assert pending["reservation_id"] == created["reservation_id"]
    assert pending["audio_status"] == "pending"
    assert pending["audio_url"] is None
    assert ready["audio_status"] == "ready"
    assert ready["audio_url"] == "https://cdn.example.test/today.mp3"
    assert ready["streak"] == 1
    assert ready["mood"] == "confidence"
