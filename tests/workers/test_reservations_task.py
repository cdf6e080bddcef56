from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from nudge_ledger.economy.reservations.service import ReservationService
from nudge_ledger.economy.reservations.types import ReservationSweepResult
from nudge_ledger.workers.celery_app import celery_app
from nudge_ledger.workers.tasks import reservations
from tests.economy.ledger_fakes import InMemoryLedgerStore


def test_sweep_stale_reservations_task_wrapper(monkeypatch) -> None:
    async def fake_async(*, batch_size: int) -> dict[str, int]:
        return {"examined": batch_size, "refunded": 2}

    monkeypatch.setattr(reservations, "sweep_stale_reservations_async", fake_async)

    result = reservations.sweep_stale_reservations(batch_size=9)
    assert result == {"examined": 9, "refunded": 2}


def test_sweep_is_on_beat_schedule() -> None:
    entry = celery_app.conf.beat_schedule["sweep-stale-reservations-every-5-minutes"]

    assert entry["task"] == "nudge_ledger.workers.tasks.reservations.sweep_stale_reservations"
    assert entry["schedule"] == 300.0


@pytest.mark.asyncio
async def test_sweep_refunds_reservations_older_than_ttl(monkeypatch) -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=2)
    now_utc = datetime.now(timezone.utc)
    stale = await ReservationService.reserve(
        store,
        user_id="u-1",
        now_utc=now_utc - timedelta(hours=1),
        weekly_limit=1,
    )
    fresh = await ReservationService.reserve(store, user_id="u-1", now_utc=now_utc, weekly_limit=1)

    monkeypatch.setattr(reservations, "ledger_store_scope", store.scope)
    monkeypatch.setattr(reservations, "get_settings", lambda: SimpleNamespace(reservation_ttl_seconds=1800))

    result = await reservations.sweep_stale_reservations_async(batch_size=10)

    assert result == {"examined": 1, "refunded": 1, "skipped": 0, "errors": 0}
    assert store.state.reservations[stale.reservation_id].status == "REFUNDED"
    assert store.state.reservations[fresh.reservation_id].status == "RESERVED"
    assert store.credits("u-1") == 1


@pytest.mark.asyncio
async def test_sweep_counts_failed_refunds_and_continues(monkeypatch) -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=2)
    old = datetime.now(timezone.utc) - timedelta(hours=1)
    first = await ReservationService.reserve(store, user_id="u-1", now_utc=old, weekly_limit=1)
    second = await ReservationService.reserve(
        store,
        user_id="u-1",
        now_utc=old + timedelta(seconds=1),
        weekly_limit=1,
    )

    original_refund = ReservationService.refund

    async def flaky_refund(store, *, reservation_id, reason, now_utc):
        if reservation_id == first.reservation_id:
            raise RuntimeError("connection reset")
        return await original_refund(store, reservation_id=reservation_id, reason=reason, now_utc=now_utc)

    monkeypatch.setattr(reservations, "ledger_store_scope", store.scope)
    monkeypatch.setattr(reservations, "get_settings", lambda: SimpleNamespace(reservation_ttl_seconds=1800))
    monkeypatch.setattr(reservations.ReservationService, "refund", staticmethod(flaky_refund))

    result = await reservations.sweep_stale_reservations_async(batch_size=10)

    assert result == {"examined": 2, "refunded": 1, "skipped": 0, "errors": 1}
    assert store.state.reservations[first.reservation_id].status == "RESERVED"
    assert store.state.reservations[second.reservation_id].status == "REFUNDED"


@pytest.mark.asyncio
async def test_task_runs_the_service_sweep(monkeypatch) -> None:
    calls: list[dict] = []

    async def fake_sweep(store_scope, *, older_than_utc, now_utc, limit):
        calls.append(
            {
                "store_scope": store_scope,
                "ttl": now_utc - older_than_utc,
                "limit": limit,
            }
        )
        return ReservationSweepResult(examined=3, refunded=1, skipped=2)

    monkeypatch.setattr(reservations, "get_settings", lambda: SimpleNamespace(reservation_ttl_seconds=600))
    monkeypatch.setattr(reservations.ReservationService, "sweep_stale", staticmethod(fake_sweep))

    result = await reservations.sweep_stale_reservations_async(batch_size=25)

    assert result == {"examined": 3, "refunded": 1, "skipped": 2, "errors": 0}
    assert calls == [
        {
            "store_scope": reservations.ledger_store_scope,
            "ttl": timedelta(seconds=600),
            "limit": 25,
        }
    ]
