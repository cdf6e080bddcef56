from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from nudge_ledger.economy.reservations.errors import ReservationNotFoundError, ReservationStateError
from nudge_ledger.economy.reservations.service import ReservationService
from nudge_ledger.economy.reservations.types import (
    DenialReason,
    RefundReason,
    ReservationSource,
    ReservationState,
)
from tests.economy.ledger_fakes import InMemoryLedgerStore

UTC = timezone.utc
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


async def _reserve(store: InMemoryLedgerStore, user_id: str, now_utc: datetime = NOW):
    return await ReservationService.reserve(store, user_id=user_id, now_utc=now_utc, weekly_limit=1)


@pytest.mark.asyncio
async def test_paid_reserve_decrements_credits_and_records_reservation() -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=3)

    result = await _reserve(store, "u-1")

    assert result.allowed is True
    assert result.state == ReservationState.RESERVED
    assert result.source == ReservationSource.CREDITS
    assert result.credits_remaining == 2
    assert store.credits("u-1") == 2
    assert store.state.reservations[result.reservation_id].status == "RESERVED"


@pytest.mark.asyncio
async def test_paid_reserve_denied_without_credits() -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="one-time", credits_remaining=0)

    result = await _reserve(store, "u-1")

    assert result.allowed is False
    assert result.state == ReservationState.DENIED
    assert result.denial_reason == DenialReason.NO_CREDITS
    assert store.credits("u-1") == 0
    assert store.state.reservations == {}


@pytest.mark.asyncio
@pytest.mark.parametrize(("balance", "attempts"), [(3, 10), (5, 5), (0, 4), (7, 3)])
async def test_concurrent_reserves_never_overspend(balance: int, attempts: int) -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=balance)

    results = await asyncio.gather(*(_reserve(store, "u-1") for _ in range(attempts)))

    allowed = [result for result in results if result.allowed]
    assert len(allowed) == min(attempts, balance)
    assert store.credits("u-1") == balance - len(allowed)
    assert all(result.denial_reason == DenialReason.NO_CREDITS for result in results if not result.allowed)


@pytest.mark.asyncio
async def test_reserve_refund_reserve_restores_balance() -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=1)

    first = await _reserve(store, "u-1")
    assert first.allowed is True
    assert store.credits("u-1") == 0

    refund = await ReservationService.refund(
        store,
        reservation_id=first.reservation_id,
        reason=RefundReason.SUBMIT_FAILED,
        now_utc=NOW,
    )
    assert refund.state == ReservationState.REFUNDED
    assert refund.idempotent_replay is False
    assert store.credits("u-1") == 1

    second = await _reserve(store, "u-1")
    assert second.allowed is True
    assert store.credits("u-1") == 0


@pytest.mark.asyncio
async def test_second_refund_is_noop_replay() -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=2)
    reservation = await _reserve(store, "u-1")

    for _ in range(2):
        await ReservationService.refund(
            store,
            reservation_id=reservation.reservation_id,
            reason=RefundReason.JOB_FAILED,
            now_utc=NOW,
        )
    replay = await ReservationService.refund(
        store,
        reservation_id=reservation.reservation_id,
        reason=RefundReason.JOB_FAILED,
        now_utc=NOW,
    )

    assert replay.idempotent_replay is True
    assert replay.state == ReservationState.REFUNDED
    assert store.credits("u-1") == 2


@pytest.mark.asyncio
async def test_concurrent_refunds_restore_exactly_once() -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=1)
    reservation = await _reserve(store, "u-1")

    results = await asyncio.gather(
        *(
            ReservationService.refund(
                store,
                reservation_id=reservation.reservation_id,
                reason=RefundReason.JOB_FAILED,
                now_utc=NOW,
            )
            for _ in range(5)
        )
    )

    assert sum(1 for result in results if not result.idempotent_replay) == 1
    assert store.credits("u-1") == 1


@pytest.mark.asyncio
async def test_commit_is_idempotent() -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=2)
    reservation = await _reserve(store, "u-1")

    first = await ReservationService.commit(store, reservation_id=reservation.reservation_id, now_utc=NOW)
    second = await ReservationService.commit(store, reservation_id=reservation.reservation_id, now_utc=NOW)

    assert first.state == ReservationState.COMMITTED
    assert first.idempotent_replay is False
    assert second.state == ReservationState.COMMITTED
    assert second.idempotent_replay is True
    assert store.credits("u-1") == 1


@pytest.mark.asyncio
async def test_refund_after_commit_does_not_restore_credit() -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=2)
    reservation = await _reserve(store, "u-1")
    await ReservationService.commit(store, reservation_id=reservation.reservation_id, now_utc=NOW)

    result = await ReservationService.refund(
        store,
        reservation_id=reservation.reservation_id,
        reason=RefundReason.JOB_FAILED,
        now_utc=NOW,
    )

    assert result.idempotent_replay is True
    assert result.state == ReservationState.COMMITTED
    assert store.credits("u-1") == 1


@pytest.mark.asyncio
async def test_commit_after_refund_raises_state_error() -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=2)
    reservation = await _reserve(store, "u-1")
    await ReservationService.refund(
        store,
        reservation_id=reservation.reservation_id,
        reason=RefundReason.STALE,
        now_utc=NOW,
    )

    with pytest.raises(ReservationStateError):
        await ReservationService.commit(store, reservation_id=reservation.reservation_id, now_utc=NOW)
    assert store.credits("u-1") == 2


@pytest.mark.asyncio
async def test_unknown_reservation_raises_not_found() -> None:
    with pytest.raises(ReservationNotFoundError):
        await ReservationService.commit(InMemoryLedgerStore(), reservation_id=uuid4(), now_utc=NOW)


@pytest.mark.asyncio
async def test_free_tier_allows_one_action_per_week() -> None:
    store = InMemoryLedgerStore()

    first = await _reserve(store, "free-user")
    second = await _reserve(store, "free-user", NOW + timedelta(days=3))

    assert first.allowed is True
    assert first.source == ReservationSource.WEEKLY_QUOTA
    assert first.weekly_usage_count == 1
    assert second.allowed is False
    assert second.denial_reason == DenialReason.WEEKLY_LIMIT_REACHED


@pytest.mark.asyncio
async def test_free_tier_resets_after_seven_days() -> None:
    store = InMemoryLedgerStore()
    await _reserve(store, "free-user")

    later = NOW + timedelta(days=7, seconds=1)
    result = await _reserve(store, "free-user", later)

    assert result.allowed is True
    assert result.weekly_usage_count == 1
    assert result.quota_window_start == later


@pytest.mark.asyncio
async def test_concurrent_free_reserves_admit_only_cap() -> None:
    store = InMemoryLedgerStore()

    results = await asyncio.gather(*(_reserve(store, "free-user") for _ in range(6)))

    assert sum(1 for result in results if result.allowed) == 1
    assert store.weekly_count("free-user") == 1


@pytest.mark.asyncio
async def test_free_refund_releases_weekly_slot() -> None:
    store = InMemoryLedgerStore()
    reservation = await _reserve(store, "free-user")

    await ReservationService.refund(
        store,
        reservation_id=reservation.reservation_id,
        reason=RefundReason.SUBMIT_FAILED,
        now_utc=NOW,
    )

    assert store.weekly_count("free-user") == 0
    retry = await _reserve(store, "free-user")
    assert retry.allowed is True


@pytest.mark.asyncio
async def test_refund_from_previous_window_does_not_touch_new_window() -> None:
    store = InMemoryLedgerStore()
    stale = await _reserve(store, "free-user")

    later = NOW + timedelta(days=8)
    fresh = await _reserve(store, "free-user", later)
    assert fresh.allowed is True

    await ReservationService.refund(
        store,
        reservation_id=stale.reservation_id,
        reason=RefundReason.STALE,
        now_utc=later,
    )

    assert store.weekly_count("free-user") == 1


@pytest.mark.asyncio
async def test_sweep_refunds_only_stale_reserved() -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=5)
    old = await _reserve(store, "u-1", NOW - timedelta(hours=2))
    committed = await _reserve(store, "u-1", NOW - timedelta(hours=2))
    await ReservationService.commit(store, reservation_id=committed.reservation_id, now_utc=NOW)
    recent = await _reserve(store, "u-1", NOW - timedelta(minutes=5))

    result = await ReservationService.sweep_stale(
        store.scope,
        older_than_utc=NOW - timedelta(minutes=30),
        now_utc=NOW,
    )

    assert result.examined == 1
    assert result.refunded == 1
    assert result.errors == 0
    assert store.state.reservations[old.reservation_id].status == "REFUNDED"
    assert store.state.reservations[old.reservation_id].refund_reason == "stale"
    assert store.state.reservations[recent.reservation_id].status == "RESERVED"
    assert store.credits("u-1") == 3


@pytest.mark.asyncio
async def test_commit_persists_media_url() -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=2)
    reserved = await _reserve(store, "u-1")

    await ReservationService.commit(
        store,
        reservation_id=reserved.reservation_id,
        now_utc=NOW,
        media_url="https://cdn.example.com/nudges/a.mp3",
    )
    replay = await ReservationService.commit(
        store,
        reservation_id=reserved.reservation_id,
        now_utc=NOW,
        media_url="https://cdn.example.com/nudges/other.mp3",
    )

    assert replay.idempotent_replay is True
    assert store.state.reservations[reserved.reservation_id].media_url == "https://cdn.example.com/nudges/a.mp3"


@pytest.mark.asyncio
async def test_sweep_isolates_each_refund_in_its_own_scope(monkeypatch) -> None:
    store = InMemoryLedgerStore()
    store.seed_subscription(user_id="u-1", tier="unlimited", credits_remaining=3)
    first = await _reserve(store, "u-1", NOW - timedelta(hours=2))
    second = await _reserve(store, "u-1", NOW - timedelta(hours=1))

    original_refund = ReservationService.refund

    async def flaky_refund(store, *, reservation_id, reason, now_utc):
        if reservation_id == first.reservation_id:
            raise RuntimeError("connection reset")
        return await original_refund(store, reservation_id=reservation_id, reason=reason, now_utc=now_utc)

    monkeypatch.setattr(ReservationService, "refund", staticmethod(flaky_refund))
    entries_before = store.scope_entries

    result = await ReservationService.sweep_stale(
        store.scope,
        older_than_utc=NOW - timedelta(minutes=30),
        now_utc=NOW,
    )

    assert (result.examined, result.refunded, result.skipped, result.errors) == (2, 1, 0, 1)
    assert store.scope_entries - entries_before == 3
    assert store.state.reservations[first.reservation_id].status == "RESERVED"
    assert store.state.reservations[second.reservation_id].status == "REFUNDED"
    assert store.credits("u-1") == 2
