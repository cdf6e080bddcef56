from __future__ import annotations

from sqlalchemy import CheckConstraint, UniqueConstraint

from nudge_ledger.db.models import (  # noqa: F401
    ContentUnlock,
    CreditReservation,
    DailyCheckIn,
    ProcessedEvent,
    Subscription,
    WeeklyUsageCounter,
)
from nudge_ledger.db.models.base import Base


def _check_names(table_name: str) -> set[str]:
    table = Base.metadata.tables[table_name]
    return {constraint.name for constraint in table.constraints if isinstance(constraint, CheckConstraint)}


def test_ledger_tables_registered() -> None:
    assert set(Base.metadata.tables) == {
        "subscriptions",
        "weekly_usage_counters",
        "processed_events",
        "daily_check_ins",
        "content_unlocks",
        "credit_reservations",
    }


def test_balance_and_counter_cannot_go_negative() -> None:
    assert "ck_subscriptions_credits_non_negative" in _check_names("subscriptions")
    assert "ck_weekly_usage_counters_count_non_negative" in _check_names("weekly_usage_counters")


def test_reservation_states_are_constrained() -> None:
    names = _check_names("credit_reservations")
    assert {"ck_credit_reservations_source", "ck_credit_reservations_status"} <= names
    assert "ck_credit_reservations_quota_window_required" in names


def test_one_check_in_per_user_and_day() -> None:
    daily_check_ins = Base.metadata.tables["daily_check_ins"]
    unique_names = {
        constraint.name for constraint in daily_check_ins.constraints if isinstance(constraint, UniqueConstraint)
    }
    assert "uq_daily_check_ins_user_date" in unique_names


def test_primary_keys_carry_idempotency_keys() -> None:
    assert [column.name for column in Base.metadata.tables["processed_events"].primary_key] == ["event_id"]
    assert [column.name for column in Base.metadata.tables["content_unlocks"].primary_key] == ["item_id"]
    assert [column.name for column in Base.metadata.tables["weekly_usage_counters"].primary_key] == ["user_id"]


def test_check_in_links_to_its_audio_reservation() -> None:
    daily_check_ins = Base.metadata.tables["daily_check_ins"]
    assert daily_check_ins.c.reservation_id.nullable is True
    assert "idx_daily_check_ins_reservation" in {index.name for index in daily_check_ins.indexes}
    assert Base.metadata.tables["credit_reservations"].c.media_url.nullable is True
