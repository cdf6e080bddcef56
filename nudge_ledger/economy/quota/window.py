from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from nudge_ledger.economy.quota.constants import WEEKLY_WINDOW


@dataclass(frozen=True, slots=True)
class WeeklyWindowState:
    count: int
    window_start: datetime
    was_reset: bool


def is_window_expired(
    window_start: datetime,
    now_utc: datetime,
    *,
    window: timedelta = WEEKLY_WINDOW,
) -> bool:
    """A window is expired once a full period has elapsed since it started."""
    return now_utc - window_start >= window


def project_weekly_window(
    count: int,
    window_start: datetime | None,
    now_utc: datetime,
    *,
    window: timedelta = WEEKLY_WINDOW,
) -> WeeklyWindowState:
    """Returns the effective counter state at ``now_utc`` without touching storage.

    A user that never consumed a slot has no window yet; the projection opens
    one at ``now_utc`` with a zero count.
    """
    if window_start is None:
        return WeeklyWindowState(count=0, window_start=now_utc, was_reset=False)
    if is_window_expired(window_start, now_utc, window=window):
        return WeeklyWindowState(count=0, window_start=now_utc, was_reset=True)
    return WeeklyWindowState(count=max(0, count), window_start=window_start, was_reset=False)


def consume_weekly_slot(
    count: int,
    window_start: datetime | None,
    now_utc: datetime,
    *,
    cap: int,
    window: timedelta = WEEKLY_WINDOW,
) -> WeeklyWindowState | None:
    """Applies one gated action to the projected window; None when the cap is reached."""
    projected = project_weekly_window(count, window_start, now_utc, window=window)
    if projected.count >= cap:
        return None
    return WeeklyWindowState(
        count=projected.count + 1,
        window_start=projected.window_start,
        was_reset=projected.was_reset,
    )


def is_weekly_limit_reached(count: int, *, cap: int) -> bool:
    return count >= cap
