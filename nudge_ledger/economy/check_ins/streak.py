from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

STREAK_LOOKBACK_DAYS = 366


def streak_window_start(today: date) -> date:
    return today - timedelta(days=STREAK_LOOKBACK_DAYS)


def current_streak(check_in_dates: Iterable[date], *, today: date) -> int:
    """Consecutive check-in days ending today.

    A streak whose last day is yesterday is still alive until today ends, so
    it is counted from yesterday.
    """
    days = set(check_in_dates)
    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak
