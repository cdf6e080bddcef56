from nudge_ledger.economy.quota.constants import WEEKLY_WINDOW
from nudge_ledger.economy.quota.window import (
    WeeklyWindowState,
    consume_weekly_slot,
    is_weekly_limit_reached,
    is_window_expired,
    project_weekly_window,
)

__all__ = [
    "WEEKLY_WINDOW",
    "WeeklyWindowState",
    "consume_weekly_slot",
    "is_weekly_limit_reached",
    "is_window_expired",
    "project_weekly_window",
]
