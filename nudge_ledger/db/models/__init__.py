from nudge_ledger.db.models.content_unlocks import ContentUnlock
from nudge_ledger.db.models.credit_reservations import CreditReservation
from nudge_ledger.db.models.daily_check_ins import DailyCheckIn
from nudge_ledger.db.models.processed_events import ProcessedEvent
from nudge_ledger.db.models.subscriptions import Subscription
from nudge_ledger.db.models.weekly_usage_counters import WeeklyUsageCounter

__all__ = [
    "ContentUnlock",
    "CreditReservation",
    "DailyCheckIn",
    "ProcessedEvent",
    "Subscription",
    "WeeklyUsageCounter",
]
