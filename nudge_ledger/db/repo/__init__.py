from nudge_ledger.db.repo.content_unlocks_repo import ContentUnlocksRepo
from nudge_ledger.db.repo.credit_reservations_repo import CreditReservationsRepo
from nudge_ledger.db.repo.daily_check_ins_repo import DailyCheckInsRepo
from nudge_ledger.db.repo.processed_events_repo import ProcessedEventsRepo
from nudge_ledger.db.repo.subscriptions_repo import SubscriptionsRepo
from nudge_ledger.db.repo.weekly_usage_repo import WeeklyUsageRepo

__all__ = [
    "ContentUnlocksRepo",
    "CreditReservationsRepo",
    "DailyCheckInsRepo",
    "ProcessedEventsRepo",
    "SubscriptionsRepo",
    "WeeklyUsageRepo",
]
