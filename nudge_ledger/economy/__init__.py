from nudge_ledger.economy.check_ins import CheckInService
from nudge_ledger.economy.entitlements import EntitlementService
from nudge_ledger.economy.jobs import JobEnqueuer
from nudge_ledger.economy.reservations import ReservationService
from nudge_ledger.economy.webhooks import WebhookProcessor

__all__ = [
    "CheckInService",
    "EntitlementService",
    "JobEnqueuer",
    "ReservationService",
    "WebhookProcessor",
]
