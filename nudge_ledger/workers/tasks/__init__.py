from nudge_ledger.workers.tasks.reservations import sweep_stale_reservations

__all__ = [
    "sweep_stale_reservations",
]
