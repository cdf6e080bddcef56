from nudge_ledger.economy.jobs.service import JobEnqueuer

__all__ = ["JobEnqueuer"]
