from nudge_ledger.economy.check_ins.service import CheckInService

__all__ = ["CheckInService"]
