from nudge_ledger.economy.entitlements.service import EntitlementService

__all__ = ["EntitlementService"]
