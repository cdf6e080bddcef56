from nudge_ledger.economy.reservations.service import ReservationService

__all__ = ["ReservationService"]
