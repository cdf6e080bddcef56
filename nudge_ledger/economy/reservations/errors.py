class ReservationError(Exception):
    pass


class ReservationNotFoundError(ReservationError):
    pass


class ReservationStateError(ReservationError):
    pass
