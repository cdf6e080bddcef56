class CheckInError(Exception):
    pass


class CheckInValidationError(CheckInError):
    pass


class AlreadyCheckedInError(CheckInError):
    pass


class CheckInNotFoundError(CheckInError):
    pass
