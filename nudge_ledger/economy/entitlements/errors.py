class EntitlementError(Exception):
    pass


class UserIdRequiredError(EntitlementError):
    pass
