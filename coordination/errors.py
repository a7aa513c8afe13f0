"""Errors raised by coordination actions.

Every error carries a human-readable `reason` that can be shown to the user
as is.
"""


class CoordinationError(Exception):
    """Base class for rejected coordination actions."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


# Validation: rejected before any write


class ValidationFailed(CoordinationError):
    pass


class IncompleteDeclaration(ValidationFailed):
    def __init__(self, missing=None):
        self.missing = list(missing or [])
        super().__init__("Please confirm every item of the donor declaration.")


class DonorInCooldown(ValidationFailed):
    pass


class DonorNotVerified(ValidationFailed):
    def __init__(self):
        super().__init__("Your identity must be verified at a blood bank before you can go available.")


class IncompatibleBloodGroup(ValidationFailed):
    def __init__(self, donor_group, requested_group):
        super().__init__(f"Blood group {donor_group} cannot serve a request for {requested_group}.")


class MissingField(ValidationFailed):
    pass


class InvalidProfileValue(ValidationFailed):
    pass


# State conflicts: rejected inside a transaction before commit


class StateConflict(CoordinationError):
    pass


class InvalidState(StateConflict):
    pass


class RequestUnavailable(StateConflict):
    def __init__(self):
        super().__init__("This request is no longer available.")


class AlreadyCompleted(StateConflict):
    def __init__(self):
        super().__init__("Request already completed!")


class InsufficientStock(StateConflict):
    def __init__(self, blood_group, current: int):
        self.blood_group = blood_group
        self.current = current
        super().__init__(f"Insufficient stock for {blood_group}! Current stock: {current}")


class CodeMismatch(StateConflict):
    def __init__(self):
        super().__init__("Invalid Pickup Code! Please check with patient.")


class MissingDonor(StateConflict):
    def __init__(self):
        super().__init__("No donor is attached to this request.")


# Not found


class NotFound(CoordinationError):
    pass


class RequestNotFound(NotFound):
    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request {request_id} not found.")


class UserNotFound(NotFound):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found.")


# Authorization


class NotAuthorized(CoordinationError):
    pass


class RoleLocked(NotAuthorized):
    def __init__(self):
        super().__init__("Admin accounts cannot switch roles.")
