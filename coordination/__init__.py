"""Coordination Engine and its error taxonomy."""

from .engine import CoordinationEngine, HANDOVER_MESSAGE, SHARED_LOCATION_TEXT, pickup_message
from .errors import (
    CoordinationError,
    ValidationFailed,
    IncompleteDeclaration,
    DonorInCooldown,
    DonorNotVerified,
    IncompatibleBloodGroup,
    MissingField,
    InvalidProfileValue,
    StateConflict,
    InvalidState,
    RequestUnavailable,
    AlreadyCompleted,
    InsufficientStock,
    CodeMismatch,
    MissingDonor,
    NotFound,
    RequestNotFound,
    UserNotFound,
    NotAuthorized,
    RoleLocked,
)

__all__ = [
    # Engine
    "CoordinationEngine",
    "HANDOVER_MESSAGE",
    "SHARED_LOCATION_TEXT",
    "pickup_message",
    # Errors
    "CoordinationError",
    "ValidationFailed",
    "IncompleteDeclaration",
    "DonorInCooldown",
    "DonorNotVerified",
    "IncompatibleBloodGroup",
    "MissingField",
    "InvalidProfileValue",
    "StateConflict",
    "InvalidState",
    "RequestUnavailable",
    "AlreadyCompleted",
    "InsufficientStock",
    "CodeMismatch",
    "MissingDonor",
    "NotFound",
    "RequestNotFound",
    "UserNotFound",
    "NotAuthorized",
    "RoleLocked",
]
