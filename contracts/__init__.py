"""Pydantic contracts for the Lifeline coordination core.

Every document read from or written to the store goes through these models.
"""

from .document import CamelModel, DocumentModel, GeoPoint

from .user_contracts import (
    BloodGroup,
    ALL_BLOOD_GROUPS,
    Role,
    VerificationStatus,
    UserProfile,
)

from .request_contracts import (
    RequestStatus,
    Urgency,
    FulfillmentType,
    LiveLocation,
    BloodRequest,
    MessageType,
    Message,
    DonationRecord,
)

from .eligibility_contracts import EligibilityResult

__all__ = [
    # Base
    "CamelModel",
    "DocumentModel",
    "GeoPoint",
    # Users
    "BloodGroup",
    "ALL_BLOOD_GROUPS",
    "Role",
    "VerificationStatus",
    "UserProfile",
    # Requests
    "RequestStatus",
    "Urgency",
    "FulfillmentType",
    "LiveLocation",
    "BloodRequest",
    "MessageType",
    "Message",
    "DonationRecord",
    # Eligibility
    "EligibilityResult",
]
