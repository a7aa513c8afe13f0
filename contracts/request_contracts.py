"""Blood request, chat message and donation history contracts."""

from datetime import datetime
from enum import Enum
from typing import Optional

from .document import CamelModel, DocumentModel, GeoPoint
from .user_contracts import BloodGroup


class RequestStatus(str, Enum):
    """Lifecycle state of a request.

    pending -> accepted -> completed (peer donor)
    pending -> ready_for_pickup -> completed (center stock)
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    READY_FOR_PICKUP = "ready_for_pickup"
    COMPLETED = "completed"


class Urgency(str, Enum):
    """How soon the blood is needed."""
    EMERGENCY = "Emergency"
    HIGH = "High"
    ROUTINE = "Routine"
    SCHEDULED = "Scheduled"


class FulfillmentType(str, Enum):
    """Where the blood came from."""
    PEER_DONATION = "peer_donation"
    STOCK_SUPPLY = "stock_supply"


class LiveLocation(CamelModel):
    """Position shared by whichever party is in transit."""
    lat: float
    lng: float
    updated_at: Optional[datetime] = None
    sharer_id: Optional[str] = None


class BloodRequest(DocumentModel):
    """A `requests/{id}` document."""
    patient_id: str
    patient_name: Optional[str] = None
    blood_group: BloodGroup
    urgency: Urgency = Urgency.EMERGENCY
    status: RequestStatus = RequestStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    location: Optional[GeoPoint] = None
    live_location: Optional[LiveLocation] = None
    target_donor_id: Optional[str] = None
    donor_id: Optional[str] = None
    donor_name: Optional[str] = None
    donor_phone: Optional[str] = None
    accepted_at: Optional[datetime] = None
    consent_given: bool = False
    consent_timestamp: Optional[datetime] = None
    pickup_code: Optional[str] = None
    completed_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    fulfillment_type: Optional[FulfillmentType] = None

    @property
    def is_terminal(self) -> bool:
        return self.status == RequestStatus.COMPLETED

    def involves(self, user_id: str) -> bool:
        """True if the user is the requester or the matched donor."""
        return user_id in (self.patient_id, self.donor_id)


class MessageType(str, Enum):
    TEXT = "text"
    LOCATION = "location"
    SYSTEM = "system"


class Message(DocumentModel):
    """A chat line under `requests/{id}/messages`."""
    sender_id: str
    sender_name: Optional[str] = None
    text: str
    type: MessageType = MessageType.TEXT
    system: bool = False
    coords: Optional[GeoPoint] = None
    pickup_code: Optional[str] = None
    created_at: Optional[datetime] = None


class DonationRecord(DocumentModel):
    """A `users/{uid}/donations/{requestId}` history entry."""
    request_id: str
    patient_name: Optional[str] = None
    blood_group: BloodGroup
    location: Optional[GeoPoint] = None
    completed_at: Optional[datetime] = None
    status: str = "completed"
