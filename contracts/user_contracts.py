"""User profile contracts."""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import Field, field_validator

from .document import DocumentModel, GeoPoint


class BloodGroup(str, Enum):
    """ABO/Rh blood group."""
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


ALL_BLOOD_GROUPS = [g.value for g in BloodGroup]


class Role(str, Enum):
    """Account role. An unset role is stored as null."""
    DONOR = "donor"
    PATIENT = "patient"
    ADMIN = "admin"


class VerificationStatus(str, Enum):
    """Progress of a donor's physical identity verification."""
    REQUESTED = "requested"
    VERIFIED = "verified"
    REJECTED = "rejected"


class UserProfile(DocumentModel):
    """A `users/{uid}` document."""
    email: Optional[str] = None
    display_name: Optional[str] = None
    role: Optional[Role] = None
    blood_group: Optional[BloodGroup] = None
    gender: Optional[str] = None
    phone_number: Optional[str] = None
    age: Optional[int] = Field(None, ge=0, le=130)
    weight: Optional[float] = Field(None, ge=0)
    is_available: bool = False
    is_verified: bool = False
    verification_status: Optional[VerificationStatus] = None
    verification_requested_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    last_donated: Optional[datetime] = None
    lives_saved: int = 0
    blood_stock: Optional[Dict[str, int]] = None
    location: Optional[GeoPoint] = None
    last_active: Optional[datetime] = None
    last_consent_agreed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("role", "blood_group", "verification_status", "age", "weight", mode="before")
    @classmethod
    def _blank_is_unset(cls, value):
        # Browser forms write "" for an untouched select or input
        if value == "":
            return None
        return value

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_donor(self) -> bool:
        return self.role == Role.DONOR

    @property
    def holds_stock(self) -> bool:
        """True for center accounts that keep a per-group inventory."""
        return self.is_admin or self.blood_stock is not None

    @property
    def label(self) -> str:
        """Human-readable name for denormalized copies."""
        return self.display_name or self.email or self.id

    def stock_for(self, blood_group: str) -> int:
        """Units on hand for one blood group."""
        key = blood_group.value if isinstance(blood_group, BloodGroup) else blood_group
        return int((self.blood_stock or {}).get(key, 0))
