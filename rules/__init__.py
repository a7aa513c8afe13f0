"""Pure donation rules: eligibility, compatibility, distance and declaration."""

from .eligibility import donation_eligibility
from .compatibility import (
    MEDICAL_COMPATIBILITY,
    blood_compatible,
    medically_compatible,
    strictly_compatible,
)
from .geo import haversine_distance_km, format_distance
from .declaration import (
    DeclarationItem,
    DeclarationSection,
    DeclarationChecklist,
    sections_for,
)

__all__ = [
    # Eligibility
    "donation_eligibility",
    # Compatibility
    "MEDICAL_COMPATIBILITY",
    "blood_compatible",
    "medically_compatible",
    "strictly_compatible",
    # Distance
    "haversine_distance_km",
    "format_distance",
    # Declaration
    "DeclarationItem",
    "DeclarationSection",
    "DeclarationChecklist",
    "sections_for",
]
