"""Blood group compatibility."""

from typing import Dict, List, Optional, Union

from contracts import BloodGroup
from config import settings


GroupLike = Union[BloodGroup, str, None]


# Red cell donation table: donor group -> recipient groups
MEDICAL_COMPATIBILITY: Dict[str, List[str]] = {
    "O-": ["O-", "O+", "A-", "A+", "B-", "B+", "AB-", "AB+"],
    "O+": ["O+", "A+", "B+", "AB+"],
    "A-": ["A-", "A+", "AB-", "AB+"],
    "A+": ["A+", "AB+"],
    "B-": ["B-", "B+", "AB-", "AB+"],
    "B+": ["B+", "AB+"],
    "AB-": ["AB-", "AB+"],
    "AB+": ["AB+"],
}


def _normalize(group: GroupLike) -> Optional[str]:
    if group is None:
        return None
    value = group.value if isinstance(group, BloodGroup) else str(group)
    value = value.strip().upper()
    return value or None


def strictly_compatible(donor_group: GroupLike, patient_group: GroupLike) -> bool:
    """Exact group match. Missing input is never compatible."""
    donor, patient = _normalize(donor_group), _normalize(patient_group)
    if not donor or not patient:
        return False
    return donor == patient


def medically_compatible(donor_group: GroupLike, patient_group: GroupLike) -> bool:
    """ABO/Rh compatibility (e.g. O- gives to everyone)."""
    donor, patient = _normalize(donor_group), _normalize(patient_group)
    if not donor or not patient:
        return False
    return patient in MEDICAL_COMPATIBILITY.get(donor, [])


POLICIES = {
    "strict": strictly_compatible,
    "medical": medically_compatible,
}


def blood_compatible(
    donor_group: GroupLike,
    patient_group: GroupLike,
    policy: Optional[str] = None,
) -> bool:
    """Check a donor against a request using the configured policy.

    Args:
        donor_group: Donor's blood group
        patient_group: Requested blood group
        policy: "strict" or "medical"; defaults to settings.compatibility_policy

    Returns:
        True if the donor can serve the request
    """
    key = (policy or settings.compatibility_policy).lower()
    if key not in POLICIES:
        raise ValueError(f"Unknown compatibility policy: {key}. Available: {list(POLICIES)}")
    return POLICIES[key](donor_group, patient_group)
