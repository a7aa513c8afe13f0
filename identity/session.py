"""Profile session and profile management.

`ProfileSession` follows the signed-in identity's profile document and
repairs a missing one. `ProfileService` covers the profile page and the
admin verification queue.
"""

import logging
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Union

from config import settings
from contracts import BloodGroup, DonationRecord, GeoPoint, Role, UserProfile, VerificationStatus
from coordination.errors import (
    InvalidProfileValue,
    MissingField,
    NotAuthorized,
    UserNotFound,
)
from live.observable import Observable
from repositories import UserRepository
from store import SERVER_TIMESTAMP, PermissionDenied, StoreError, Subscription

from .base import AuthUser, IdentityProvider


logger = logging.getLogger(__name__)

VERIFICATION_FILTERS = ("requested", "pending", "verified", "all")


class ProfileSession:
    """The current user's live profile.

    `profile` always holds something usable while an identity is signed in:
    either the stored profile or a temporary stand-in built from the
    identity while the stored one is being recreated.
    """

    def __init__(self, identity: IdentityProvider, users: UserRepository):
        self.identity = identity
        self.users = users
        self.user: Optional[AuthUser] = None
        self.profile: Observable[Optional[UserProfile]] = Observable(None)
        self.loading = True
        self._auth_subscription: Optional[Subscription] = None
        self._profile_subscription: Optional[Subscription] = None

    def start(self) -> "ProfileSession":
        self._auth_subscription = self.identity.on_auth_state_changed(self._on_auth_state)
        return self

    def stop(self) -> None:
        self._drop_profile_watch()
        if self._auth_subscription is not None:
            self._auth_subscription.unsubscribe()
            self._auth_subscription = None

    def _drop_profile_watch(self) -> None:
        if self._profile_subscription is not None:
            self._profile_subscription.unsubscribe()
            self._profile_subscription = None

    def _on_auth_state(self, user: Optional[AuthUser]) -> None:
        self._drop_profile_watch()
        self.user = user
        if user is None:
            self.profile.set(None)
            self.loading = False
            return

        logger.debug("Following profile of %s", user.uid)
        self.loading = True
        self._profile_subscription = self.users.watch(
            user.uid, self._on_profile, on_error=self._on_profile_error
        )

    def _stand_in(self, user: AuthUser) -> UserProfile:
        return UserProfile(id=user.uid, email=user.email, display_name=user.display_name)

    def _on_profile(self, profile: Optional[UserProfile]) -> None:
        user = self.user
        if user is None:
            return

        if profile is not None:
            if profile.is_admin and not profile.is_verified:
                profile = profile.model_copy(update={"is_verified": True})
            self.profile.set(profile)
            self.loading = False
            return

        logger.info("Profile of %s missing, recreating it", user.uid)
        self.profile.set(self._stand_in(user))
        self.loading = False
        try:
            self.users.create_default(user.uid, user.email)
        except StoreError as e:
            logger.error("Could not recreate profile of %s: %s", user.uid, e)

    def _on_profile_error(self, error: Exception) -> None:
        user = self.user
        if user is None:
            return

        logger.warning("Profile of %s unreadable: %s", user.uid, error)
        self.profile.set(self._stand_in(user))
        self.loading = False
        if isinstance(error, PermissionDenied):
            # Strict rules deny reading a document that does not exist yet
            try:
                self.users.create_default(user.uid, user.email)
                logger.info("Blind write of default profile for %s sent", user.uid)
            except StoreError as e:
                logger.error("Blind write for %s failed: %s", user.uid, e)


def _as_datetime(value: Union[datetime, date, str, None]) -> Optional[datetime]:
    """Normalize a profile date input; empty input clears the field."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=timezone.utc)
    try:
        return _as_datetime(datetime.fromisoformat(value))
    except ValueError:
        raise InvalidProfileValue(f"Invalid date: {value}") from None


def _as_number(value: Any, label: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidProfileValue(f"{label} must be a number.") from None


# Profile-page fields and their stored names
EDITABLE_FIELDS = {
    "display_name": "displayName",
    "gender": "gender",
    "blood_group": "bloodGroup",
    "phone_number": "phoneNumber",
    "age": "age",
    "weight": "weight",
    "last_donated": "lastDonated",
    "location": "location",
}


class ProfileService:
    """Signup, profile edits and identity verification."""

    def __init__(self, users: UserRepository):
        self.users = users

    def _require(self, user_id: str) -> UserProfile:
        profile = self.users.get(user_id)
        if profile is None:
            raise UserNotFound(user_id)
        return profile

    def _require_admin(self, admin_id: str) -> UserProfile:
        admin = self._require(admin_id)
        if not admin.is_admin:
            raise NotAuthorized("Only blood bank admins can verify donors.")
        return admin

    def signup(
        self,
        user: AuthUser,
        role: Union[Role, str],
        blood_group: Union[BloodGroup, str, None] = None,
        gender: Optional[str] = None,
        display_name: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> UserProfile:
        """Create the profile of a newly registered donor or patient.

        Admin accounts are never created here; they are promoted with
        `CoordinationEngine.assign_role`.
        """
        try:
            role = Role(role)
        except ValueError:
            raise InvalidProfileValue(f"Unknown role: {role}") from None
        if role == Role.ADMIN:
            raise NotAuthorized("Admin accounts cannot be created by signup.")
        if not blood_group:
            raise MissingField("Please select a blood group.")
        try:
            group = BloodGroup(blood_group)
        except ValueError:
            raise InvalidProfileValue(f"Unknown blood group: {blood_group}") from None

        profile = UserProfile(
            id=user.uid,
            email=user.email,
            display_name=display_name or user.display_name,
            role=role,
            blood_group=group,
            gender=gender,
            phone_number=phone_number or user.phone_number,
            is_available=role == Role.DONOR,
        )
        data = profile.to_document()
        data["createdAt"] = SERVER_TIMESTAMP
        self.users.merge(user.uid, data)
        logger.info("Signed up %s as %s (%s)", user.uid, role.value, group.value)
        return self._require(user.uid)

    def update_profile(self, user_id: str, **fields) -> None:
        """Apply profile-page edits.

        Args:
            user_id: Profile owner
            **fields: Any of display_name, gender, blood_group, phone_number,
                age, weight, last_donated (None or "" clears it), location

        Raises:
            InvalidProfileValue: donor thresholds not met, or malformed input
        """
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidProfileValue(f"Not editable: {', '.join(sorted(unknown))}")
        profile = self._require(user_id)

        if "age" in fields:
            fields["age"] = _as_number(fields["age"], "Age")
            if fields["age"] is not None:
                fields["age"] = int(fields["age"])
        if "weight" in fields:
            fields["weight"] = _as_number(fields["weight"], "Weight")

        if not profile.is_admin:
            age = fields.get("age")
            if age is not None and age < settings.min_donor_age:
                raise InvalidProfileValue(
                    f"Age must be at least {settings.min_donor_age} years to donate blood."
                )
            weight = fields.get("weight")
            if weight is not None and weight < settings.min_donor_weight_kg:
                raise InvalidProfileValue(
                    f"Weight must be at least {settings.min_donor_weight_kg} kg to donate blood."
                )

        update: Dict[str, Any] = {}
        for key, value in fields.items():
            if key == "last_donated":
                value = _as_datetime(value)
            elif key == "blood_group" and value:
                try:
                    value = BloodGroup(value).value
                except ValueError:
                    raise InvalidProfileValue(f"Unknown blood group: {value}") from None
            elif key == "location" and value is not None:
                value = GeoPoint.model_validate(value).model_dump()
            update[EDITABLE_FIELDS[key]] = value

        self.users.merge(user_id, update)
        logger.info("Profile of %s updated (%s)", user_id, ", ".join(sorted(fields)))

    def missing_for_verification(self, profile: UserProfile) -> List[str]:
        """Profile details an admin needs before verifying someone in person."""
        missing = []
        if profile.is_admin:
            if not profile.display_name:
                missing.append("Clinic Name")
            if not profile.phone_number:
                missing.append("Phone Number")
            return missing

        if not profile.age or profile.age < settings.min_donor_age:
            missing.append(f"Age ({settings.min_donor_age}+)")
        if not profile.weight or profile.weight < settings.min_donor_weight_kg:
            missing.append(f"Weight ({settings.min_donor_weight_kg}kg+)")
        if not profile.blood_group:
            missing.append("Blood Group")
        if not profile.phone_number:
            missing.append("Phone Number")
        return missing

    def request_verification(self, user_id: str) -> None:
        """Ask for physical verification at a blood bank."""
        profile = self._require(user_id)
        missing = self.missing_for_verification(profile)
        if missing:
            raise MissingField(
                "Please complete the following profile details first: " + ", ".join(missing)
            )
        self.users.update(user_id, {
            "verificationStatus": VerificationStatus.REQUESTED.value,
            "verificationRequestedAt": SERVER_TIMESTAMP,
        })
        logger.info("Verification requested by %s", user_id)

    def verify_donor(self, admin_id: str, user_id: str) -> None:
        self._require_admin(admin_id)
        self._require(user_id)
        self.users.update(user_id, {
            "isVerified": True,
            "verificationStatus": VerificationStatus.VERIFIED.value,
            "verifiedAt": SERVER_TIMESTAMP,
        })
        logger.info("Donor %s verified by %s", user_id, admin_id)

    def reject_verification(self, admin_id: str, user_id: str) -> None:
        self._require_admin(admin_id)
        self._require(user_id)
        self.users.update(user_id, {
            "isVerified": False,
            "verificationStatus": VerificationStatus.REJECTED.value,
        })
        logger.info("Verification of %s rejected by %s", user_id, admin_id)

    def verification_queue(self, admin_id: str, filter: str = "requested") -> List[UserProfile]:
        """Non-admin accounts for the verification screen.

        Args:
            admin_id: Admin viewing the queue
            filter: requested (asked and unverified), pending (all unverified),
                verified, or all
        """
        if filter not in VERIFICATION_FILTERS:
            raise ValueError(f"Unknown filter: {filter}. Available: {list(VERIFICATION_FILTERS)}")
        self._require_admin(admin_id)

        def keep(profile: UserProfile) -> bool:
            if filter == "all":
                return True
            if filter == "verified":
                return profile.is_verified
            if filter == "requested":
                return profile.verification_status == VerificationStatus.REQUESTED and not profile.is_verified
            return not profile.is_verified

        return [p for p in self.users.all() if not p.is_admin and keep(p)]

    def donation_history(self, user_id: str) -> List[DonationRecord]:
        return self.users.donations(user_id)
