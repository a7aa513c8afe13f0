"""Coordination Engine: the request lifecycle state machine.

States::

    pending -> accepted -> completed           (peer donor)
    pending -> ready_for_pickup -> completed   (center stock)

Every transition that touches more than one field or more than one document
runs inside a single store transaction, so stock, lives-saved, cooldown and
pickup-code effects are applied together or not at all.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from config import settings
from contracts import (
    ALL_BLOOD_GROUPS,
    BloodGroup,
    BloodRequest,
    FulfillmentType,
    GeoPoint,
    MessageType,
    RequestStatus,
    Role,
    Urgency,
    UserProfile,
)
from repositories import (
    RequestRepository,
    UserRepository,
    donation_path,
    request_path,
    user_path,
)
from rules import DeclarationChecklist, blood_compatible, donation_eligibility, sections_for
from store import SERVER_TIMESTAMP, DocumentStore, Increment, StoreError, Transaction

from .errors import (
    AlreadyCompleted,
    CodeMismatch,
    DonorInCooldown,
    DonorNotVerified,
    IncompatibleBloodGroup,
    IncompleteDeclaration,
    InsufficientStock,
    InvalidProfileValue,
    InvalidState,
    MissingDonor,
    MissingField,
    NotAuthorized,
    RequestNotFound,
    RequestUnavailable,
    RoleLocked,
    UserNotFound,
)


logger = logging.getLogger(__name__)

SHARED_LOCATION_TEXT = "📍 Shared Location"
DEFAULT_CENTER_NAME = "Blood Bank Admin"
DEFAULT_CENTER_PHONE = "Blood Bank"
PHONE_NOT_SHARED = "Not Shared"


def pickup_message(code: str) -> str:
    return (
        "Great news! We have reserved the blood for your request. "
        f"Your Secure Pickup Code is: {code}. "
        "Please show this code at the Blood Bank counter to collect it."
    )


HANDOVER_MESSAGE = (
    "Handover Complete! The pickup verification was successful. "
    "We are honored to support you - wishing the patient a speedy recovery!"
)


def _blood_group(value: Union[BloodGroup, str, None]) -> BloodGroup:
    if not value:
        raise MissingField("Please select a blood group.")
    try:
        return BloodGroup(value)
    except ValueError:
        raise InvalidProfileValue(f"Unknown blood group: {value}") from None


class CoordinationEngine:
    """Request lifecycle actions.

    Construct once per process (or per session) and pass it to whatever
    needs it. Every action takes the acting user's id explicitly.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the engine.

        Args:
            store: Document store holding users and requests
            clock: Source of "now" for eligibility checks (defaults to UTC now)
        """
        self.store = store
        self.requests = RequestRepository(store)
        self.users = UserRepository(store)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ---------------------- Helpers ----------------------

    def _require_user(self, user_id: str) -> UserProfile:
        profile = self.users.get(user_id)
        if profile is None:
            raise UserNotFound(user_id)
        return profile

    def _require_request(self, request_id: str) -> BloodRequest:
        request = self.requests.get(request_id)
        if request is None:
            raise RequestNotFound(request_id)
        return request

    @staticmethod
    def _read_request(transaction: Transaction, request_id: str) -> BloodRequest:
        snapshot = transaction.get(request_path(request_id))
        if not snapshot.exists:
            raise RequestNotFound(request_id)
        return BloodRequest.from_document(snapshot.id, snapshot.data)

    @staticmethod
    def _read_user(transaction: Transaction, user_id: str) -> UserProfile:
        snapshot = transaction.get(user_path(user_id))
        if not snapshot.exists:
            raise UserNotFound(user_id)
        return UserProfile.from_document(snapshot.id, snapshot.data)

    @staticmethod
    def _check_declaration(donor: UserProfile, declaration: Optional[DeclarationChecklist]) -> None:
        """The checklist must be the one for the donor's recorded gender, fully ticked."""
        applicable = [item.id for section in sections_for(donor.gender) for item in section.items]
        if declaration is None:
            raise IncompleteDeclaration(applicable)
        missing = [item_id for item_id in applicable if not declaration.is_checked(item_id)]
        if missing or declaration.consumed or set(declaration.item_ids) != set(applicable):
            raise IncompleteDeclaration(missing)

    def _check_cooldown(self, donor: UserProfile) -> None:
        result = donation_eligibility(donor.last_donated, donor.gender, now=self._clock())
        if not result.eligible:
            raise DonorInCooldown(result.message)

    def _post_system_message(self, request_id: str, sender: UserProfile, text: str, **extra) -> None:
        """Best-effort notice; the transition it reports has already committed."""
        try:
            self.requests.append_message(
                request_id,
                sender_id=sender.id,
                sender_name=sender.label,
                text=text,
                type=MessageType.SYSTEM,
                system=True,
                **extra,
            )
        except StoreError as e:
            logger.warning("System message for request %s not posted: %s", request_id, e)

    # ---------------------- Transitions ----------------------

    def broadcast_request(
        self,
        requester_id: str,
        blood_group: Union[BloodGroup, str],
        urgency: Union[Urgency, str] = Urgency.EMERGENCY,
        location: Optional[GeoPoint] = None,
        target_donor_id: Optional[str] = None,
    ) -> str:
        """Create a pending request visible to every donor.

        Args:
            requester_id: Patient or center asking for blood
            blood_group: Group needed
            urgency: Emergency, High, Routine or Scheduled
            location: Where the blood is needed (defaults to the requester's)
            target_donor_id: Donor picked from the donor list, if any

        Returns:
            The new request id
        """
        group = _blood_group(blood_group)
        requester = self._require_user(requester_id)
        request_id = self.requests.create(
            requester,
            group,
            urgency=Urgency(urgency),
            location=location,
            target_donor_id=target_donor_id,
        )
        logger.info("broadcast_request: %s needs %s (%s)", requester_id, group.value, Urgency(urgency).value)
        return request_id

    def accept_request(
        self,
        request_id: str,
        donor_id: str,
        declaration: Optional[DeclarationChecklist],
    ) -> None:
        """Take a pending request as its donor.

        At most one donor can win: the request is re-read inside the
        transaction and anything other than `pending` is rejected.

        Raises:
            NotAuthorized: caller is not a donor
            IncompleteDeclaration: declaration missing, partial or already used
            DonorInCooldown: donor donated too recently
            IncompatibleBloodGroup: donor's group cannot serve the request
            RequestNotFound / RequestUnavailable: request gone or taken
        """
        donor = self._require_user(donor_id)
        if not donor.is_donor:
            raise NotAuthorized("Only donors can accept requests.")
        self._check_declaration(donor, declaration)
        self._check_cooldown(donor)

        def body(transaction: Transaction) -> BloodRequest:
            request = self._read_request(transaction, request_id)
            if request.status != RequestStatus.PENDING:
                raise RequestUnavailable()
            if not blood_compatible(donor.blood_group, request.blood_group):
                raise IncompatibleBloodGroup(
                    donor.blood_group.value if donor.blood_group else "unknown",
                    request.blood_group.value,
                )

            transaction.update(request_path(request_id), {
                "status": RequestStatus.ACCEPTED.value,
                "donorId": donor.id,
                "donorName": donor.label,
                "donorPhone": donor.phone_number or PHONE_NOT_SHARED,
                "acceptedAt": SERVER_TIMESTAMP,
                "consentGiven": True,
                "consentTimestamp": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            })
            transaction.update(user_path(donor.id), {
                "lastConsentAgreedAt": SERVER_TIMESTAMP,
            })
            return request

        self.store.run_transaction(body)
        declaration.consume()
        logger.info("accept_request: %s accepted by %s", request_id, donor_id)

    def complete_request(self, request_id: str, requester_id: str) -> None:
        """Confirm that a peer donor delivered.

        In one transaction: completes the request, records the donation under
        the donor, credits the donor (lives saved, cooldown reset, auto-rest)
        and, when the requester is a stock-holding center, adds the unit to
        its inventory.
        """
        def body(transaction: Transaction) -> None:
            request = self._read_request(transaction, request_id)
            if request.patient_id != requester_id:
                raise NotAuthorized("Only the requester can confirm receipt.")
            if request.status != RequestStatus.ACCEPTED:
                raise InvalidState(f"Request is {request.status.value}, not accepted.")
            if not request.donor_id:
                raise MissingDonor()

            self._read_user(transaction, request.donor_id)
            requester_snapshot = transaction.get(user_path(requester_id))
            requester = (
                UserProfile.from_document(requester_snapshot.id, requester_snapshot.data)
                if requester_snapshot.exists else None
            )

            transaction.update(request_path(request_id), {
                "status": RequestStatus.COMPLETED.value,
                "completedAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
                "fulfillmentType": FulfillmentType.PEER_DONATION.value,
            })
            record = {
                "requestId": request_id,
                "patientName": request.patient_name,
                "bloodGroup": request.blood_group.value,
                "completedAt": SERVER_TIMESTAMP,
                "status": "completed",
            }
            if request.location is not None:
                record["location"] = request.location.model_dump()
            transaction.set(donation_path(request.donor_id, request_id), record)
            transaction.update(user_path(request.donor_id), {
                "livesSaved": Increment(1),
                "lastDonated": SERVER_TIMESTAMP,
                "isAvailable": False,
            })
            if requester is not None and requester.holds_stock:
                transaction.update(user_path(requester_id), {
                    f"bloodStock.{request.blood_group.value}": Increment(1),
                })

        self.store.run_transaction(body)
        logger.info("complete_request: %s completed by %s", request_id, requester_id)

    def fulfill_request_by_admin(
        self,
        request_id: str,
        blood_group: Union[BloodGroup, str],
        admin_id: str,
    ) -> str:
        """Reserve a unit from center stock and issue a pickup code.

        The code is drawn once, before the transaction, so retries reuse it.
        Lives-saved credit waits for `verify_pickup_code`.

        Returns:
            The 6-digit pickup code
        """
        group = _blood_group(blood_group)
        code = str(settings.pickup_code_min + secrets.randbelow(
            settings.pickup_code_max - settings.pickup_code_min + 1
        ))

        def body(transaction: Transaction) -> UserProfile:
            admin = self._read_user(transaction, admin_id)
            if not admin.is_admin:
                raise NotAuthorized("Only blood bank admins can supply from stock.")
            current = admin.stock_for(group)
            if current <= 0:
                raise InsufficientStock(group.value, current)

            request = self._read_request(transaction, request_id)
            if request.status == RequestStatus.COMPLETED:
                raise AlreadyCompleted()
            if request.status != RequestStatus.PENDING:
                raise InvalidState(f"Request is {request.status.value}, not pending.")
            if not blood_compatible(group, request.blood_group):
                raise IncompatibleBloodGroup(group.value, request.blood_group.value)

            transaction.update(user_path(admin_id), {
                f"bloodStock.{group.value}": Increment(-1),
            })
            transaction.update(request_path(request_id), {
                "status": RequestStatus.READY_FOR_PICKUP.value,
                "pickupCode": code,
                "updatedAt": SERVER_TIMESTAMP,
                "donorId": admin.id,
                "donorName": admin.display_name or DEFAULT_CENTER_NAME,
                "donorPhone": admin.phone_number or DEFAULT_CENTER_PHONE,
                "fulfillmentType": FulfillmentType.STOCK_SUPPLY.value,
            })
            return admin

        admin = self.store.run_transaction(body)
        logger.info("fulfill_request_by_admin: %s reserved %s for %s", admin_id, group.value, request_id)
        self._post_system_message(request_id, admin, pickup_message(code), pickup_code=code)
        return code

    def verify_pickup_code(self, request_id: str, supplied_code: str, verifier_id: str) -> None:
        """Complete a stock-supply request once the patient shows their code.

        Raises:
            NotAuthorized: verifier is not an admin
            InvalidState: request is not awaiting pickup (including a second call)
            CodeMismatch: code differs from the one issued
        """
        verifier = self._require_user(verifier_id)
        if not verifier.is_admin:
            raise NotAuthorized("Only blood bank admins can verify pickup codes.")

        def body(transaction: Transaction) -> None:
            request = self._read_request(transaction, request_id)
            if request.status != RequestStatus.READY_FOR_PICKUP:
                raise InvalidState("Request is not awaiting pickup.")
            if str(supplied_code) != request.pickup_code:
                raise CodeMismatch()
            if not request.donor_id:
                raise MissingDonor()

            transaction.update(request_path(request_id), {
                "status": RequestStatus.COMPLETED.value,
                "completedAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
                "verifiedBy": verifier_id,
            })
            transaction.update(user_path(request.donor_id), {
                "livesSaved": Increment(1),
            })

        self.store.run_transaction(body)
        logger.info("verify_pickup_code: %s handed over by %s", request_id, verifier_id)
        self._post_system_message(request_id, verifier, HANDOVER_MESSAGE)

    def toggle_donor_availability(
        self,
        donor_id: str,
        want: bool,
        declaration: Optional[DeclarationChecklist] = None,
    ) -> None:
        """Turn a donor's availability on or off.

        Turning it on needs a recovered, verified donor and a freshly
        completed declaration; turning it off needs nothing.
        """
        donor = self._require_user(donor_id)
        if not donor.is_donor:
            raise NotAuthorized("Only donors can change availability.")

        if want:
            self._check_cooldown(donor)
            if not donor.is_verified:
                raise DonorNotVerified()
            self._check_declaration(donor, declaration)

        self.users.update(donor_id, {
            "isAvailable": bool(want),
            "lastActive": SERVER_TIMESTAMP,
        })
        if want:
            declaration.consume()
        logger.info("toggle_donor_availability: %s -> %s", donor_id, bool(want))

    def assign_role(
        self,
        user_id: str,
        role: Union[Role, str],
        actor_id: Optional[str] = None,
    ) -> None:
        """Set a user's role. Donors start out available.

        Users pick donor or patient for themselves; only an existing admin may
        set someone else's role or promote an account to admin. Admin accounts
        are locked: switching them to another role raises RoleLocked. A new
        admin gets a zeroed stock map.

        Args:
            user_id: Account whose role changes
            role: donor, patient or admin
            actor_id: Who is asking (defaults to the user themselves)
        """
        actor_id = actor_id or user_id
        try:
            role = Role(role)
        except ValueError:
            raise InvalidProfileValue(f"Unknown role: {role}") from None

        def body(transaction: Transaction) -> None:
            snapshot = transaction.get(user_path(user_id))
            profile = UserProfile.from_document(snapshot.id, snapshot.data) if snapshot.exists else None
            if role == Role.ADMIN or actor_id != user_id:
                actor = profile if actor_id == user_id else self._read_user(transaction, actor_id)
                if actor is None or not actor.is_admin:
                    raise NotAuthorized("Only blood bank admins can assign this role.")
            if profile is not None and profile.is_admin and role != Role.ADMIN:
                raise RoleLocked()

            data = {
                "role": role.value,
                "isAvailable": role == Role.DONOR,
            }
            if profile is None or profile.created_at is None:
                data["createdAt"] = SERVER_TIMESTAMP
            if role == Role.ADMIN and (profile is None or profile.blood_stock is None):
                data["bloodStock"] = {group: 0 for group in ALL_BLOOD_GROUPS}
            transaction.set(user_path(user_id), data, merge=True)

        self.store.run_transaction(body)
        logger.info("assign_role: %s -> %s (by %s)", user_id, role.value, actor_id)

    # ---------------------- Chat, tracking and stock ----------------------

    def send_message(
        self,
        request_id: str,
        sender_id: str,
        text: str,
        type: MessageType = MessageType.TEXT,
        coords: Optional[GeoPoint] = None,
    ) -> str:
        """Post a chat line to a request the sender takes part in."""
        if not text or not text.strip():
            raise MissingField("Message cannot be empty.")
        sender = self._require_user(sender_id)
        request = self._require_request(request_id)
        if not request.involves(sender_id):
            raise NotAuthorized("Only the requester and the donor can chat on this request.")
        return self.requests.append_message(
            request_id,
            sender_id=sender_id,
            sender_name=sender.label,
            text=text.strip(),
            type=MessageType(type),
            coords=coords,
        )

    def share_location_message(self, request_id: str, sender_id: str, lat: float, lng: float) -> str:
        return self.send_message(
            request_id,
            sender_id,
            SHARED_LOCATION_TEXT,
            type=MessageType.LOCATION,
            coords=GeoPoint(lat=lat, lng=lng),
        )

    def update_live_location(self, request_id: str, sharer_id: str, lat: float, lng: float) -> None:
        """Publish the sharer's current position on the request."""
        request = self._require_request(request_id)
        if not request.involves(sharer_id):
            raise NotAuthorized("Only the requester and the donor can share location on this request.")
        if request.is_terminal:
            raise InvalidState("Request is already completed.")
        self.requests.update(request_id, {
            "liveLocation": {
                "lat": lat,
                "lng": lng,
                "updatedAt": SERVER_TIMESTAMP,
                "sharerId": sharer_id,
            },
        })
        logger.debug("update_live_location: %s at %.4f,%.4f", request_id, lat, lng)

    def set_stock_level(self, admin_id: str, blood_group: Union[BloodGroup, str], units: int) -> None:
        """Set a center's on-hand units for one blood group."""
        group = _blood_group(blood_group)
        if units < 0:
            raise InvalidProfileValue("Stock cannot be negative.")

        def body(transaction: Transaction) -> None:
            admin = self._read_user(transaction, admin_id)
            if not admin.is_admin:
                raise NotAuthorized("Only blood bank admins can edit stock.")
            transaction.update(user_path(admin_id), {
                f"bloodStock.{group.value}": int(units),
            })

        self.store.run_transaction(body)
        logger.info("set_stock_level: %s %s=%d", admin_id, group.value, units)
