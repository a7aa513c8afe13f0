"""Request Repository: CRUD, queries and listeners over `requests/`."""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from config import COLLECTIONS
from contracts import (
    BloodGroup,
    BloodRequest,
    GeoPoint,
    Message,
    MessageType,
    RequestStatus,
    Urgency,
    UserProfile,
)
from store import (
    SERVER_TIMESTAMP,
    DocumentStore,
    QueryFilter,
    Subscription,
    document_path,
)


logger = logging.getLogger(__name__)


def request_path(request_id: str) -> str:
    return document_path(COLLECTIONS["requests"], request_id)


def messages_collection(request_id: str) -> str:
    return document_path(request_path(request_id), COLLECTIONS["messages"])


def newest_first(requests: Iterable[BloodRequest]) -> List[BloodRequest]:
    """Sort by creation time descending; unstamped (just written) ones lead."""
    return sorted(
        requests,
        key=lambda r: (r.created_at is None, r.created_at.timestamp() if r.created_at else 0.0),
        reverse=True,
    )


def _status_values(statuses: Sequence[RequestStatus]) -> List[str]:
    return [RequestStatus(s).value for s in statuses]


class RequestRepository:
    """Reads and writes request and chat documents.

    Store failures propagate unchanged; deciding what to do about them is the
    engine's job.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def create(
        self,
        requester: UserProfile,
        blood_group: BloodGroup,
        urgency: Urgency = Urgency.EMERGENCY,
        location: Optional[GeoPoint] = None,
        target_donor_id: Optional[str] = None,
    ) -> str:
        """Write a new pending request.

        Args:
            requester: Profile of the patient or center asking for blood
            blood_group: Group needed
            urgency: How soon it is needed
            location: Where the blood is needed (falls back to the requester's)
            target_donor_id: Donor the request was addressed to, if any

        Returns:
            The new request id
        """
        request = BloodRequest(
            patient_id=requester.id,
            patient_name=requester.label,
            blood_group=blood_group,
            urgency=urgency,
            status=RequestStatus.PENDING,
            location=location or requester.location,
            target_donor_id=target_donor_id,
        )
        data = request.to_document()
        data["createdAt"] = SERVER_TIMESTAMP
        request_id = self.store.add(COLLECTIONS["requests"], data)
        logger.info("Request %s created by %s for %s", request_id, requester.id, request.blood_group.value)
        return request_id

    def get(self, request_id: str) -> Optional[BloodRequest]:
        snapshot = self.store.get(request_path(request_id))
        if not snapshot.exists:
            return None
        return BloodRequest.from_document(snapshot.id, snapshot.data)

    def update(self, request_id: str, fields: Dict[str, Any]) -> None:
        """Partial update. Raises DocumentNotFound for an unknown id."""
        self.store.update(request_path(request_id), fields)

    def for_requester(self, requester_id: str) -> List[BloodRequest]:
        """Every request the user created, newest first."""
        snapshots = self.store.query(
            COLLECTIONS["requests"], [QueryFilter("patientId", "==", requester_id)]
        )
        return newest_first(BloodRequest.from_document(s.id, s.data) for s in snapshots)

    def with_status(
        self,
        statuses: Sequence[RequestStatus],
        exclude_requester: Optional[str] = None,
    ) -> List[BloodRequest]:
        """Requests in any of the given states, newest first."""
        snapshots = self.store.query(
            COLLECTIONS["requests"], [QueryFilter("status", "in", _status_values(statuses))]
        )
        return self._visible(snapshots, exclude_requester)

    @staticmethod
    def _visible(snapshots, exclude_requester: Optional[str]) -> List[BloodRequest]:
        requests = (BloodRequest.from_document(s.id, s.data) for s in snapshots)
        return newest_first(r for r in requests if r.patient_id != exclude_requester)

    # ---------------------- Chat ----------------------

    def append_message(
        self,
        request_id: str,
        sender_id: str,
        text: str,
        sender_name: Optional[str] = None,
        type: MessageType = MessageType.TEXT,
        coords: Optional[GeoPoint] = None,
        pickup_code: Optional[str] = None,
        system: bool = False,
    ) -> str:
        """Append a chat line stamped with the server time."""
        message = Message(
            sender_id=sender_id,
            sender_name=sender_name,
            text=text,
            type=type,
            system=system,
            coords=coords,
            pickup_code=pickup_code,
        )
        data = message.to_document()
        data["createdAt"] = SERVER_TIMESTAMP
        return self.store.add(messages_collection(request_id), data)

    def messages(self, request_id: str) -> List[Message]:
        snapshots = self.store.query(messages_collection(request_id), order_by="createdAt")
        return [Message.from_document(s.id, s.data) for s in snapshots]

    # ---------------------- Listeners ----------------------

    def watch_request(
        self,
        request_id: str,
        callback: Callable[[Optional[BloodRequest]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Subscription:
        """Follow one request; the callback receives None once it is gone."""
        def on_snapshot(snapshot):
            callback(BloodRequest.from_document(snapshot.id, snapshot.data) if snapshot.exists else None)

        return self.store.watch_document(request_path(request_id), on_snapshot, on_error)

    def watch_messages(
        self,
        request_id: str,
        callback: Callable[[List[Message]], None],
    ) -> Subscription:
        """Follow a chat, oldest message first."""
        def on_snapshot(snapshots, changes):
            callback([Message.from_document(s.id, s.data) for s in snapshots])

        return self.store.watch_query(
            messages_collection(request_id), [], on_snapshot, order_by="createdAt"
        )

    def watch_for_requester(
        self,
        requester_id: str,
        callback: Callable[[List[BloodRequest]], None],
    ) -> Subscription:
        def on_snapshot(snapshots, changes):
            callback(newest_first(BloodRequest.from_document(s.id, s.data) for s in snapshots))

        return self.store.watch_query(
            COLLECTIONS["requests"], [QueryFilter("patientId", "==", requester_id)], on_snapshot
        )

    def watch_with_status(
        self,
        statuses: Sequence[RequestStatus],
        callback: Callable[[List[BloodRequest]], None],
        exclude_requester: Optional[str] = None,
    ) -> Subscription:
        def on_snapshot(snapshots, changes):
            callback(self._visible(snapshots, exclude_requester))

        return self.store.watch_query(
            COLLECTIONS["requests"],
            [QueryFilter("status", "in", _status_values(statuses))],
            on_snapshot,
        )
