"""User/Stock Repository: profiles, stock maps and donation history."""

import logging
from typing import Any, Callable, Dict, List, Optional

from config import COLLECTIONS
from contracts import DonationRecord, Role, UserProfile
from store import (
    SERVER_TIMESTAMP,
    DocumentStore,
    QueryFilter,
    Subscription,
    document_path,
)


logger = logging.getLogger(__name__)


def user_path(user_id: str) -> str:
    return document_path(COLLECTIONS["users"], user_id)


def donations_collection(user_id: str) -> str:
    return document_path(user_path(user_id), COLLECTIONS["donations"])


def donation_path(user_id: str, request_id: str) -> str:
    return document_path(donations_collection(user_id), request_id)


def default_profile(email: Optional[str]) -> Dict[str, Any]:
    """Minimal profile written for an identity that has none yet."""
    return {
        "email": email,
        "createdAt": SERVER_TIMESTAMP,
        "role": None,
        "isAvailable": True,
    }


class UserRepository:
    """Reads and writes `users/` documents."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get(self, user_id: str) -> Optional[UserProfile]:
        snapshot = self.store.get(user_path(user_id))
        if not snapshot.exists:
            return None
        return UserProfile.from_document(snapshot.id, snapshot.data)

    def create_default(self, user_id: str, email: Optional[str]) -> None:
        """Write the default profile, overwriting whatever is there."""
        self.store.set(user_path(user_id), default_profile(email))
        logger.info("Default profile written for %s", user_id)

    def update(self, user_id: str, fields: Dict[str, Any]) -> None:
        """Partial update. Raises DocumentNotFound for an unknown user."""
        self.store.update(user_path(user_id), fields)

    def merge(self, user_id: str, fields: Dict[str, Any]) -> None:
        """Create-or-merge write."""
        self.store.set(user_path(user_id), fields, merge=True)

    def donors(self) -> List[UserProfile]:
        snapshots = self.store.query(
            COLLECTIONS["users"], [QueryFilter("role", "==", Role.DONOR.value)]
        )
        return [UserProfile.from_document(s.id, s.data) for s in snapshots]

    def all(self) -> List[UserProfile]:
        snapshots = self.store.query(COLLECTIONS["users"])
        return [UserProfile.from_document(s.id, s.data) for s in snapshots]

    def stock(self, user_id: str) -> Dict[str, int]:
        """Stock map of a center; empty for users without one."""
        profile = self.get(user_id)
        if profile is None or profile.blood_stock is None:
            return {}
        return dict(profile.blood_stock)

    def donations(self, user_id: str) -> List[DonationRecord]:
        """Donation history, most recent first."""
        snapshots = self.store.query(donations_collection(user_id), order_by="completedAt")
        records = [DonationRecord.from_document(s.id, s.data) for s in snapshots]
        records.reverse()
        return records

    def watch(
        self,
        user_id: str,
        callback: Callable[[Optional[UserProfile]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Subscription:
        """Follow one profile; the callback receives None while it is missing."""
        def on_snapshot(snapshot):
            callback(UserProfile.from_document(snapshot.id, snapshot.data) if snapshot.exists else None)

        return self.store.watch_document(user_path(user_id), on_snapshot, on_error)

    def watch_donors(self, callback: Callable[[List[UserProfile]], None]) -> Subscription:
        def on_snapshot(snapshots, changes):
            callback([UserProfile.from_document(s.id, s.data) for s in snapshots])

        return self.store.watch_query(
            COLLECTIONS["users"], [QueryFilter("role", "==", Role.DONOR.value)], on_snapshot
        )
