"""Cloud Firestore backend."""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as gexc
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath

from config import settings

from .base import (
    SERVER_TIMESTAMP,
    ChangeType,
    DocumentCallback,
    DocumentChange,
    DocumentSnapshot,
    DocumentStore,
    ErrorCallback,
    Increment,
    QueryCallback,
    QueryFilter,
    Subscription,
    T,
    Transaction,
)
from .errors import (
    DocumentNotFound,
    PermissionDenied,
    StoreError,
    StoreUnavailable,
    TransactionAborted,
)


logger = logging.getLogger(__name__)


def initialize_firebase_app(credentials_path: Optional[str], project_id: Optional[str]):
    """Initialize the default Firebase app once per process."""
    if firebase_admin._apps:
        return firebase_admin.get_app()

    if credentials_path:
        cred = credentials.Certificate(credentials_path)
    else:
        cred = credentials.ApplicationDefault()
    options = {"projectId": project_id} if project_id else None
    logger.info("Initializing Firebase app (project=%s)", project_id or "default")
    return firebase_admin.initialize_app(cred, options)


def _to_firestore(value: Any) -> Any:
    """Swap store sentinels for their Firestore equivalents."""
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if isinstance(value, Increment):
        return firestore.Increment(value.amount)
    if isinstance(value, dict):
        return {k: _to_firestore(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_firestore(v) for v in value]
    return value


def _update_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert dotted keys into escaped Firestore field paths."""
    return {
        FieldPath(*key.split(".")).to_api_repr(): _to_firestore(value)
        for key, value in data.items()
    }


def _snapshot(doc) -> DocumentSnapshot:
    return DocumentSnapshot(
        id=doc.id,
        path=doc.reference.path,
        data=doc.to_dict() if doc.exists else None,
    )


def _translate(error: Exception, path: str = "") -> StoreError:
    """Map google-cloud errors onto the store error taxonomy."""
    if isinstance(error, gexc.NotFound):
        return DocumentNotFound(path)
    if isinstance(error, (gexc.PermissionDenied, gexc.Unauthenticated)):
        return PermissionDenied(str(error))
    if isinstance(error, (gexc.ServiceUnavailable, gexc.DeadlineExceeded)):
        return StoreUnavailable(str(error))
    if isinstance(error, gexc.Aborted):
        return TransactionAborted(str(error))
    return StoreError(str(error))


class FirestoreTransaction(Transaction):
    """Thin adapter over `google.cloud.firestore.Transaction`."""

    def __init__(self, client, transaction):
        self._client = client
        self._transaction = transaction

    def get(self, path: str) -> DocumentSnapshot:
        doc = self._client.document(path).get(transaction=self._transaction)
        return _snapshot(doc)

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._transaction.set(self._client.document(path), _to_firestore(data), merge=merge)

    def update(self, path: str, data: Dict[str, Any]) -> None:
        self._transaction.update(self._client.document(path), _update_payload(data))


class FirestoreStore(DocumentStore):
    """DocumentStore backed by Cloud Firestore via firebase-admin."""

    def __init__(
        self,
        credentials_path: Optional[str] = None,
        project_id: Optional[str] = None,
        client=None,
    ):
        """Initialize the backend.

        Args:
            credentials_path: Service account JSON (defaults to settings)
            project_id: Firebase project id (defaults to settings)
            client: Pre-built Firestore client, skips app initialization
        """
        self.credentials_path = credentials_path or settings.firebase_credentials_path
        self.project_id = project_id or settings.firebase_project_id
        self._client = client

    @property
    def name(self) -> str:
        return "firestore"

    @property
    def client(self):
        if self._client is None:
            app = initialize_firebase_app(self.credentials_path, self.project_id)
            self._client = firestore.client(app)
        return self._client

    def is_available(self) -> bool:
        return self._client is not None or bool(self.credentials_path or self.project_id)

    def get(self, path: str) -> DocumentSnapshot:
        try:
            return _snapshot(self.client.document(path).get())
        except gexc.GoogleAPICallError as e:
            raise _translate(e, path) from e

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        try:
            self.client.document(path).set(_to_firestore(data), merge=merge)
        except gexc.GoogleAPICallError as e:
            raise _translate(e, path) from e

    def update(self, path: str, data: Dict[str, Any]) -> None:
        try:
            self.client.document(path).update(_update_payload(data))
        except gexc.GoogleAPICallError as e:
            raise _translate(e, path) from e

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        try:
            _, ref = self.client.collection(collection).add(_to_firestore(data))
        except gexc.GoogleAPICallError as e:
            raise _translate(e, collection) from e
        return ref.id

    def _build_query(
        self,
        collection: str,
        filters: Sequence[QueryFilter],
        order_by: Optional[str],
    ):
        query = self.client.collection(collection)
        for f in filters:
            query = query.where(filter=FieldFilter(f.field, f.op, f.value))
        if order_by:
            query = query.order_by(order_by)
        return query

    def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        order_by: Optional[str] = None,
    ) -> List[DocumentSnapshot]:
        try:
            docs = self._build_query(collection, filters, order_by).stream()
            return [_snapshot(doc) for doc in docs]
        except gexc.GoogleAPICallError as e:
            raise _translate(e, collection) from e

    def run_transaction(
        self,
        fn: Callable[[Transaction], T],
        max_attempts: Optional[int] = None,
    ) -> T:
        attempts = max_attempts or settings.transaction_max_attempts
        client = self.client

        @firestore.transactional
        def _body(transaction):
            return fn(FirestoreTransaction(client, transaction))

        try:
            return _body(client.transaction(max_attempts=attempts))
        except gexc.GoogleAPICallError as e:
            raise _translate(e) from e
        except ValueError as e:
            # firestore raises ValueError once max_attempts is exhausted
            if str(e).startswith("Failed to commit transaction"):
                raise TransactionAborted(str(e)) from e
            raise

    def watch_query(
        self,
        collection: str,
        filters: Sequence[QueryFilter],
        callback: QueryCallback,
        order_by: Optional[str] = None,
    ) -> Subscription:
        def on_snapshot(docs, changes, read_time):
            snapshots = [_snapshot(doc) for doc in docs]
            converted = [
                DocumentChange(ChangeType(change.type.name.lower()), _snapshot(change.document))
                for change in changes
            ]
            try:
                callback(snapshots, converted)
            except Exception:
                logger.exception("Query listener on %s failed", collection)

        watch = self._build_query(collection, filters, order_by).on_snapshot(on_snapshot)
        return Subscription(watch.unsubscribe)

    def watch_document(
        self,
        path: str,
        callback: DocumentCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        # on_snapshot has no error hook, so probe access up front
        try:
            self.client.document(path).get()
        except gexc.GoogleAPICallError as e:
            error = _translate(e, path)
            if on_error is None:
                raise error from e
            on_error(error)
            return Subscription()

        def on_snapshot(docs, changes, read_time):
            for doc in docs:
                try:
                    callback(_snapshot(doc))
                except Exception:
                    logger.exception("Document listener on %s failed", path)

        watch = self.client.document(path).on_snapshot(on_snapshot)
        return Subscription(watch.unsubscribe)
