"""In-process document store.

Implements the same contract as the Firestore backend: optimistic
transactions with version checks and bounded retries, monotonic server
timestamps, numeric increments and synchronous listener fan-out after every
commit. Used for tests and local demos.
"""

import copy
import itertools
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

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
    get_field,
    parent_collection,
)
from .errors import DocumentNotFound, StoreError, TransactionAborted


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _WriteConflict(Exception):
    """A document read by the transaction changed before commit."""


@dataclass
class _Write:
    kind: str  # set | merge | update
    path: str
    data: Dict[str, Any]


@dataclass
class _QueryWatch:
    collection: str
    filters: Sequence[QueryFilter]
    order_by: Optional[str]
    callback: QueryCallback
    last: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    delivered: bool = False


@dataclass
class _DocumentWatch:
    path: str
    callback: DocumentCallback
    last: Optional[Dict[str, Any]] = None


def _resolve(value: Any, current: Any, now: datetime) -> Any:
    """Replace sentinels with concrete values."""
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, Increment):
        base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
        return base + value.amount
    if isinstance(value, dict):
        existing = current if isinstance(current, dict) else {}
        return {k: _resolve(v, existing.get(k), now) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve(v, None, now) for v in value]
    return copy.deepcopy(value)


def _merge_into(target: Dict[str, Any], data: Dict[str, Any], now: datetime) -> None:
    for key, value in data.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge_into(target[key], value, now)
        else:
            target[key] = _resolve(value, target.get(key), now)


def _update_into(target: Dict[str, Any], data: Dict[str, Any], now: datetime) -> None:
    for key, value in data.items():
        parts = key.split(".")
        node = target
        for part in parts[:-1]:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = _resolve(value, node.get(parts[-1]), now)


def _sort_key(value: Any) -> Tuple[int, Any]:
    # Missing values sort first, like Firestore's null ordering
    return (0, 0) if value is None else (1, value)


class MemoryTransaction(Transaction):
    """Buffers writes and remembers the version of every document it read."""

    def __init__(self, store: "MemoryStore"):
        self._store = store
        self.reads: Dict[str, int] = {}
        self.writes: List[_Write] = []

    def get(self, path: str) -> DocumentSnapshot:
        if self.writes:
            raise StoreError("Transactions require all reads to be executed before all writes")
        snapshot, version = self._store._read(path)
        self.reads[path] = version
        return snapshot

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.writes.append(_Write("merge" if merge else "set", path, dict(data)))

    def update(self, path: str, data: Dict[str, Any]) -> None:
        self.writes.append(_Write("update", path, dict(data)))


class MemoryStore(DocumentStore):
    """Thread-safe dictionary-backed store."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        """Initialize an empty store.

        Args:
            clock: Source of commit timestamps (defaults to UTC now)
        """
        self._clock = clock or _utcnow
        self._lock = threading.RLock()
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._versions: Dict[str, int] = {}
        self._last_timestamp: Optional[datetime] = None
        self._watch_ids = itertools.count(1)
        self._query_watches: Dict[int, _QueryWatch] = {}
        self._document_watches: Dict[int, _DocumentWatch] = {}

    @property
    def name(self) -> str:
        return "memory"

    # ---------------------- Reads ----------------------

    def _read(self, path: str) -> Tuple[DocumentSnapshot, int]:
        with self._lock:
            data = self._docs.get(path)
            return self._snapshot(path, data), self._versions.get(path, 0)

    @staticmethod
    def _snapshot(path: str, data: Optional[Dict[str, Any]]) -> DocumentSnapshot:
        return DocumentSnapshot(
            id=path.rsplit("/", 1)[-1],
            path=path,
            data=copy.deepcopy(data) if data is not None else None,
        )

    def get(self, path: str) -> DocumentSnapshot:
        return self._read(path)[0]

    def _run_query(
        self,
        collection: str,
        filters: Sequence[QueryFilter],
        order_by: Optional[str],
    ) -> List[DocumentSnapshot]:
        with self._lock:
            matches = [
                self._snapshot(path, data)
                for path, data in sorted(self._docs.items())
                if parent_collection(path) == collection
                and all(f.matches(data) for f in filters)
            ]
        if order_by:
            matches.sort(key=lambda s: _sort_key(get_field(s.data, order_by)))
        return matches

    def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        order_by: Optional[str] = None,
    ) -> List[DocumentSnapshot]:
        return self._run_query(collection, filters, order_by)

    # ---------------------- Writes ----------------------

    def _server_time(self) -> datetime:
        now = self._clock()
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _commit(self, writes: List[_Write], reads: Optional[Dict[str, int]] = None) -> None:
        """Apply writes atomically, failing if any read document changed."""
        with self._lock:
            for path, version in (reads or {}).items():
                if self._versions.get(path, 0) != version:
                    raise _WriteConflict(path)

            now = self._server_time()
            staged: Dict[str, Dict[str, Any]] = {}
            for write in writes:
                if write.path in staged:
                    current = staged[write.path]
                else:
                    current = copy.deepcopy(self._docs.get(write.path))

                if write.kind == "set":
                    current = _resolve(write.data, None, now)
                elif write.kind == "merge":
                    current = current or {}
                    _merge_into(current, write.data, now)
                else:
                    if current is None:
                        raise DocumentNotFound(write.path)
                    _update_into(current, write.data, now)
                staged[write.path] = current

            for path, data in staged.items():
                self._docs[path] = data
                self._versions[path] = self._versions.get(path, 0) + 1

        self._notify(set(staged))

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._commit([_Write("merge" if merge else "set", path, dict(data))])

    def update(self, path: str, data: Dict[str, Any]) -> None:
        self._commit([_Write("update", path, dict(data))])

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self.set(f"{collection}/{doc_id}", data)
        return doc_id

    def run_transaction(
        self,
        fn: Callable[[Transaction], T],
        max_attempts: Optional[int] = None,
    ) -> T:
        attempts = max_attempts or settings.transaction_max_attempts
        for attempt in range(1, attempts + 1):
            transaction = MemoryTransaction(self)
            result = fn(transaction)
            try:
                self._commit(transaction.writes, transaction.reads)
                return result
            except _WriteConflict as conflict:
                logger.debug("Transaction conflict on %s (attempt %d/%d)", conflict, attempt, attempts)
        raise TransactionAborted(f"Failed to commit transaction in {attempts} attempts")

    # ---------------------- Listeners ----------------------

    def watch_query(
        self,
        collection: str,
        filters: Sequence[QueryFilter],
        callback: QueryCallback,
        order_by: Optional[str] = None,
    ) -> Subscription:
        watch = _QueryWatch(collection, tuple(filters), order_by, callback)
        watch_id = next(self._watch_ids)
        with self._lock:
            self._query_watches[watch_id] = watch
        self._deliver_query(watch)
        return Subscription(lambda: self._drop(watch_id))

    def watch_document(
        self,
        path: str,
        callback: DocumentCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        watch = _DocumentWatch(path, callback)
        watch_id = next(self._watch_ids)
        with self._lock:
            self._document_watches[watch_id] = watch
            snapshot, _ = self._read(path)
            watch.last = copy.deepcopy(snapshot.data)
        self._call(callback, snapshot)
        return Subscription(lambda: self._drop(watch_id))

    def _drop(self, watch_id: int) -> None:
        with self._lock:
            self._query_watches.pop(watch_id, None)
            self._document_watches.pop(watch_id, None)

    def _deliver_query(self, watch: _QueryWatch) -> None:
        results = self._run_query(watch.collection, watch.filters, watch.order_by)
        current = {s.id: s.data for s in results}
        changes: List[DocumentChange] = []
        for snapshot in results:
            if snapshot.id not in watch.last:
                changes.append(DocumentChange(ChangeType.ADDED, snapshot))
            elif watch.last[snapshot.id] != snapshot.data:
                changes.append(DocumentChange(ChangeType.MODIFIED, snapshot))
        for doc_id, data in watch.last.items():
            if doc_id not in current:
                path = f"{watch.collection}/{doc_id}"
                changes.append(DocumentChange(ChangeType.REMOVED, self._snapshot(path, data)))

        first_delivery = not watch.delivered
        watch.delivered = True
        watch.last = current
        if changes or first_delivery:
            self._call(watch.callback, results, changes)

    def _notify(self, paths: set) -> None:
        with self._lock:
            query_watches = list(self._query_watches.values())
            document_watches = list(self._document_watches.values())

        collections = {parent_collection(p) for p in paths}
        for watch in query_watches:
            if watch.collection in collections:
                self._deliver_query(watch)

        for watch in document_watches:
            if watch.path not in paths:
                continue
            snapshot = self.get(watch.path)
            if snapshot.data != watch.last:
                watch.last = copy.deepcopy(snapshot.data)
                self._call(watch.callback, snapshot)

    @staticmethod
    def _call(callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Listener callback failed")
