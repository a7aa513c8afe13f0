"""Base document store interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar


T = TypeVar("T")


class _ServerTimestamp:
    """Placeholder replaced by the store's commit time."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Increment:
    """Atomic numeric increment applied at commit time."""
    amount: int = 1


@dataclass(frozen=True)
class QueryFilter:
    """A single query predicate. Supported ops: `==` and `in`."""
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in ("==", "in"):
            raise ValueError(f"Unsupported filter op: {self.op}")

    def matches(self, data: Dict[str, Any]) -> bool:
        actual = get_field(data, self.field)
        if self.op == "==":
            return actual == self.value
        return actual in self.value


@dataclass
class DocumentSnapshot:
    """Point-in-time copy of one document."""
    id: str
    path: str
    data: Optional[Dict[str, Any]] = None

    @property
    def exists(self) -> bool:
        return self.data is not None


class ChangeType(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass
class DocumentChange:
    """One entry of a query listener's change set."""
    type: ChangeType
    document: DocumentSnapshot


class Subscription:
    """Handle returned by every listener; call `unsubscribe` to stop it."""

    def __init__(self, cancel: Optional[Callable[[], None]] = None):
        self._cancel = cancel
        self._active = cancel is not None

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._cancel()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()


QueryCallback = Callable[[List[DocumentSnapshot], List[DocumentChange]], None]
DocumentCallback = Callable[[DocumentSnapshot], None]
ErrorCallback = Callable[[Exception], None]


def document_path(*parts: str) -> str:
    """Join path segments: document_path("users", uid) -> "users/<uid>"."""
    return "/".join(str(p).strip("/") for p in parts)


def parent_collection(path: str) -> str:
    """Collection path that owns the document at `path`."""
    return path.rsplit("/", 1)[0]


def get_field(data: Optional[Dict[str, Any]], field_path: str) -> Any:
    """Read a dotted field path from a document body."""
    current: Any = data
    for part in field_path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


class Transaction(ABC):
    """Read-then-write unit of work.

    All reads must happen before the first write. Writes are buffered and
    applied atomically when the transaction body returns.
    """

    @abstractmethod
    def get(self, path: str) -> DocumentSnapshot:
        """Read a document as part of the transaction's snapshot."""
        pass

    @abstractmethod
    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        """Create or overwrite (or merge into) a document."""
        pass

    @abstractmethod
    def update(self, path: str, data: Dict[str, Any]) -> None:
        """Update fields of an existing document. Keys may be dotted paths."""
        pass


class DocumentStore(ABC):
    """Abstract transactional document database with real-time listeners."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name (memory, firestore)."""
        pass

    @abstractmethod
    def get(self, path: str) -> DocumentSnapshot:
        pass

    @abstractmethod
    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        pass

    @abstractmethod
    def update(self, path: str, data: Dict[str, Any]) -> None:
        """Partial update; raises DocumentNotFound if the document is missing."""
        pass

    @abstractmethod
    def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""
        pass

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        order_by: Optional[str] = None,
    ) -> List[DocumentSnapshot]:
        pass

    @abstractmethod
    def watch_query(
        self,
        collection: str,
        filters: Sequence[QueryFilter],
        callback: QueryCallback,
        order_by: Optional[str] = None,
    ) -> Subscription:
        """Listen to a query. The callback fires with the initial result set and
        again after every commit that changes it."""
        pass

    @abstractmethod
    def watch_document(
        self,
        path: str,
        callback: DocumentCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Listen to a single document, including its absence."""
        pass

    @abstractmethod
    def run_transaction(
        self,
        fn: Callable[[Transaction], T],
        max_attempts: Optional[int] = None,
    ) -> T:
        """Run `fn` with snapshot reads and conditional commit.

        The whole body is retried on write conflicts; after `max_attempts`
        conflicts TransactionAborted is raised. Exceptions raised by `fn`
        abort the transaction with nothing applied.
        """
        pass

    def is_available(self) -> bool:
        """Check if this backend can be used (credentials present, etc.)."""
        return True
