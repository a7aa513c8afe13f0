"""Document store abstraction with in-memory and Firestore backends."""

from .base import (
    SERVER_TIMESTAMP,
    ChangeType,
    DocumentChange,
    DocumentSnapshot,
    DocumentStore,
    Increment,
    QueryFilter,
    Subscription,
    Transaction,
    document_path,
    get_field,
)
from .errors import (
    DocumentNotFound,
    PermissionDenied,
    StoreError,
    StoreUnavailable,
    TransactionAborted,
)
from .factory import get_default_store, get_store, list_stores
from .memory_store import MemoryStore

__all__ = [
    # Interface
    "DocumentStore",
    "Transaction",
    "DocumentSnapshot",
    "DocumentChange",
    "ChangeType",
    "QueryFilter",
    "Subscription",
    "SERVER_TIMESTAMP",
    "Increment",
    "document_path",
    "get_field",
    # Errors
    "StoreError",
    "DocumentNotFound",
    "PermissionDenied",
    "StoreUnavailable",
    "TransactionAborted",
    # Backends
    "MemoryStore",
    "get_store",
    "get_default_store",
    "list_stores",
]
