"""Factory for creating document store backends."""

from typing import Dict, Optional, Type

from config import settings

from .base import DocumentStore
from .firestore_store import FirestoreStore
from .memory_store import MemoryStore


# Registry of available backends
STORES: Dict[str, Type[DocumentStore]] = {
    "memory": MemoryStore,
    "firestore": FirestoreStore,
    "firebase": FirestoreStore,
}

_store: Optional[DocumentStore] = None


def get_store(backend: Optional[str] = None) -> DocumentStore:
    """Get a document store instance.

    Args:
        backend: Explicit backend name (memory, firestore). Defaults to
            `settings.store_backend`.

    Returns:
        DocumentStore instance

    Examples:
        get_store()             # whatever LIFELINE_STORE_BACKEND says
        get_store("memory")     # fresh in-process store
    """
    key = (backend or settings.store_backend).lower()
    if key not in STORES:
        raise ValueError(
            f"Unknown store backend: {key}. "
            f"Available: {list(STORES.keys())}"
        )
    return STORES[key]()


def get_default_store() -> DocumentStore:
    """Process-wide store built from settings on first use."""
    global _store
    if _store is None:
        _store = get_store()
    return _store


def list_stores() -> Dict[str, bool]:
    """List all backends and their availability.

    Returns:
        Dict mapping backend name to availability status
    """
    result = {}
    for name, store_class in STORES.items():
        # Skip aliases
        if name == "firebase":
            continue
        try:
            result[name] = store_class().is_available()
        except Exception:
            result[name] = False
    return result
