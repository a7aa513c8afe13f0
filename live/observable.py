"""Minimal thread-safe observable value."""

import logging
import threading
from typing import Callable, Generic, List, Optional, TypeVar

from store import Subscription


logger = logging.getLogger(__name__)

V = TypeVar("V")


class Observable(Generic[V]):
    """Holds a value and notifies subscribers whenever it is set.

    Store listeners may call `set` from a background thread, so the value
    and the subscriber list are guarded by a lock. Subscribers are invoked
    outside the lock.
    """

    def __init__(self, initial: Optional[V] = None):
        self._value = initial
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[V], None]] = []

    @property
    def value(self) -> Optional[V]:
        with self._lock:
            return self._value

    def set(self, value: V) -> None:
        with self._lock:
            self._value = value
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(value)
            except Exception:
                logger.exception("Observable subscriber failed")

    def subscribe(self, callback: Callable[[V], None], emit_current: bool = True) -> Subscription:
        """Register a callback; by default it is called right away with the current value."""
        with self._lock:
            self._subscribers.append(callback)
            current = self._value

        if emit_current:
            callback(current)

        def cancel():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return Subscription(cancel)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
