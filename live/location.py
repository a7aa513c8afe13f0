"""Current-location state machine.

    idle -> locating -> located
                     -> failed   (position falls back to the default city)
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, List, Optional

from config import settings
from contracts import GeoPoint
from store import Subscription

from .observable import Observable


logger = logging.getLogger(__name__)

PositionCallback = Callable[[GeoPoint], None]
PositionErrorCallback = Callable[[Exception], None]


class LocationUnavailable(Exception):
    """The device could not (or may not) report a position."""


class LocationState(str, Enum):
    IDLE = "idle"
    LOCATING = "locating"
    LOCATED = "located"
    FAILED = "failed"


class LocationProvider(ABC):
    """Source of device positions."""

    @abstractmethod
    def get_position(self) -> GeoPoint:
        """One-shot fix. Raises LocationUnavailable."""
        pass

    @abstractmethod
    def watch_position(
        self,
        callback: PositionCallback,
        on_error: Optional[PositionErrorCallback] = None,
    ) -> Subscription:
        """Continuous fixes until the returned handle is cancelled."""
        pass


class StaticLocationProvider(LocationProvider):
    """Provider driven by hand: `move` pushes a new fix to every watcher."""

    def __init__(self, position: Optional[GeoPoint] = None, error: Optional[Exception] = None):
        self.position = position
        self.error = error
        self._watchers: List[PositionCallback] = []

    def get_position(self) -> GeoPoint:
        if self.error is not None:
            raise LocationUnavailable(str(self.error))
        if self.position is None:
            raise LocationUnavailable("No position available")
        return self.position

    def watch_position(
        self,
        callback: PositionCallback,
        on_error: Optional[PositionErrorCallback] = None,
    ) -> Subscription:
        if self.error is not None:
            if on_error is not None:
                on_error(LocationUnavailable(str(self.error)))
            return Subscription()

        self._watchers.append(callback)
        if self.position is not None:
            callback(self.position)

        def cancel():
            if callback in self._watchers:
                self._watchers.remove(callback)

        return Subscription(cancel)

    @property
    def watcher_count(self) -> int:
        return len(self._watchers)

    def move(self, lat: float, lng: float) -> None:
        self.position = GeoPoint(lat=lat, lng=lng)
        for callback in list(self._watchers):
            callback(self.position)


class CurrentLocation:
    """Resolved position of this device, as observables."""

    def __init__(self, provider: LocationProvider):
        self.provider = provider
        self.state: Observable[LocationState] = Observable(LocationState.IDLE)
        self.position: Observable[Optional[GeoPoint]] = Observable(None)

    @staticmethod
    def fallback() -> GeoPoint:
        lat, lng = settings.default_location
        return GeoPoint(lat=lat, lng=lng)

    def locate(self) -> GeoPoint:
        """Resolve the position once; never raises."""
        self.state.set(LocationState.LOCATING)
        try:
            point = self.provider.get_position()
        except LocationUnavailable as e:
            logger.warning("Location unavailable (%s), using default", e)
            point = self.fallback()
            self.position.set(point)
            self.state.set(LocationState.FAILED)
            return point

        self.position.set(point)
        self.state.set(LocationState.LOCATED)
        return point

    def watch(self, on_fix: Optional[PositionCallback] = None) -> Subscription:
        """Follow the device continuously until the handle is cancelled."""
        self.state.set(LocationState.LOCATING)

        def handle_fix(point: GeoPoint) -> None:
            self.position.set(point)
            self.state.set(LocationState.LOCATED)
            if on_fix is not None:
                on_fix(point)

        def handle_error(error: Exception) -> None:
            logger.warning("Position watch failed: %s", error)
            self.state.set(LocationState.FAILED)

        return self.provider.watch_position(handle_fix, handle_error)
