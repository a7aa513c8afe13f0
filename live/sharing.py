"""Live-location sharing for the tracking view."""

import logging
from typing import Optional

from contracts import GeoPoint
from coordination import CoordinationEngine, CoordinationError
from store import StoreError, Subscription

from .location import CurrentLocation


logger = logging.getLogger(__name__)


class LiveLocationSharing:
    """Pushes every position fix onto the request while sharing is on."""

    def __init__(
        self,
        engine: CoordinationEngine,
        location: CurrentLocation,
        request_id: str,
        sharer_id: str,
    ):
        self.engine = engine
        self.location = location
        self.request_id = request_id
        self.sharer_id = sharer_id
        self.last_error: Optional[Exception] = None
        self._watch: Optional[Subscription] = None

    @property
    def sharing(self) -> bool:
        return self._watch is not None

    def start(self) -> None:
        if self._watch is None:
            logger.info("Sharing location of %s on request %s", self.sharer_id, self.request_id)
            self._watch = self.location.watch(self._push)

    def stop(self) -> None:
        if self._watch is not None:
            self._watch.unsubscribe()
            self._watch = None
            logger.info("Stopped sharing location on request %s", self.request_id)

    def toggle(self) -> bool:
        if self.sharing:
            self.stop()
        else:
            self.start()
        return self.sharing

    def _push(self, point: GeoPoint) -> None:
        try:
            self.engine.update_live_location(self.request_id, self.sharer_id, point.lat, point.lng)
        except (CoordinationError, StoreError) as e:
            # e.g. the request completed while the watch was running
            logger.warning("Live location not published: %s", e)
            self.last_error = e
