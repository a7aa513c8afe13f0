"""Live feeds over store listeners.

Every feed exposes `start()` / `stop()` and an `items` observable that is
replaced wholesale (and re-sorted) on each snapshot.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Generic, Iterable, List, Optional, TypeVar

from contracts import BloodRequest, GeoPoint, Message, RequestStatus, UserProfile
from repositories import RequestRepository, UserRepository
from rules import donation_eligibility, format_distance, haversine_distance_km
from store import Subscription

from .observable import Observable


logger = logging.getLogger(__name__)

ANY_BLOOD_GROUP = "Any"

I = TypeVar("I")


class Feed(ABC, Generic[I]):
    """Base class: owns one store subscription and an observable list."""

    def __init__(self):
        self.items: Observable[List[I]] = Observable([])
        self._subscription: Optional[Subscription] = None

    @property
    def active(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @abstractmethod
    def _subscribe(self) -> Subscription:
        """Open the store listener that feeds `items`."""
        pass

    def start(self) -> "Feed[I]":
        if not self.active:
            self._subscription = self._subscribe()
        return self

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()


class ActiveRequestsFeed(Feed[BloodRequest]):
    """Open requests a donor or a blood bank can act on, newest first.

    Donors see pending and accepted requests; admins see pending and
    ready-for-pickup ones. The viewer's own requests are left out.
    """

    def __init__(self, requests: RequestRepository, viewer: UserProfile):
        super().__init__()
        self.requests = requests
        self.viewer = viewer

    @property
    def statuses(self) -> List[RequestStatus]:
        if self.viewer.is_admin:
            return [RequestStatus.PENDING, RequestStatus.READY_FOR_PICKUP]
        return [RequestStatus.PENDING, RequestStatus.ACCEPTED]

    def _subscribe(self) -> Subscription:
        return self.requests.watch_with_status(
            self.statuses, self.items.set, exclude_requester=self.viewer.id
        )


class MyRequestsFeed(Feed[BloodRequest]):
    """Every request the user created, newest first."""

    def __init__(self, requests: RequestRepository, requester_id: str):
        super().__init__()
        self.requests = requests
        self.requester_id = requester_id

    def _subscribe(self) -> Subscription:
        return self.requests.watch_for_requester(self.requester_id, self.items.set)


@dataclass
class DonorListing:
    """A donor as shown to a patient: profile plus distance from the viewer."""
    profile: UserProfile
    distance_km: Optional[str] = None

    @property
    def distance(self) -> str:
        return format_distance(self.distance_km)


def _newest_profiles_first(listings: Iterable[DonorListing]) -> List[DonorListing]:
    return sorted(
        listings,
        key=lambda d: d.profile.created_at.timestamp() if d.profile.created_at else 0.0,
        reverse=True,
    )


class AvailableDonorsFeed(Feed[DonorListing]):
    """Donors a patient can contact, annotated with distance.

    Depends on the viewer's location: whenever `location` changes the store
    subscription is torn down and set up again so distances are recomputed.
    Donors who switched availability off, donors without a blood group,
    donors still in cooldown and the viewer are filtered out.
    """

    def __init__(
        self,
        users: UserRepository,
        viewer_id: str,
        location: Observable[Optional[GeoPoint]],
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__()
        self.users = users
        self.viewer_id = viewer_id
        self.location = location
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._location_subscription: Optional[Subscription] = None
        self._origin: Optional[GeoPoint] = None

    def start(self) -> "AvailableDonorsFeed":
        if self._location_subscription is None:
            self._location_subscription = self.location.subscribe(self._on_location)
        return self

    def stop(self) -> None:
        if self._location_subscription is not None:
            self._location_subscription.unsubscribe()
            self._location_subscription = None
        super().stop()

    def _on_location(self, point: Optional[GeoPoint]) -> None:
        logger.debug("Donor feed re-subscribing for location %s", point)
        super().stop()
        self._origin = point
        self._subscription = self._subscribe()

    def _subscribe(self) -> Subscription:
        return self.users.watch_donors(self._on_donors)

    def _listing(self, profile: UserProfile) -> DonorListing:
        origin = self._origin
        distance = None
        if origin is not None and profile.location is not None:
            distance = haversine_distance_km(
                origin.lat, origin.lng, profile.location.lat, profile.location.lng
            )
        return DonorListing(profile=profile, distance_km=distance)

    def _visible(self, profile: UserProfile) -> bool:
        if profile.id == self.viewer_id or not profile.blood_group:
            return False
        if not profile.is_available:
            return False
        return donation_eligibility(profile.last_donated, profile.gender, now=self._clock()).eligible

    def _on_donors(self, profiles: List[UserProfile]) -> None:
        listings = [self._listing(p) for p in profiles if self._visible(p)]
        self.items.set(_newest_profiles_first(listings))


class MessageStream(Feed[Message]):
    """Chat of one request, oldest first."""

    def __init__(self, requests: RequestRepository, request_id: str):
        super().__init__()
        self.requests = requests
        self.request_id = request_id

    def _subscribe(self) -> Subscription:
        return self.requests.watch_messages(self.request_id, self.items.set)


class RequestDetail:
    """One request, followed live. `request` holds None once it is gone."""

    def __init__(self, requests: RequestRepository, request_id: str):
        self.requests = requests
        self.request_id = request_id
        self.request: Observable[Optional[BloodRequest]] = Observable(None)
        self.error: Optional[Exception] = None
        self._subscription: Optional[Subscription] = None

    def start(self) -> "RequestDetail":
        if self._subscription is None:
            self._subscription = self.requests.watch_request(
                self.request_id, self.request.set, on_error=self._on_error
            )
        return self

    def _on_error(self, error: Exception) -> None:
        logger.warning("Request %s unreadable: %s", self.request_id, error)
        self.error = error

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None


def find_matches(donors: Iterable[DonorListing], blood_group: str) -> List[DonorListing]:
    """Donors of exactly the requested group; "Any" matches everyone."""
    group = getattr(blood_group, "value", blood_group)
    return [
        d for d in donors
        if group == ANY_BLOOD_GROUP or (d.profile.blood_group and d.profile.blood_group.value == group)
    ]


def rank_by_distance(donors: Iterable[DonorListing]) -> List[DonorListing]:
    """Nearest first; donors with unknown distance go last."""
    return sorted(
        donors,
        key=lambda d: (d.distance_km is None, float(d.distance_km) if d.distance_km else 0.0),
    )
