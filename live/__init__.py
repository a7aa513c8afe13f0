"""Live Subscription Layer: observables, location and feeds."""

from .observable import Observable
from .location import (
    CurrentLocation,
    LocationProvider,
    LocationState,
    LocationUnavailable,
    StaticLocationProvider,
)
from .feeds import (
    ANY_BLOOD_GROUP,
    ActiveRequestsFeed,
    AvailableDonorsFeed,
    DonorListing,
    Feed,
    MessageStream,
    MyRequestsFeed,
    RequestDetail,
    find_matches,
    rank_by_distance,
)
from .sharing import LiveLocationSharing

__all__ = [
    "Observable",
    # Location
    "CurrentLocation",
    "LocationProvider",
    "LocationState",
    "LocationUnavailable",
    "StaticLocationProvider",
    # Feeds
    "Feed",
    "ActiveRequestsFeed",
    "MyRequestsFeed",
    "AvailableDonorsFeed",
    "DonorListing",
    "MessageStream",
    "RequestDetail",
    "ANY_BLOOD_GROUP",
    "find_matches",
    "rank_by_distance",
    # Sharing
    "LiveLocationSharing",
]
