"""Tests for observables, device location, live feeds and location sharing."""

from datetime import timedelta

import pytest

from conftest import NOW
from contracts import GeoPoint, RequestStatus, UserProfile
from live import (
    ActiveRequestsFeed,
    AvailableDonorsFeed,
    CurrentLocation,
    DonorListing,
    LiveLocationSharing,
    LocationState,
    MessageStream,
    MyRequestsFeed,
    Observable,
    RequestDetail,
    StaticLocationProvider,
    find_matches,
    rank_by_distance,
)
from live.feeds import Feed
from store import SERVER_TIMESTAMP


class TestObservable:
    """Test the observable value."""

    def test_subscribe_emits_current(self):
        value = Observable(1)
        seen = []
        value.subscribe(seen.append)
        value.set(2)
        assert seen == [1, 2]

    def test_subscribe_without_current(self):
        value = Observable(1)
        seen = []
        value.subscribe(seen.append, emit_current=False)
        assert seen == []

    def test_unsubscribe(self):
        value = Observable()
        seen = []
        sub = value.subscribe(seen.append)
        sub.unsubscribe()
        value.set("x")
        assert seen == [None]
        assert value.subscriber_count == 0

    def test_failing_subscriber_is_isolated(self):
        value = Observable(0)
        seen = []

        def broken(v):
            if v:
                raise RuntimeError("subscriber bug")

        value.subscribe(broken)
        value.subscribe(seen.append)
        value.set(5)
        assert value.value == 5
        assert seen == [0, 5]


class TestCurrentLocation:
    """Test the location state machine."""

    def test_locate(self):
        location = CurrentLocation(StaticLocationProvider(GeoPoint(lat=1.0, lng=2.0)))
        assert location.state.value == LocationState.IDLE
        point = location.locate()
        assert point == GeoPoint(lat=1.0, lng=2.0)
        assert location.state.value == LocationState.LOCATED
        assert location.position.value == point

    def test_denied_falls_back_to_default(self):
        location = CurrentLocation(StaticLocationProvider(error=PermissionError("denied")))
        point = location.locate()
        assert (point.lat, point.lng) == (12.9716, 77.5946)
        assert location.state.value == LocationState.FAILED

    def test_watch(self):
        provider = StaticLocationProvider(GeoPoint(lat=1.0, lng=2.0))
        location = CurrentLocation(provider)
        fixes = []
        sub = location.watch(fixes.append)
        provider.move(1.5, 2.5)
        sub.unsubscribe()
        provider.move(3.0, 4.0)

        assert fixes == [GeoPoint(lat=1.0, lng=2.0), GeoPoint(lat=1.5, lng=2.5)]
        assert location.position.value == GeoPoint(lat=1.5, lng=2.5)
        assert provider.watcher_count == 0

    def test_watch_failure(self):
        location = CurrentLocation(StaticLocationProvider(error=PermissionError("denied")))
        sub = location.watch()
        assert location.state.value == LocationState.FAILED
        assert not sub.active


class TestRequestFeeds:
    """Test request list feeds."""

    def test_donor_sees_pending_and_accepted(self, engine, store, patient, donor, declaration):
        viewer = engine.users.get(donor)
        feed = ActiveRequestsFeed(engine.requests, viewer).start()
        first = engine.broadcast_request(patient, "O+")
        second = engine.broadcast_request(patient, "O+")
        own = engine.broadcast_request(donor, "O+")
        assert [r.id for r in feed.items.value] == [second, first]

        engine.accept_request(first, donor, declaration())
        assert [r.id for r in feed.items.value] == [second, first]
        assert feed.items.value[1].status == RequestStatus.ACCEPTED
        assert own not in [r.id for r in feed.items.value]
        feed.stop()
        assert not feed.active

    def test_admin_sees_ready_for_pickup(self, engine, patient, admin, donor, declaration):
        viewer = engine.users.get(admin)
        with ActiveRequestsFeed(engine.requests, viewer) as feed:
            stocked = engine.broadcast_request(patient, "B+")
            peer = engine.broadcast_request(patient, "O+")
            engine.fulfill_request_by_admin(stocked, "B+", admin)
            engine.accept_request(peer, donor, declaration())
            assert [r.id for r in feed.items.value] == [stocked]
            assert feed.items.value[0].status == RequestStatus.READY_FOR_PICKUP

    def test_my_requests(self, engine, patient, admin):
        with MyRequestsFeed(engine.requests, patient) as feed:
            mine = engine.broadcast_request(patient, "B+")
            engine.broadcast_request(admin, "B+")
            code = engine.fulfill_request_by_admin(mine, "B+", admin)
            engine.verify_pickup_code(mine, code, admin)
            assert [r.id for r in feed.items.value] == [mine]
            assert feed.items.value[0].status == RequestStatus.COMPLETED

    def test_message_stream(self, engine, patient, admin):
        request_id = engine.broadcast_request(patient, "B+")
        with MessageStream(engine.requests, request_id) as stream:
            engine.fulfill_request_by_admin(request_id, "B+", admin)
            engine.send_message(request_id, patient, "Thank you!")
            assert [m.sender_id for m in stream.items.value] == [admin, patient]

    def test_request_detail(self, engine, patient, admin):
        request_id = engine.broadcast_request(patient, "B+")
        detail = RequestDetail(engine.requests, request_id).start()
        assert detail.request.value.status == RequestStatus.PENDING
        engine.fulfill_request_by_admin(request_id, "B+", admin)
        assert detail.request.value.status == RequestStatus.READY_FOR_PICKUP
        detail.stop()

    def test_request_detail_missing(self, engine):
        detail = RequestDetail(engine.requests, "nope").start()
        assert detail.request.value is None
        assert detail.error is None


class TestFeedBase:
    """Test the feed base class."""

    def test_feed_needs_a_subscription(self):
        with pytest.raises(TypeError):
            Feed()


class TestAvailableDonorsFeed:
    """Test the patient's donor list."""

    @pytest.fixture
    def donors(self, seed, store, clock):
        seed("near", role="donor", isAvailable=True, bloodGroup="A+", displayName="Near",
             location={"lat": 12.98, "lng": 77.59}, createdAt=NOW - timedelta(days=10))
        seed("far", role="donor", isAvailable=True, bloodGroup="A+", displayName="Far",
             location={"lat": 13.08, "lng": 80.27}, createdAt=NOW - timedelta(days=5))
        seed("unplaced", role="donor", isAvailable=True, bloodGroup="B-", createdAt=NOW - timedelta(days=1))
        seed("no-group", role="donor", isAvailable=True, bloodGroup="")
        seed("resting", role="donor", isAvailable=True, bloodGroup="A+", lastDonated=NOW - timedelta(days=10))
        seed("viewer", role="donor", isAvailable=True, bloodGroup="O+")
        seed("away", role="donor", isAvailable=False, bloodGroup="A+",
             location={"lat": 12.97, "lng": 77.59}, createdAt=NOW)
        seed("patient-x", role="patient", bloodGroup="A+")

    def test_filters_and_sorts(self, engine, donors, clock):
        location = Observable(GeoPoint(lat=12.9716, lng=77.5946))
        feed = AvailableDonorsFeed(engine.users, "viewer", location, clock=clock).start()

        listings = feed.items.value
        assert [d.profile.id for d in listings] == ["unplaced", "far", "near"]
        by_id = {d.profile.id: d for d in listings}
        assert by_id["unplaced"].distance == "Unknown"
        assert float(by_id["near"].distance_km) < 2
        assert by_id["far"].distance.endswith(" km")

    def test_recomputes_on_location_change(self, engine, donors, clock):
        location = Observable(None)
        feed = AvailableDonorsFeed(engine.users, "viewer", location, clock=clock).start()
        assert all(d.distance_km is None for d in feed.items.value)

        location.set(GeoPoint(lat=13.08, lng=80.27))
        far = next(d for d in feed.items.value if d.profile.id == "far")
        assert far.distance_km == "0.0"

        feed.stop()
        assert location.subscriber_count == 0
        assert not feed.active

    def test_follows_new_donors(self, engine, store, donors, clock):
        feed = AvailableDonorsFeed(engine.users, "viewer", Observable(None), clock=clock).start()
        store.set("users/new", {"role": "donor", "isAvailable": True, "bloodGroup": "O-", "createdAt": SERVER_TIMESTAMP})
        assert feed.items.value[0].profile.id == "new"

    def test_donor_going_unavailable_leaves_feed(self, engine, donor, clock):
        location = Observable(GeoPoint(lat=12.9716, lng=77.5946))
        feed = AvailableDonorsFeed(engine.users, "viewer", location, clock=clock).start()
        assert [d.profile.id for d in feed.items.value] == [donor]

        engine.toggle_donor_availability(donor, False)
        assert feed.items.value == []

    def test_auto_rest_after_donation_leaves_feed(self, engine, patient, donor, declaration, clock):
        feed = AvailableDonorsFeed(engine.users, "viewer", Observable(None), clock=clock).start()
        request_id = engine.broadcast_request(patient, "O+")
        engine.accept_request(request_id, donor, declaration())
        assert [d.profile.id for d in feed.items.value] == [donor]

        engine.complete_request(request_id, patient)
        assert feed.items.value == []

    def test_find_and_rank(self):
        listings = [
            DonorListing(UserProfile(id="a", blood_group="A+"), "12.0"),
            DonorListing(UserProfile(id="b", blood_group="A+"), None),
            DonorListing(UserProfile(id="c", blood_group="O-"), "3.5"),
            DonorListing(UserProfile(id="d", blood_group="A+"), "1.2"),
        ]
        assert [d.profile.id for d in find_matches(listings, "A+")] == ["a", "b", "d"]
        assert len(find_matches(listings, "Any")) == 4
        assert [d.profile.id for d in rank_by_distance(listings)] == ["d", "c", "a", "b"]


class TestLiveLocationSharing:
    """Test publishing position fixes onto a request."""

    @pytest.fixture
    def accepted(self, engine, patient, donor, declaration):
        request_id = engine.broadcast_request(patient, "O+")
        engine.accept_request(request_id, donor, declaration())
        return request_id

    def test_toggle_publishes_fixes(self, engine, store, accepted, donor):
        provider = StaticLocationProvider(GeoPoint(lat=12.95, lng=77.6))
        sharing = LiveLocationSharing(engine, CurrentLocation(provider), accepted, donor)

        assert sharing.toggle() is True
        provider.move(12.96, 77.61)
        live = store.get(f"requests/{accepted}").data["liveLocation"]
        assert (live["lat"], live["lng"]) == (12.96, 77.61)

        assert sharing.toggle() is False
        provider.move(1.0, 1.0)
        assert store.get(f"requests/{accepted}").data["liveLocation"]["lat"] == 12.96
        assert provider.watcher_count == 0

    def test_rejected_fix_is_recorded(self, engine, accepted, patient, donor):
        provider = StaticLocationProvider(GeoPoint(lat=12.95, lng=77.6))
        sharing = LiveLocationSharing(engine, CurrentLocation(provider), accepted, donor)
        sharing.start()
        engine.complete_request(accepted, patient)

        provider.move(12.96, 77.61)
        assert sharing.sharing
        assert sharing.last_error is not None
        sharing.stop()
