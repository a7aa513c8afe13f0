"""Tests for the in-memory document store."""

import pytest

from store import (
    SERVER_TIMESTAMP,
    ChangeType,
    DocumentNotFound,
    Increment,
    MemoryStore,
    QueryFilter,
    StoreError,
    TransactionAborted,
    document_path,
    get_field,
)


class TestPaths:
    """Test path helpers."""

    def test_document_path(self):
        assert document_path("users", "u1") == "users/u1"
        assert document_path("requests/r1", "messages") == "requests/r1/messages"

    def test_get_field(self):
        data = {"bloodStock": {"B+": 2}}
        assert get_field(data, "bloodStock.B+") == 2
        assert get_field(data, "bloodStock.O-") is None
        assert get_field(None, "x") is None

    def test_query_filter_ops(self):
        assert QueryFilter("status", "in", ["pending"]).matches({"status": "pending"})
        assert not QueryFilter("role", "==", "donor").matches({"role": "patient"})
        with pytest.raises(ValueError):
            QueryFilter("age", ">", 18)


class TestWrites:
    """Test set, update and add."""

    def test_set_and_get(self, store):
        store.set("users/u1", {"email": "a@example.com"})
        snapshot = store.get("users/u1")
        assert snapshot.exists
        assert snapshot.id == "u1"
        assert snapshot.data == {"email": "a@example.com"}

    def test_get_missing(self, store):
        assert not store.get("users/nobody").exists

    def test_snapshots_are_copies(self, store):
        store.set("users/u1", {"tags": {"a": 1}})
        store.get("users/u1").data["tags"]["a"] = 99
        assert store.get("users/u1").data["tags"]["a"] == 1

    def test_update_missing_raises(self, store):
        with pytest.raises(DocumentNotFound) as exc:
            store.update("requests/nope", {"status": "accepted"})
        assert exc.value.path == "requests/nope"

    def test_update_dotted_path_with_increment(self, store):
        store.set("users/a", {"bloodStock": {"B+": 2, "O-": 1}})
        store.update("users/a", {"bloodStock.B+": Increment(-1), "bloodStock.AB+": Increment(1)})
        assert store.get("users/a").data["bloodStock"] == {"B+": 1, "O-": 1, "AB+": 1}

    def test_set_merge_is_deep(self, store):
        store.set("users/a", {"email": "a@example.com", "bloodStock": {"B+": 2}})
        store.set("users/a", {"role": "admin", "bloodStock": {"O-": 3}}, merge=True)
        data = store.get("users/a").data
        assert data["email"] == "a@example.com"
        assert data["role"] == "admin"
        assert data["bloodStock"] == {"B+": 2, "O-": 3}

    def test_set_without_merge_replaces(self, store):
        store.set("users/a", {"email": "a@example.com"})
        store.set("users/a", {"role": "donor"})
        assert store.get("users/a").data == {"role": "donor"}

    def test_server_timestamps_are_monotonic(self, store, clock):
        """A frozen clock still yields strictly increasing commit times."""
        store.set("requests/r1", {"createdAt": SERVER_TIMESTAMP})
        store.set("requests/r2", {"createdAt": SERVER_TIMESTAMP})
        first = store.get("requests/r1").data["createdAt"]
        second = store.get("requests/r2").data["createdAt"]
        assert first == clock.now
        assert second > first

    def test_add_generates_id(self, store):
        doc_id = store.add("requests", {"status": "pending"})
        assert doc_id
        assert store.get(f"requests/{doc_id}").data == {"status": "pending"}


class TestQueries:
    """Test collection queries."""

    def test_filters(self, store):
        store.set("requests/r1", {"status": "pending"})
        store.set("requests/r2", {"status": "accepted"})
        store.set("requests/r3", {"status": "completed"})
        store.set("requests/r1/messages/m1", {"status": "pending"})

        found = store.query("requests", [QueryFilter("status", "in", ["pending", "accepted"])])
        assert [s.id for s in found] == ["r1", "r2"]

    def test_order_by(self, store):
        store.set("requests/r1/messages/b", {"createdAt": SERVER_TIMESTAMP, "text": "first"})
        store.set("requests/r1/messages/a", {"createdAt": SERVER_TIMESTAMP, "text": "second"})
        found = store.query("requests/r1/messages", order_by="createdAt")
        assert [s.data["text"] for s in found] == ["first", "second"]


class TestTransactions:
    """Test optimistic transactions."""

    def test_commits_all_writes(self, store):
        store.set("users/a", {"n": 1})

        def body(tx):
            snapshot = tx.get("users/a")
            tx.update("users/a", {"n": snapshot.data["n"] + 1})
            tx.set("users/b", {"n": 10})
            return "ok"

        assert store.run_transaction(body) == "ok"
        assert store.get("users/a").data["n"] == 2
        assert store.get("users/b").data["n"] == 10

    def test_reads_must_precede_writes(self, store):
        def body(tx):
            tx.set("users/a", {"n": 1})
            tx.get("users/a")

        with pytest.raises(StoreError, match="reads"):
            store.run_transaction(body)
        assert not store.get("users/a").exists

    def test_exception_applies_nothing(self, store):
        store.set("users/a", {"n": 1})

        def body(tx):
            tx.get("users/a")
            tx.update("users/a", {"n": 2})
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.run_transaction(body)
        assert store.get("users/a").data["n"] == 1

    def test_update_of_missing_document_aborts_whole_commit(self, store):
        store.set("users/a", {"n": 1})

        def body(tx):
            tx.get("users/a")
            tx.update("users/a", {"n": 2})
            tx.update("users/ghost", {"n": 1})

        with pytest.raises(DocumentNotFound):
            store.run_transaction(body)
        assert store.get("users/a").data["n"] == 1

    def test_conflict_is_retried(self, store):
        """A concurrent write to a read document reruns the body."""
        store.set("users/a", {"n": 1})
        attempts = []

        def body(tx):
            attempts.append(1)
            n = tx.get("users/a").data["n"]
            if len(attempts) == 1:
                store.set("users/a", {"n": 100})
            tx.update("users/a", {"n": n + 1})

        store.run_transaction(body)
        assert len(attempts) == 2
        assert store.get("users/a").data["n"] == 101

    def test_conflicts_exhaust_attempts(self, store):
        store.set("users/a", {"n": 1})
        attempts = []

        def body(tx):
            attempts.append(1)
            n = tx.get("users/a").data["n"]
            store.set("users/a", {"n": n + 1000})
            tx.update("users/a", {"n": -1})

        with pytest.raises(TransactionAborted):
            store.run_transaction(body, max_attempts=3)
        assert len(attempts) == 3
        assert store.get("users/a").data["n"] != -1

    def test_missing_document_read_conflicts_on_creation(self, store):
        attempts = []

        def body(tx):
            attempts.append(1)
            exists = tx.get("users/new").exists
            if len(attempts) == 1:
                store.set("users/new", {"n": 5})
            tx.set("users/new", {"created": not exists}, merge=True)

        store.run_transaction(body)
        assert len(attempts) == 2
        assert store.get("users/new").data == {"n": 5, "created": False}


class TestListeners:
    """Test query and document listeners."""

    def test_query_listener_initial_and_changes(self, store):
        events = []
        store.set("requests/r1", {"status": "pending"})
        sub = store.watch_query(
            "requests",
            [QueryFilter("status", "==", "pending")],
            lambda docs, changes: events.append(
                ([d.id for d in docs], [(c.type, c.document.id) for c in changes])
            ),
        )

        store.set("requests/r2", {"status": "pending"})
        store.update("requests/r1", {"status": "accepted"})
        store.update("requests/r2", {"note": "x"})

        assert events[0] == (["r1"], [(ChangeType.ADDED, "r1")])
        assert events[1] == (["r1", "r2"], [(ChangeType.ADDED, "r2")])
        assert events[2] == (["r2"], [(ChangeType.REMOVED, "r1")])
        assert events[3] == (["r2"], [(ChangeType.MODIFIED, "r2")])
        sub.unsubscribe()

    def test_empty_initial_result_is_delivered(self, store):
        events = []
        store.watch_query("requests", [], lambda docs, changes: events.append(docs))
        assert events == [[]]

    def test_unrelated_commit_does_not_fire(self, store):
        events = []
        store.watch_query("requests", [QueryFilter("status", "==", "pending")],
                          lambda docs, changes: events.append(docs))
        store.set("requests/r1", {"status": "completed"})
        store.set("users/u1", {"role": "donor"})
        assert len(events) == 1

    def test_unsubscribe_stops_delivery(self, store):
        events = []
        sub = store.watch_query("requests", [], lambda docs, changes: events.append(docs))
        sub.unsubscribe()
        sub.unsubscribe()
        store.set("requests/r1", {"status": "pending"})
        assert len(events) == 1
        assert not sub.active

    def test_document_listener(self, store):
        seen = []
        with store.watch_document("users/u1", lambda snap: seen.append(snap.data)):
            store.set("users/u1", {"role": None})
            store.set("users/u1", {"role": "donor"}, merge=True)
            store.set("users/u2", {"role": "donor"})
        store.set("users/u1", {"role": "patient"}, merge=True)
        assert seen == [None, {"role": None}, {"role": "donor"}]

    def test_transaction_notifies_once_per_commit(self, store):
        events = []
        store.watch_query("requests", [], lambda docs, changes: events.append(len(changes)))

        def body(tx):
            tx.set("requests/r1", {"status": "pending"})
            tx.set("requests/r2", {"status": "pending"})

        store.run_transaction(body)
        assert events == [0, 2]

    def test_failing_callback_is_isolated(self, store):
        seen = []

        def broken(docs, changes):
            raise RuntimeError("listener bug")

        store.watch_query("requests", [], broken)
        store.watch_query("requests", [], lambda docs, changes: seen.append(len(docs)))
        store.set("requests/r1", {"status": "pending"})
        assert store.get("requests/r1").exists
        assert seen == [0, 1]
