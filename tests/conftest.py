"""Shared fixtures: a frozen clock, an in-memory store and seeded accounts."""

from datetime import datetime, timedelta, timezone

import pytest

from coordination import CoordinationEngine
from rules import DeclarationChecklist
from store import MemoryStore


NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def engine(store, clock):
    return CoordinationEngine(store, clock=clock)


@pytest.fixture
def seed(store):
    """Write a user document: seed("uid", role="donor", bloodGroup="O+")."""
    def _seed(uid, **fields):
        store.set(f"users/{uid}", fields)
        return uid
    return _seed


@pytest.fixture
def donor(seed):
    return seed(
        "donor-1",
        email="dan@example.com",
        displayName="Dan",
        role="donor",
        bloodGroup="O+",
        phoneNumber="555-0101",
        isVerified=True,
        isAvailable=True,
        livesSaved=0,
    )


@pytest.fixture
def patient(seed):
    return seed(
        "patient-1",
        email="priya@example.com",
        displayName="Priya",
        role="patient",
        bloodGroup="B+",
        location={"lat": 12.9716, "lng": 77.5946},
    )


@pytest.fixture
def admin(seed):
    return seed(
        "bank-1",
        email="bank@example.com",
        displayName="City Blood Bank",
        role="admin",
        livesSaved=0,
        bloodStock={"A+": 0, "A-": 0, "B+": 2, "B-": 0, "AB+": 0, "AB-": 0, "O+": 0, "O-": 1},
    )


def completed_declaration(gender=None) -> DeclarationChecklist:
    checklist = DeclarationChecklist.for_gender(gender)
    checklist.select_all()
    return checklist


@pytest.fixture
def declaration():
    """Factory for a fully ticked checklist."""
    return completed_declaration
