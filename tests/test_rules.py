"""Tests for eligibility, compatibility, distance and the declaration checklist."""

import pytest
from datetime import datetime, timedelta, timezone

from contracts import BloodGroup
from rules import (
    DeclarationChecklist,
    blood_compatible,
    donation_eligibility,
    format_distance,
    haversine_distance_km,
    medically_compatible,
    sections_for,
    strictly_compatible,
)


NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestDonationEligibility:
    """Test the cooldown calculation."""

    def test_never_donated_is_eligible(self):
        result = donation_eligibility(None, "male", now=NOW)
        assert result.eligible
        assert result.days_remaining == 0
        assert result.percentage == 100
        assert result.next_eligible_date is None
        assert result.message is None

    def test_mid_cooldown(self):
        """30 days into a 90 day cooldown."""
        result = donation_eligibility(NOW - timedelta(days=30), "male", now=NOW)
        assert not result.eligible
        assert result.days_remaining == 60
        assert result.percentage == pytest.approx(100 * 30 / 90)
        assert result.message == "You can donate again in 60 days."
        assert result.next_eligible_date == NOW - timedelta(days=30) + timedelta(days=90)

    def test_partial_days_round_up(self):
        """30 days and one hour counts as 31 elapsed days."""
        result = donation_eligibility(NOW - timedelta(days=30, hours=1), None, now=NOW)
        assert result.days_remaining == 59

    def test_cooldown_boundary(self):
        """Exactly the cooldown length is enough."""
        result = donation_eligibility(NOW - timedelta(days=90), "male", now=NOW)
        assert result.eligible
        assert result.next_eligible_date == NOW

    def test_female_cooldown_is_longer(self):
        result = donation_eligibility(NOW - timedelta(days=100), "FEMALE", now=NOW)
        assert not result.eligible
        assert result.cooldown_days == 120
        assert result.days_remaining == 20

    def test_same_gap_male_eligible(self):
        result = donation_eligibility(NOW - timedelta(days=100), "male", now=NOW)
        assert result.eligible
        assert result.cooldown_days == 90

    def test_naive_datetime_treated_as_utc(self):
        naive = datetime(2025, 1, 30, 12, 0)
        result = donation_eligibility(naive, None, now=NOW)
        assert result.days_remaining == 60

    def test_percentage_never_exceeds_100(self):
        for days in (0, 1, 45, 89):
            result = donation_eligibility(NOW - timedelta(days=days), None, now=NOW)
            assert 0 <= result.percentage <= 100


class TestCompatibility:
    """Test blood group matching."""

    def test_strict_exact_match(self):
        assert strictly_compatible("B+", "B+")
        assert strictly_compatible(BloodGroup.B_POS, "B+")
        assert not strictly_compatible("O-", "A+")

    def test_missing_group_never_compatible(self):
        assert not strictly_compatible(None, "A+")
        assert not strictly_compatible("A+", "")
        assert not medically_compatible(None, "A+")

    def test_input_is_normalized(self):
        assert strictly_compatible(" b+ ", "B+")

    def test_medical_table(self):
        assert medically_compatible("O-", "AB+")
        assert medically_compatible("O+", "A+")
        assert not medically_compatible("A+", "O+")
        assert not medically_compatible("AB+", "AB-")

    def test_default_policy_is_strict(self):
        assert not blood_compatible("O-", "A+")
        assert blood_compatible("O-", "A+", policy="medical")

    def test_unknown_policy(self):
        with pytest.raises(ValueError, match="Unknown compatibility policy"):
            blood_compatible("A+", "A+", policy="lenient")


class TestDistance:
    """Test the haversine distance."""

    def test_one_degree_of_longitude_at_equator(self):
        assert haversine_distance_km(0.0, 0.0, 0.0, 1.0) == "111.2"

    def test_same_point(self):
        assert haversine_distance_km(12.9716, 77.5946, 12.9716, 77.5946) == "0.0"

    def test_symmetric(self):
        a = haversine_distance_km(12.9716, 77.5946, 13.0827, 80.2707)
        b = haversine_distance_km(13.0827, 80.2707, 12.9716, 77.5946)
        assert a == b

    def test_missing_coordinate(self):
        assert haversine_distance_km(None, 77.5, 12.9, 77.6) is None

    def test_format(self):
        assert format_distance("4.2") == "4.2 km"
        assert format_distance(None) == "Unknown"


class TestDeclarationChecklist:
    """Test the donor self-declaration checklist."""

    def test_male_sections(self):
        titles = [s.title for s in sections_for("male")]
        assert "For Female Donors" not in titles
        checklist = DeclarationChecklist.for_gender("male")
        assert len(checklist.item_ids) == 18
        prev = checklist.sections[-1].items[0]
        assert prev.id == "prev_donation"
        assert "3 months" in prev.label

    def test_female_sections(self):
        checklist = DeclarationChecklist.for_gender("Female")
        ids = checklist.item_ids
        assert {"pregnant", "breastfeeding", "menstruation"} <= set(ids)
        assert len(ids) == 21
        assert "4 months" in checklist.sections[-1].items[0].label

    def test_starts_incomplete(self):
        checklist = DeclarationChecklist.for_gender(None)
        assert not checklist.is_complete()
        assert checklist.missing() == checklist.item_ids

    def test_select_all_toggles(self):
        """Select all checks everything; pressing it again clears everything."""
        checklist = DeclarationChecklist.for_gender(None)
        checklist.select_all()
        assert checklist.is_complete()
        checklist.select_all()
        assert checklist.missing() == checklist.item_ids

    def test_select_all_after_partial_check(self):
        checklist = DeclarationChecklist.for_gender(None)
        checklist.check("age")
        checklist.select_all()
        assert checklist.is_complete()

    def test_uncheck_invalidates(self):
        """Unchecking one item after select all blocks submission."""
        checklist = DeclarationChecklist.for_gender(None)
        checklist.select_all()
        checklist.toggle("hiv")
        assert not checklist.is_complete()
        assert checklist.missing() == ["hiv"]

    def test_unknown_item(self):
        checklist = DeclarationChecklist.for_gender(None)
        with pytest.raises(KeyError):
            checklist.check("pregnant")

    def test_consume_once(self):
        """A checklist authorizes a single action."""
        checklist = DeclarationChecklist.for_gender(None)
        checklist.select_all()
        checklist.consume()
        assert checklist.consumed
        assert not checklist.is_complete()
        with pytest.raises(ValueError):
            checklist.consume()

    def test_consume_incomplete(self):
        with pytest.raises(ValueError):
            DeclarationChecklist.for_gender(None).consume()

    def test_as_dict(self):
        checklist = DeclarationChecklist.for_gender(None)
        checklist.check("age")
        state = checklist.as_dict()
        assert state["age"] is True
        assert state["weight"] is False
