"""Tests for the operator CLI."""

import pytest
from click.testing import CliRunner

from coordination import CoordinationEngine
from main import cli


@pytest.fixture
def runner():
    return CliRunner()


def _invoke(runner, store, *args):
    return runner.invoke(cli, list(args), obj={"store": store})


class TestOfflineCommands:
    """Commands that need no store."""

    def test_eligibility_in_cooldown(self, runner):
        result = runner.invoke(cli, ["eligibility", "--last-donated", "2025-01-01", "--today", "2025-03-01"])
        assert result.exit_code == 0
        assert "Not eligible" in result.output
        assert "31 days" in result.output

    def test_eligibility_never_donated(self, runner):
        result = runner.invoke(cli, ["eligibility"])
        assert result.exit_code == 0
        assert "Eligible to donate" in result.output

    def test_eligibility_female(self, runner):
        result = runner.invoke(cli, ["eligibility", "-d", "2025-01-01", "--today", "2025-04-15", "-g", "female"])
        assert "Not eligible" in result.output
        assert "120 days" in result.output

    def test_distance(self, runner):
        result = runner.invoke(cli, ["distance", "0", "0", "0", "1"])
        assert result.exit_code == 0
        assert "111.2 km" in result.output

    def test_checklist(self, runner):
        male = runner.invoke(cli, ["checklist"])
        female = runner.invoke(cli, ["checklist", "--gender", "female"])
        assert "For Female Donors" not in male.output
        assert "For Female Donors" in female.output

    def test_backends(self, runner):
        result = runner.invoke(cli, ["backends"])
        assert result.exit_code == 0
        assert "memory" in result.output


class TestStoreCommands:
    """Commands run against an in-memory store."""

    def test_requests(self, runner, store, patient):
        CoordinationEngine(store).broadcast_request(patient, "B+")
        result = _invoke(runner, store, "requests")
        assert result.exit_code == 0
        assert "Priya" in result.output
        assert "B+" in result.output

    def test_no_requests(self, runner, store):
        result = _invoke(runner, store, "requests", "--status", "completed")
        assert "No requests." in result.output

    def test_stock(self, runner, store, admin):
        result = _invoke(runner, store, "stock", admin)
        assert result.exit_code == 0
        assert "B+" in result.output
        assert "AB-" in result.output

    def test_set_stock(self, runner, store, admin):
        result = _invoke(runner, store, "set-stock", admin, "O+", "3")
        assert result.exit_code == 0
        assert store.get(f"users/{admin}").data["bloodStock"]["O+"] == 3

    def test_set_stock_rejected(self, runner, store, donor):
        result = _invoke(runner, store, "set-stock", donor, "O+", "3")
        assert result.exit_code == 1
        assert "Only blood bank admins" in result.output

    def test_fulfill_and_verify(self, runner, store, patient, admin):
        request_id = CoordinationEngine(store).broadcast_request(patient, "B+")

        result = _invoke(runner, store, "fulfill", request_id, "B+", "--admin", admin)
        assert result.exit_code == 0
        code = store.get(f"requests/{request_id}").data["pickupCode"]
        assert f"Pickup code: {code}" in result.output

        result = _invoke(runner, store, "verify-pickup", request_id, "000000", "--admin", admin)
        assert result.exit_code == 1
        assert "Invalid Pickup Code" in result.output

        result = _invoke(runner, store, "verify-pickup", request_id, code, "--admin", admin)
        assert result.exit_code == 0
        assert "Handover complete." in result.output
        assert store.get(f"requests/{request_id}").data["status"] == "completed"

    def test_fulfill_without_stock(self, runner, store, patient, admin):
        request_id = CoordinationEngine(store).broadcast_request(patient, "A+")
        result = _invoke(runner, store, "fulfill", request_id, "A+", "-a", admin)
        assert result.exit_code == 1
        assert "Insufficient stock for A+! Current stock: 0" in result.output
