"""
Tests for the command line entry point and engine wiring.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from rich.console import Console
from typer.testing import CliRunner

from flightbook import main
from flightbook.cache.manager import CacheManager
from flightbook.models.enums import BookingStatus

runner = CliRunner()


@pytest.fixture
def core(db, app_config):
    return main.build_core(db, app_config, CacheManager(client=None))


@pytest.fixture
def cli(core, monkeypatch):
    """Run CLI commands against the test database with a wide console."""
    monkeypatch.setattr(main, "console", Console(width=200))
    with patch.object(main, "_startup", return_value=core):
        yield lambda *args: runner.invoke(main.app, list(args))


class TestBuildCore:

    def test_engines_share_database_and_ledger(self, db, core):
        assert core.db is db
        assert core.bookings.ledger is core.ledger
        assert core.bookings.identifiers.carrier_prefix == "001"
        assert core.search.cache.client is None

    def test_core_books_and_searches(self, world, core, make_passengers):
        booking = core.bookings.create_booking(world.morning, make_passengers(1), Decimal("300.00"))

        assert booking.status == BookingStatus.PENDING
        assert core.catalog.get_flight(world.morning).booked_seats == 1


class TestCli:

    def test_init(self, cli):
        result = cli("init", "--no-cache")

        assert result.exit_code == 0
        assert "Database ready (sqlite)" in result.output
        assert "Cache ready (in-memory)" in result.output

    def test_startup_failure(self, monkeypatch):
        monkeypatch.setattr(main, "console", Console(width=200))
        with patch.object(main, "_startup", side_effect=ValueError("Configuration validation failed")):
            result = runner.invoke(main.app, ["init"])

        assert result.exit_code == 1
        assert "Failed to start" in result.output

    def test_search(self, world, cli):
        result = cli("search", "jfk", "lax", "2030-06-15", "--no-cache")

        assert result.exit_code == 0
        assert "FB100" in result.output
        assert "FB102" in result.output
        assert "2 flight(s) found" in result.output

    def test_search_round_trip(self, world, cli):
        result = cli("search", "JFK", "LAX", "2030-06-15", "--return", "2030-06-22", "--no-cache")

        assert result.exit_code == 0
        assert "FB200" in result.output

    def test_search_unknown_airport(self, world, cli):
        result = cli("search", "JFK", "XXX", "2030-06-15", "--no-cache")

        assert result.exit_code == 1
        assert "XXX" in result.output

    def test_availability(self, world, cli):
        result = cli("availability", str(world.morning), "--seats", "2", "--no-cache")

        assert result.exit_code == 0
        assert "Seats available" in result.output

    def test_booking(self, world, core, cli, make_passengers):
        booking = core.bookings.create_booking(world.morning, make_passengers(2), Decimal("600.00"))

        result = cli("booking", booking.pnr.lower())

        assert result.exit_code == 0
        assert booking.pnr in result.output
        assert "pending" in result.output
        assert "Traveller2 Test" in result.output

    def test_booking_not_found(self, world, cli):
        result = cli("booking", "ZZZZZZ")

        assert result.exit_code == 1
        assert "not found" in result.output
