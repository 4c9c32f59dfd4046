"""
Tests for the inventory ledger: atomic reserve and release of seat counters.
"""

import logging

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from flightbook.database.models import Fare, Flight
from flightbook.exceptions import BadRequestError, InsufficientInventoryError, NotFoundError
from flightbook.models.enums import FareClass


def _counters(db, model, row_id):
    with db.get_session_context() as session:
        row = session.get(model, row_id)
        return row.booked_seats, row.available_seats


class TestReserve:
    """Reservation against flight and fare counters."""

    def test_reserve_flight_only(self, db, world, ledger):
        with db.get_session_context() as session:
            ledger.reserve(session, world.morning, 2)

        assert _counters(db, Flight, world.morning) == (2, 3)
        assert _counters(db, Fare, world.morning_economy) == (0, 3)

    def test_reserve_moves_flight_and_fare_together(self, db, world, ledger):
        with db.get_session_context() as session:
            ledger.reserve(session, world.morning, 2, FareClass.ECONOMY)

        assert _counters(db, Flight, world.morning) == (2, 3)
        assert _counters(db, Fare, world.morning_economy) == (2, 1)
        assert _counters(db, Fare, world.morning_business) == (0, 2)

    def test_insufficient_flight_seats_leave_counters_unchanged(self, db, world, ledger):
        with db.get_session_context() as session:
            ledger.reserve(session, world.morning, 3)

        with pytest.raises(InsufficientInventoryError) as exc_info:
            with db.get_session_context() as session:
                ledger.reserve(session, world.morning, 3)

        assert isinstance(exc_info.value, BadRequestError)
        assert exc_info.value.requested == 3
        assert exc_info.value.available == 2
        assert _counters(db, Flight, world.morning) == (3, 2)

    def test_insufficient_fare_seats_roll_back_flight_update(self, db, world, ledger):
        """The flight has 5 seats but business only 2: nothing may move."""
        with pytest.raises(InsufficientInventoryError):
            with db.get_session_context() as session:
                ledger.reserve(session, world.morning, 3, FareClass.BUSINESS)

        assert _counters(db, Flight, world.morning) == (0, 5)
        assert _counters(db, Fare, world.morning_business) == (0, 2)

    def test_failed_reserve_keeps_earlier_work_in_transaction(self, db, world, ledger):
        with db.get_session_context() as session:
            ledger.reserve(session, world.morning, 1, FareClass.BUSINESS)
            with pytest.raises(InsufficientInventoryError):
                ledger.reserve(session, world.morning, 2, FareClass.BUSINESS)

        assert _counters(db, Flight, world.morning) == (1, 4)
        assert _counters(db, Fare, world.morning_business) == (1, 1)

    def test_stale_object_does_not_defeat_capacity_check(self, db, world, ledger):
        """Loaded counters in the session are ignored; the UPDATE re-checks in SQL."""
        with db.get_session_context() as session:
            flight = session.get(Flight, world.morning)
            assert flight.available_seats == 5
            ledger.reserve(session, world.morning, 4)
            with pytest.raises(InsufficientInventoryError):
                ledger.reserve(session, world.morning, 4)
            assert flight.available_seats == 1

    def test_missing_flight(self, db, world, ledger):
        with pytest.raises(NotFoundError):
            with db.get_session_context() as session:
                ledger.reserve(session, 9999, 1)

    def test_missing_fare_class(self, db, world, ledger):
        with pytest.raises(NotFoundError):
            with db.get_session_context() as session:
                ledger.reserve(session, world.evening, 1, FareClass.BUSINESS)

        assert _counters(db, Flight, world.evening) == (0, 5)

    @pytest.mark.parametrize("seat_count", [0, -1])
    def test_seat_count_must_be_positive(self, db, world, ledger, seat_count):
        with pytest.raises(BadRequestError):
            with db.get_session_context() as session:
                ledger.reserve(session, world.morning, seat_count)


class TestRelease:
    """Release is the inverse of reserve and never goes negative."""

    def test_release_restores_counters(self, db, world, ledger):
        with db.get_session_context() as session:
            ledger.reserve(session, world.morning, 2, FareClass.ECONOMY)
        with db.get_session_context() as session:
            ledger.release(session, world.morning, 2, FareClass.ECONOMY)

        assert _counters(db, Flight, world.morning) == (0, 5)
        assert _counters(db, Fare, world.morning_economy) == (0, 3)

    def test_over_release_clamps_and_warns(self, db, world, ledger, caplog):
        with db.get_session_context() as session:
            ledger.reserve(session, world.morning, 1, FareClass.ECONOMY)

        with caplog.at_level(logging.WARNING, logger="flightbook.services.inventory"):
            with db.get_session_context() as session:
                ledger.release(session, world.morning, 3, FareClass.ECONOMY)

        assert _counters(db, Flight, world.morning) == (0, 5)
        assert _counters(db, Fare, world.morning_economy) == (0, 3)
        assert "clamping" in caplog.text

    def test_release_without_fare_row_releases_flight(self, db, world, ledger):
        with db.get_session_context() as session:
            ledger.reserve(session, world.evening, 2)
        with db.get_session_context() as session:
            ledger.release(session, world.evening, 2, FareClass.FIRST)

        assert _counters(db, Flight, world.evening) == (0, 5)

    def test_release_missing_flight(self, db, world, ledger):
        with pytest.raises(NotFoundError):
            with db.get_session_context() as session:
                ledger.release(session, 9999, 1)


class TestSnapshotAndConstraints:
    """Counter invariants as seen through snapshots and the schema."""

    def test_snapshot_is_consistent_after_operations(self, db, world, ledger):
        with db.get_session_context() as session:
            ledger.reserve(session, world.morning, 2, FareClass.ECONOMY)
            ledger.reserve(session, world.morning, 1, FareClass.BUSINESS)
            ledger.release(session, world.morning, 1, FareClass.ECONOMY)
            snapshot = ledger.snapshot(session, world.morning)

        assert snapshot.is_consistent
        assert snapshot.flight.booked_seats == 2
        assert snapshot.flight.available_seats == 3
        assert snapshot.fares[FareClass.ECONOMY].booked_seats == 1
        assert snapshot.fares[FareClass.BUSINESS].booked_seats == 1

    def test_snapshot_missing_flight(self, db, world, ledger):
        with pytest.raises(NotFoundError):
            with db.get_session_context() as session:
                ledger.snapshot(session, 9999)

    def test_schema_rejects_unbalanced_flight_counters(self, db, world):
        with pytest.raises(IntegrityError):
            with db.get_session_context() as session:
                session.execute(
                    update(Flight)
                    .where(Flight.flight_id == world.morning)
                    .values(booked_seats=Flight.booked_seats + 1)
                )

    def test_schema_rejects_negative_fare_counters(self, db, world):
        with pytest.raises(IntegrityError):
            with db.get_session_context() as session:
                session.execute(
                    update(Fare)
                    .where(Fare.fare_id == world.morning_economy)
                    .values(available_seats=-1, booked_seats=4)
                )
