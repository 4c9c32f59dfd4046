"""
Concurrent bookings against a file-backed SQLite database.

The shared in-memory database used elsewhere serialises every session on
one connection, so these tests swap in a database file where each thread
gets its own connection and real lock contention.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from decimal import Decimal

import pytest

from flightbook.database.config import DatabaseConfig
from flightbook.database.models import Fare, Flight
from flightbook.exceptions import InsufficientInventoryError
from flightbook.models.enums import FareClass

THREADS = 20


def _run_together(task, count=THREADS):
    """Start count calls of task at the same moment and sort the outcomes."""
    barrier = threading.Barrier(count, timeout=10)

    def worker():
        barrier.wait()
        return task()

    succeeded, rejected, failed = [], [], []
    with ThreadPoolExecutor(max_workers=count) as executor:
        futures = [executor.submit(worker) for _ in range(count)]
        for future in as_completed(futures):
            try:
                succeeded.append(future.result())
            except InsufficientInventoryError as e:
                rejected.append(e)
            except Exception as e:
                failed.append(e)
    return succeeded, rejected, failed


def _counters(db, model, row_id):
    with db.get_session_context() as session:
        row = session.get(model, row_id)
        return row.booked_seats, row.available_seats


class TestConcurrentBookings:
    """Parallel sessions never sell past the capacity check."""

    @pytest.fixture
    def db(self, tmp_path):
        config = DatabaseConfig(database_url=f"sqlite:///{tmp_path / 'flightbook.db'}")
        config.initialize()
        config.create_tables()
        yield config
        config.close()

    def test_file_database_uses_wal(self, db):
        assert db.is_memory_database is False
        with db.engine.connect() as conn:
            assert conn.exec_driver_sql("PRAGMA journal_mode").scalar() == "wal"

    def test_bookings_stop_at_available_seats(self, db, world, booking_engine, make_passengers):
        succeeded, rejected, failed = _run_together(
            lambda: booking_engine.create_booking(world.morning, make_passengers(1), Decimal("300.00"))
        )

        assert failed == []
        assert len(succeeded) == 5
        assert len(rejected) == THREADS - 5
        assert len({booking.pnr for booking in succeeded}) == 5

        booked, available = _counters(db, Flight, world.morning)
        assert (booked, available) == (5, 0)
        with db.get_session_context() as session:
            assert booked + available == session.get(Flight, world.morning).total_seats

    def test_fare_class_bookings_stop_at_class_allotment(self, db, world, booking_engine, make_passengers):
        succeeded, rejected, failed = _run_together(
            lambda: booking_engine.create_booking(
                world.morning, make_passengers(1), Decimal("300.00"), fare_class=FareClass.ECONOMY,
            )
        )

        assert failed == []
        assert len(succeeded) == 3
        assert len(rejected) == THREADS - 3
        assert _counters(db, Fare, world.morning_economy) == (3, 0)
        assert _counters(db, Flight, world.morning) == (3, 2)

    def test_parallel_ledger_reservations(self, db, world, ledger):
        def reserve_two():
            with db.get_session_context() as session:
                ledger.reserve(session, world.morning, 2)
            return 2

        succeeded, rejected, failed = _run_together(reserve_two, count=8)

        assert failed == []
        assert sum(succeeded) == 4
        assert len(rejected) == 6
        assert all(e.available == 1 for e in rejected)
        assert _counters(db, Flight, world.morning) == (4, 1)
