"""
Inventory ledger for flight and fare-class seat counters.

A flight carries one booked/available pair and each of its fares carries
another, sized from the aircraft's class allotment. The two pairs are
independent counters; the ledger is the only code that mutates them and
always moves both together when a fare class is given.

Every mutation is a single conditional UPDATE (available_seats >= n in
the WHERE clause), so two concurrent reservations can never both pass the
capacity check. The flight and fare updates run in one SAVEPOINT: if the
fare update fails the flight update is rolled back with it.
"""

import logging
from typing import Any, Optional

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from ..database.models import Fare, Flight
from ..exceptions import BadRequestError, InsufficientInventoryError, NotFoundError
from ..models.enums import FareClass
from ..models.flight import InventorySnapshot, SeatCounters

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Atomic reserve/release of seats on a flight and, optionally, one of its fares."""

    def reserve(
        self,
        session: Session,
        flight_id: int,
        seat_count: int,
        fare_class: Optional[FareClass] = None,
    ) -> None:
        """
        Take seat_count seats from the flight and, if given, its active fare for fare_class.

        Args:
            session: Session of the calling operation; nothing is committed here
            flight_id: Flight to reserve on
            seat_count: Number of seats, at least 1
            fare_class: Fare class whose counters move with the flight's

        Raises:
            NotFoundError: If the flight, or an active fare for the class, does not exist
            InsufficientInventoryError: If either counter pair cannot cover seat_count;
                no counter is changed in that case
        """
        self._check_seat_count(seat_count)

        with session.begin_nested():
            self._take(session, Flight, Flight.flight_id, flight_id, seat_count, f"flight {flight_id}")
            if fare_class is not None:
                fare_id = self._fare_id(session, flight_id, fare_class, active_only=True)
                if fare_id is None:
                    raise NotFoundError(
                        f"No active {FareClass(fare_class).value} fare for flight {flight_id}",
                        {"flight_id": flight_id, "fare_class": FareClass(fare_class).value},
                    )
                self._take(session, Fare, Fare.fare_id, fare_id, seat_count,
                           f"{FareClass(fare_class).value} fare of flight {flight_id}")

        logger.info(
            f"Reserved {seat_count} seat(s) on flight {flight_id}"
            + (f" ({FareClass(fare_class).value})" if fare_class is not None else "")
        )

    def release(
        self,
        session: Session,
        flight_id: int,
        seat_count: int,
        fare_class: Optional[FareClass] = None,
    ) -> None:
        """
        Return seat_count seats to the flight and, if given, its fare for fare_class.

        Releasing more seats than are booked clamps at zero: only the booked
        seats are returned and a warning is logged. Counters never go negative.

        Raises:
            NotFoundError: If the flight does not exist
        """
        self._check_seat_count(seat_count)

        with session.begin_nested():
            self._give_back(session, Flight, Flight.flight_id, flight_id, seat_count, f"flight {flight_id}")
            if fare_class is not None:
                fare_id = self._fare_id(session, flight_id, fare_class, active_only=False)
                if fare_id is None:
                    logger.warning(
                        f"No {FareClass(fare_class).value} fare on flight {flight_id}; "
                        f"released flight seats only"
                    )
                else:
                    self._give_back(session, Fare, Fare.fare_id, fare_id, seat_count,
                                    f"{FareClass(fare_class).value} fare of flight {flight_id}")

        logger.info(
            f"Released {seat_count} seat(s) on flight {flight_id}"
            + (f" ({FareClass(fare_class).value})" if fare_class is not None else "")
        )

    def snapshot(self, session: Session, flight_id: int) -> InventorySnapshot:
        """
        Read the flight counters and the counters of each of its active fares.

        Raises:
            NotFoundError: If the flight does not exist
        """
        flight = session.get(Flight, flight_id, populate_existing=True)
        if flight is None:
            raise NotFoundError(f"Flight with ID {flight_id} not found", {"flight_id": flight_id})

        fares = (
            session.query(Fare)
            .filter(Fare.flight_id == flight_id, Fare.is_active.is_(True))
            .populate_existing()
            .all()
        )
        return InventorySnapshot(
            flight_id=flight_id,
            flight=SeatCounters(
                capacity=flight.total_seats,
                booked_seats=flight.booked_seats,
                available_seats=flight.available_seats,
            ),
            fares={
                fare.fare_class: SeatCounters(
                    capacity=fare.allotted_seats,
                    booked_seats=fare.booked_seats,
                    available_seats=fare.available_seats,
                )
                for fare in fares
            },
        )

    @staticmethod
    def _check_seat_count(seat_count: int) -> None:
        if seat_count < 1:
            raise BadRequestError("Seat count must be at least 1", {"seat_count": seat_count})

    @staticmethod
    def _fare_id(session: Session, flight_id: int, fare_class: FareClass, active_only: bool) -> Optional[int]:
        query = session.query(Fare.fare_id).filter(
            Fare.flight_id == flight_id, Fare.fare_class == FareClass(fare_class)
        )
        if active_only:
            query = query.filter(Fare.is_active.is_(True))
        else:
            query = query.order_by(Fare.is_active.desc(), Fare.fare_id.desc())
        return query.limit(1).scalar()

    @staticmethod
    def _expire(session: Session, model: Any, row_id: int) -> None:
        """Drop stale counter values of an already-loaded row after a bulk UPDATE."""
        instance = session.identity_map.get(session.identity_key(model, row_id))
        if instance is not None:
            session.expire(instance, ["available_seats", "booked_seats"])

    def _take(self, session: Session, model: Any, pk: Any, row_id: int, seat_count: int, label: str) -> None:
        result = session.execute(
            update(model)
            .where(pk == row_id, model.available_seats >= seat_count)
            .values(
                available_seats=model.available_seats - seat_count,
                booked_seats=model.booked_seats + seat_count,
            )
            .execution_options(synchronize_session=False)
        )
        self._expire(session, model, row_id)

        if result.rowcount == 1:
            return

        available = session.query(model.available_seats).filter(pk == row_id).scalar()
        if available is None:
            raise NotFoundError(f"{label.capitalize()} not found", {"id": row_id})
        logger.info(f"Insufficient inventory on {label}: requested {seat_count}, available {available}")
        raise InsufficientInventoryError(
            f"Not enough seats available. Requested: {seat_count}, Available: {available}",
            requested=seat_count,
            available=available,
        )

    def _give_back(self, session: Session, model: Any, pk: Any, row_id: int, seat_count: int, label: str) -> None:
        booked = session.query(model.booked_seats).filter(pk == row_id).scalar()
        if booked is None:
            raise NotFoundError(f"{label.capitalize()} not found", {"id": row_id})
        if booked < seat_count:
            logger.warning(
                f"Release of {seat_count} seat(s) on {label} exceeds the {booked} booked; clamping to {booked}"
            )

        released = case((model.booked_seats < seat_count, model.booked_seats), else_=seat_count)
        session.execute(
            update(model)
            .where(pk == row_id)
            # available_seats first: MySQL evaluates SET clauses left to right
            .ordered_values(
                (model.available_seats, model.available_seats + released),
                (model.booked_seats, model.booked_seats - released),
            )
            .execution_options(synchronize_session=False)
        )
        self._expire(session, model, row_id)
