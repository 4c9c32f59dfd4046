"""
Catalog service: flights, fares and their taxes and fees.

Flights and fares are where the seat counters are born. A flight takes
its capacity from the aircraft's seat configuration and a fare takes its
allotment from the same configuration's class count; both start fully
available and are only moved afterwards by the inventory ledger.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..database.config import DatabaseConfig
from ..database.models import Aircraft, Booking, Fare, Flight, Route, TaxFee
from ..exceptions import BadRequestError, ConflictError, NotFoundError
from ..models.enums import FareClass, FlightStatus, TaxCalculationType, TaxFeeType
from ..models.flight import FareModel, FlightModel, TaxFeeModel

logger = logging.getLogger(__name__)


class CatalogService:
    """Creates and maintains the flights and fares that bookings are made against."""

    def __init__(self, db: DatabaseConfig):
        self.db = db

    def get_flight(self, flight_id: int) -> FlightModel:
        """
        Raises:
            NotFoundError: If the flight does not exist
        """
        with self.db.get_session_context() as session:
            flight = session.get(Flight, flight_id)
            if flight is None:
                raise NotFoundError(f"Flight with ID {flight_id} not found", {"flight_id": flight_id})
            return FlightModel.model_validate(flight)

    def create_flight(
        self,
        flightno: str,
        route_id: int,
        aircraft_id: int,
        scheduled_departure: datetime,
        duration_minutes: Optional[int] = None,
        status: FlightStatus = FlightStatus.SCHEDULED,
    ) -> FlightModel:
        """
        Schedule a flight on a route with an aircraft.

        Args:
            flightno: Flight number, unique per departure date
            route_id: Route the flight operates
            aircraft_id: Aircraft whose seat configuration sets the capacity
            scheduled_departure: Departure time
            duration_minutes: Block time; the route estimate is used when omitted
            status: Initial status

        Returns:
            The created flight with all seats available

        Raises:
            NotFoundError: If the route or aircraft does not exist
            BadRequestError: If the flight number already departs on that date
        """
        with self.db.get_session_context() as session:
            route = session.get(Route, route_id)
            if route is None:
                raise NotFoundError(f"Route with ID {route_id} not found", {"route_id": route_id})

            aircraft = session.get(Aircraft, aircraft_id)
            if aircraft is None:
                raise NotFoundError(f"Aircraft with ID {aircraft_id} not found", {"aircraft_id": aircraft_id})

            departure_date = scheduled_departure.date()
            duplicate = (
                session.query(Flight.flight_id)
                .filter(Flight.flightno == flightno, Flight.departure_date == departure_date)
                .first()
            )
            if duplicate is not None:
                raise BadRequestError(
                    f"Flight {flightno} already exists on {departure_date.isoformat()}",
                    {"flightno": flightno, "departure_date": departure_date.isoformat()},
                )

            if duration_minutes is None:
                duration_minutes = route.estimated_duration_minutes
            capacity = aircraft.seat_configuration.total_seats

            flight = Flight(
                flightno=flightno,
                route_id=route_id,
                aircraft_id=aircraft_id,
                departure_date=departure_date,
                scheduled_departure=scheduled_departure,
                scheduled_arrival=scheduled_departure + timedelta(minutes=duration_minutes),
                duration_minutes=duration_minutes,
                status=FlightStatus(status),
                total_seats=capacity,
                booked_seats=0,
                available_seats=capacity,
            )
            session.add(flight)
            session.flush()

            logger.info(f"Created flight {flightno} on {departure_date} with {capacity} seats")
            return FlightModel.model_validate(flight)

    def update_flight_status(self, flight_id: int, status: FlightStatus) -> FlightModel:
        with self.db.get_session_context() as session:
            flight = session.get(Flight, flight_id)
            if flight is None:
                raise NotFoundError(f"Flight with ID {flight_id} not found", {"flight_id": flight_id})

            previous = flight.status
            flight.status = FlightStatus(status)
            session.flush()

            logger.info(f"Flight {flight.flightno} status {previous.value} -> {flight.status.value}")
            return FlightModel.model_validate(flight)

    def delete_flight(self, flight_id: int) -> None:
        """
        Delete a flight together with its fares.

        Raises:
            NotFoundError: If the flight does not exist
            BadRequestError: If the flight has booked seats or bookings on record
        """
        with self.db.get_session_context() as session:
            flight = session.get(Flight, flight_id)
            if flight is None:
                raise NotFoundError(f"Flight with ID {flight_id} not found", {"flight_id": flight_id})

            if flight.booked_seats > 0:
                raise BadRequestError(
                    "Cannot delete flight with existing bookings",
                    {"flight_id": flight_id, "booked_seats": flight.booked_seats},
                )
            has_bookings = session.query(Booking.booking_id).filter(Booking.flight_id == flight_id).first()
            if has_bookings is not None:
                raise BadRequestError("Cannot delete flight with existing bookings", {"flight_id": flight_id})

            for fare in list(flight.fares):
                session.delete(fare)
            session.delete(flight)

            logger.info(f"Deleted flight {flight.flightno} ({flight_id})")

    def create_fare(
        self,
        flight_id: int,
        fare_class: FareClass,
        base_fare: Decimal,
        dynamic_price_adjustment: Decimal = Decimal("0"),
        currency: str = "USD",
        valid_from: Optional[datetime] = None,
        valid_to: Optional[datetime] = None,
    ) -> FareModel:
        """
        Open a fare class for sale on a flight.

        The fare's allotment is the class seat count of the flight's
        aircraft, all of it available.

        Raises:
            NotFoundError: If the flight does not exist
            ConflictError: If the flight already has an active fare for the class
            BadRequestError: If the aircraft has no seats in the class
        """
        fare_class = FareClass(fare_class)
        base_fare = Decimal(base_fare)
        dynamic_price_adjustment = Decimal(dynamic_price_adjustment)

        with self.db.get_session_context() as session:
            flight = session.get(Flight, flight_id)
            if flight is None:
                raise NotFoundError(f"Flight with ID {flight_id} not found", {"flight_id": flight_id})

            existing = (
                session.query(Fare.fare_id)
                .filter(Fare.flight_id == flight_id, Fare.fare_class == fare_class, Fare.is_active.is_(True))
                .first()
            )
            if existing is not None:
                raise ConflictError(
                    f"Active {fare_class.value} fare already exists for flight {flight_id}",
                    {"flight_id": flight_id, "fare_class": fare_class.value},
                )

            allotment = flight.aircraft.seat_configuration.seat_count(fare_class)
            if allotment <= 0:
                raise BadRequestError(
                    f"Aircraft has no {fare_class.value} seats",
                    {"flight_id": flight_id, "fare_class": fare_class.value},
                )

            fare = Fare(
                flight_id=flight_id,
                fare_class=fare_class,
                base_fare=base_fare,
                dynamic_price_adjustment=dynamic_price_adjustment,
                total_fare=base_fare + dynamic_price_adjustment,
                currency=currency,
                allotted_seats=allotment,
                booked_seats=0,
                available_seats=allotment,
                is_active=True,
                valid_from=valid_from,
                valid_to=valid_to,
            )
            try:
                with session.begin_nested():
                    session.add(fare)
                    session.flush()
            except IntegrityError:
                raise ConflictError(
                    f"Active {fare_class.value} fare already exists for flight {flight_id}",
                    {"flight_id": flight_id, "fare_class": fare_class.value},
                )

            logger.info(f"Created {fare_class.value} fare for flight {flight_id}: {fare.total_fare} {currency}")
            return FareModel.model_validate(fare)

    def add_tax_fee(
        self,
        fare_id: int,
        type: TaxFeeType,
        name: str,
        calculation_type: TaxCalculationType,
        amount: Decimal,
        min_amount: Optional[Decimal] = None,
        max_amount: Optional[Decimal] = None,
        currency: str = "USD",
    ) -> TaxFeeModel:
        """
        Attach a tax or fee to a fare.

        For PERCENTAGE charges amount is a percent of the per-passenger
        price and min_amount/max_amount bound the per-passenger charge.

        Raises:
            NotFoundError: If the fare does not exist
        """
        with self.db.get_session_context() as session:
            fare = session.get(Fare, fare_id)
            if fare is None:
                raise NotFoundError(f"Fare with ID {fare_id} not found", {"fare_id": fare_id})

            tax_fee = TaxFee(
                fare_id=fare_id,
                type=TaxFeeType(type),
                name=name,
                calculation_type=TaxCalculationType(calculation_type),
                amount=Decimal(amount),
                min_amount=min_amount,
                max_amount=max_amount,
                currency=currency,
                is_active=True,
            )
            session.add(tax_fee)
            session.flush()

            logger.debug(f"Added {tax_fee.type.value} '{name}' to fare {fare_id}")
            return TaxFeeModel.model_validate(tax_fee)
