"""
SQLAlchemy database models for the reservation core.

This module defines the persistent schema the engines operate on:
- Airport, SeatConfiguration, Aircraft, Route: the static catalog
- Flight, Fare: scheduled operations and their priced fare classes, each
  carrying an independent pair of seat counters
- TaxFee, PromotionalCode, PromoRedemption: pricing rules
- Booking, Passenger, Ticket, SeatAssignment: the reservation records

Seat-counter balance, PNR and ticket-number uniqueness and seat-assignment
uniqueness are enforced here with CHECK and UNIQUE constraints. The engines
pre-check the same rules to produce friendlier errors, but the constraints
are what guarantees them.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime

from ..models.enums import (
    BookingStatus,
    FareClass,
    FlightStatus,
    PromoCodeStatus,
    PromoCodeType,
    SeatType,
    TaxCalculationType,
    TaxFeeType,
)

# Create the declarative base for all models
Base = declarative_base()


def _enum(enum_cls):
    """Store an enum by its value in a plain string column."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Airport(Base):
    """
    Airport model with IATA/ICAO codes and optional coordinates.

    Coordinates are only needed for nearby-airport expansion in search;
    airports without them are never considered nearby.
    """
    __tablename__ = 'airport'

    airport_id = Column(Integer, primary_key=True, autoincrement=True)
    iata = Column(String(3), unique=True, nullable=False, index=True)  # e.g. 'LAX'
    icao = Column(String(4), nullable=True)  # e.g. 'KLAX'
    name = Column(String(100), nullable=False)
    city = Column(String(100), nullable=False)
    country = Column(String(100), nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    timezone = Column(String(50), nullable=False, default='UTC')

    def __repr__(self):
        return f"<Airport(id={self.airport_id}, iata='{self.iata}', name='{self.name}')>"


class SeatConfiguration(Base):
    """
    Cabin layout shared by aircraft of the same type.

    The per-class counts are the allotments that fare inventory is sized from.
    """
    __tablename__ = 'seat_configuration'

    seat_configuration_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)  # e.g. 'Boeing 737-800 Standard'
    total_seats = Column(Integer, nullable=False)
    seats_economy = Column(Integer, nullable=False, default=0)
    seats_premium_economy = Column(Integer, nullable=False, default=0)
    seats_business = Column(Integer, nullable=False, default=0)
    seats_first = Column(Integer, nullable=False, default=0)

    aircraft = relationship("Aircraft", back_populates="seat_configuration", lazy="select")

    def seat_count(self, fare_class: FareClass) -> int:
        """Return the number of seats allotted to a fare class."""
        return {
            FareClass.ECONOMY: self.seats_economy,
            FareClass.PREMIUM_ECONOMY: self.seats_premium_economy,
            FareClass.BUSINESS: self.seats_business,
            FareClass.FIRST: self.seats_first,
        }[FareClass(fare_class)]

    def __repr__(self):
        return f"<SeatConfiguration(id={self.seat_configuration_id}, name='{self.name}', seats={self.total_seats})>"


class Aircraft(Base):
    __tablename__ = 'aircraft'

    aircraft_id = Column(Integer, primary_key=True, autoincrement=True)
    registration = Column(String(10), unique=True, nullable=False)  # e.g. 'N12345'
    model = Column(String(50), nullable=False, index=True)  # e.g. '737-800'
    manufacturer = Column(String(50), nullable=False)  # e.g. 'Boeing'
    seat_configuration_id = Column(
        Integer, ForeignKey('seat_configuration.seat_configuration_id'), nullable=False
    )
    is_active = Column(Boolean, nullable=False, default=True)

    seat_configuration = relationship("SeatConfiguration", back_populates="aircraft", lazy="select")
    flights = relationship("Flight", back_populates="aircraft", lazy="select")

    def __repr__(self):
        return f"<Aircraft(id={self.aircraft_id}, registration='{self.registration}', model='{self.model}')>"


class Route(Base):
    """Directed origin -> destination pair served by flights."""
    __tablename__ = 'route'

    route_id = Column(Integer, primary_key=True, autoincrement=True)
    origin_id = Column(Integer, ForeignKey('airport.airport_id'), nullable=False, index=True)
    destination_id = Column(Integer, ForeignKey('airport.airport_id'), nullable=False, index=True)
    distance_km = Column(Integer, nullable=False, default=0)
    estimated_duration_minutes = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    origin = relationship("Airport", foreign_keys=[origin_id], lazy="select")
    destination = relationship("Airport", foreign_keys=[destination_id], lazy="select")
    flights = relationship("Flight", back_populates="route", lazy="select")

    def __repr__(self):
        return f"<Route(id={self.route_id}, origin={self.origin_id}, destination={self.destination_id})>"


class Flight(Base):
    """
    Scheduled operation of a route on a date.

    total_seats is copied from the aircraft's seat configuration when the
    flight is created and never changes. booked_seats and available_seats
    are only ever mutated through the inventory ledger, and the CHECK
    constraints keep them balanced against total_seats.
    """
    __tablename__ = 'flight'
    __table_args__ = (
        UniqueConstraint('flightno', 'departure_date', name='uq_flight_number_date'),
        CheckConstraint('booked_seats + available_seats = total_seats', name='ck_flight_seat_balance'),
        CheckConstraint('available_seats >= 0', name='ck_flight_available_non_negative'),
        CheckConstraint('booked_seats >= 0', name='ck_flight_booked_non_negative'),
    )

    flight_id = Column(Integer, primary_key=True, autoincrement=True)
    flightno = Column(String(10), nullable=False, index=True)  # e.g. 'AA1234'
    route_id = Column(Integer, ForeignKey('route.route_id'), nullable=False, index=True)
    aircraft_id = Column(Integer, ForeignKey('aircraft.aircraft_id'), nullable=False, index=True)

    departure_date = Column(Date, nullable=False, index=True)
    scheduled_departure = Column(DateTime, nullable=False, index=True)
    scheduled_arrival = Column(DateTime, nullable=False)
    actual_departure = Column(DateTime, nullable=True)
    actual_arrival = Column(DateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(_enum(FlightStatus), nullable=False, default=FlightStatus.SCHEDULED)

    total_seats = Column(Integer, nullable=False)
    booked_seats = Column(Integer, nullable=False, default=0)
    available_seats = Column(Integer, nullable=False)

    route = relationship("Route", back_populates="flights", lazy="select")
    aircraft = relationship("Aircraft", back_populates="flights", lazy="select")
    fares = relationship("Fare", back_populates="flight", lazy="select")
    bookings = relationship("Booking", back_populates="flight", lazy="select")

    def __repr__(self):
        return (
            f"<Flight(id={self.flight_id}, flightno='{self.flightno}', date={self.departure_date}, "
            f"booked={self.booked_seats}/{self.total_seats})>"
        )


class Fare(Base):
    """
    Priced offering of one fare class on one flight.

    The class-scoped counters are independent of the flight counters and
    balance against allotted_seats, the class allotment of the aircraft.
    """
    __tablename__ = 'fare'
    __table_args__ = (
        CheckConstraint('booked_seats + available_seats = allotted_seats', name='ck_fare_seat_balance'),
        CheckConstraint('available_seats >= 0', name='ck_fare_available_non_negative'),
        CheckConstraint('booked_seats >= 0', name='ck_fare_booked_non_negative'),
    )

    fare_id = Column(Integer, primary_key=True, autoincrement=True)
    flight_id = Column(Integer, ForeignKey('flight.flight_id'), nullable=False, index=True)
    fare_class = Column(_enum(FareClass), nullable=False)

    base_fare = Column(Numeric(10, 2), nullable=False)
    dynamic_price_adjustment = Column(Numeric(10, 2), nullable=False, default=0)
    total_fare = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default='USD')

    allotted_seats = Column(Integer, nullable=False)
    booked_seats = Column(Integer, nullable=False, default=0)
    available_seats = Column(Integer, nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)
    valid_from = Column(DateTime, nullable=True)
    valid_to = Column(DateTime, nullable=True)

    flight = relationship("Flight", back_populates="fares", lazy="select")
    tax_fees = relationship("TaxFee", back_populates="fare", lazy="select", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Fare(id={self.fare_id}, flight_id={self.flight_id}, class='{self.fare_class}', total={self.total_fare})>"


class TaxFee(Base):
    __tablename__ = 'tax_fee'

    tax_fee_id = Column(Integer, primary_key=True, autoincrement=True)
    fare_id = Column(Integer, ForeignKey('fare.fare_id'), nullable=False, index=True)
    type = Column(_enum(TaxFeeType), nullable=False)
    name = Column(String(100), nullable=False)
    calculation_type = Column(_enum(TaxCalculationType), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)  # currency amount, or percent for PERCENTAGE
    min_amount = Column(Numeric(10, 2), nullable=True)
    max_amount = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(3), nullable=False, default='USD')
    is_active = Column(Boolean, nullable=False, default=True)

    fare = relationship("Fare", back_populates="tax_fees", lazy="select")

    def __repr__(self):
        return f"<TaxFee(id={self.tax_fee_id}, type='{self.type}', amount={self.amount})>"


class PromotionalCode(Base):
    """
    Discount rule keyed by a unique code string.

    current_uses is incremented on redemption; status moves to used_up
    once max_uses is reached.
    """
    __tablename__ = 'promotional_code'

    promotional_code_id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(_enum(PromoCodeType), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    max_discount_amount = Column(Numeric(10, 2), nullable=True)
    min_purchase_amount = Column(Numeric(10, 2), nullable=True)
    status = Column(_enum(PromoCodeStatus), nullable=False, default=PromoCodeStatus.ACTIVE)
    valid_from = Column(DateTime, nullable=False)
    valid_to = Column(DateTime, nullable=False)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    max_uses_per_user = Column(Integer, nullable=True)
    applicable_fare_class = Column(_enum(FareClass), nullable=True)
    currency = Column(String(3), nullable=False, default='USD')

    redemptions = relationship("PromoRedemption", back_populates="promotional_code", lazy="select")

    def __repr__(self):
        return f"<PromotionalCode(id={self.promotional_code_id}, code='{self.code}', status='{self.status}')>"


class PromoRedemption(Base):
    __tablename__ = 'promo_redemption'

    promo_redemption_id = Column(Integer, primary_key=True, autoincrement=True)
    promotional_code_id = Column(
        Integer, ForeignKey('promotional_code.promotional_code_id'), nullable=False, index=True
    )
    user_id = Column(String(64), nullable=True, index=True)
    booking_id = Column(Integer, nullable=True)
    redeemed_at = Column(DateTime, nullable=False, default=datetime.now)

    promotional_code = relationship("PromotionalCode", back_populates="redemptions", lazy="select")


class Booking(Base):
    """
    Reservation identified by a 6-character PNR.

    Owns its passengers, tickets and seat assignments; they are removed
    together with the booking.
    """
    __tablename__ = 'booking'

    booking_id = Column(Integer, primary_key=True, autoincrement=True)
    pnr = Column(String(6), unique=True, nullable=False, index=True)
    flight_id = Column(Integer, ForeignKey('flight.flight_id'), nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)  # guest bookings have no user
    fare_class = Column(_enum(FareClass), nullable=True)
    status = Column(_enum(BookingStatus), nullable=False, default=BookingStatus.PENDING)
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default='USD')
    notes = Column(Text, nullable=True)

    booking_date = Column(DateTime, nullable=False, default=datetime.now)
    confirmation_date = Column(DateTime, nullable=True)
    cancellation_date = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    flight = relationship("Flight", back_populates="bookings", lazy="select")
    passengers = relationship(
        "Passenger",
        back_populates="booking",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="Passenger.passenger_id",
    )
    tickets = relationship(
        "Ticket",
        back_populates="booking",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="Ticket.ticket_id",
    )
    seat_assignments = relationship(
        "SeatAssignment",
        back_populates="booking",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="SeatAssignment.seat_number",
    )

    def __repr__(self):
        return f"<Booking(id={self.booking_id}, pnr='{self.pnr}', flight_id={self.flight_id}, status='{self.status}')>"


class Passenger(Base):
    __tablename__ = 'passenger'

    passenger_id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey('booking.booking_id'), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(10), nullable=True)
    email = Column(String(255), nullable=True)
    phone_number = Column(String(30), nullable=True)
    nationality = Column(String(3), nullable=True)
    passport_number = Column(String(20), nullable=True)
    passport_expiry_date = Column(Date, nullable=True)
    passport_issuing_country = Column(String(3), nullable=True)
    special_assistance = Column(Text, nullable=True)
    frequent_flyer_number = Column(String(30), nullable=True)

    booking = relationship("Booking", back_populates="passengers", lazy="select")

    def __repr__(self):
        return f"<Passenger(id={self.passenger_id}, booking_id={self.booking_id}, name='{self.first_name} {self.last_name}')>"


class Ticket(Base):
    """Travel document issued per passenger when a booking is confirmed."""
    __tablename__ = 'ticket'
    __table_args__ = (
        UniqueConstraint('booking_id', 'passenger_id', name='uq_ticket_booking_passenger'),
    )

    ticket_id = Column(Integer, primary_key=True, autoincrement=True)
    ticket_number = Column(String(13), unique=True, nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey('booking.booking_id'), nullable=False, index=True)
    passenger_id = Column(Integer, ForeignKey('passenger.passenger_id'), nullable=False)
    fare = Column(Numeric(10, 2), nullable=False)
    taxes = Column(Numeric(10, 2), nullable=False)
    fees = Column(Numeric(10, 2), nullable=False)
    fare_class = Column(_enum(FareClass), nullable=False)
    issued_date = Column(DateTime, nullable=False)
    expiry_date = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    booking = relationship("Booking", back_populates="tickets", lazy="select")
    passenger = relationship("Passenger", lazy="select")

    def __repr__(self):
        return f"<Ticket(id={self.ticket_id}, number='{self.ticket_number}', booking_id={self.booking_id})>"


class SeatAssignment(Base):
    __tablename__ = 'seat_assignment'
    __table_args__ = (
        UniqueConstraint('booking_id', 'seat_number', name='uq_seat_booking_seat'),
        UniqueConstraint('booking_id', 'passenger_id', name='uq_seat_booking_passenger'),
    )

    seat_assignment_id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey('booking.booking_id'), nullable=False, index=True)
    passenger_id = Column(Integer, ForeignKey('passenger.passenger_id'), nullable=False)
    seat_number = Column(String(4), nullable=False)  # e.g. '12A'
    seat_type = Column(_enum(SeatType), nullable=True)
    seat_class = Column(_enum(FareClass), nullable=True)
    seat_price = Column(Numeric(10, 2), nullable=False, default=0)
    is_preferred = Column(Boolean, nullable=False, default=False)
    assigned_date = Column(DateTime, nullable=False, default=datetime.now)

    booking = relationship("Booking", back_populates="seat_assignments", lazy="select")
    passenger = relationship("Passenger", lazy="select")

    def __repr__(self):
        return f"<SeatAssignment(id={self.seat_assignment_id}, booking_id={self.booking_id}, seat='{self.seat_number}')>"


# Composite indexes for the search and booking query patterns
Index('idx_flight_route_date', Flight.route_id, Flight.departure_date)
Index('idx_fare_flight_class', Fare.flight_id, Fare.fare_class)
# At most one active fare per class on a flight. MySQL has no partial indexes.
Index(
    'uq_fare_flight_active_class', Fare.flight_id, Fare.fare_class,
    unique=True,
    sqlite_where=text('is_active'),
    postgresql_where=text('is_active'),
).ddl_if(dialect=('sqlite', 'postgresql'))
Index('idx_route_origin_destination', Route.origin_id, Route.destination_id)
Index('idx_booking_flight_status', Booking.flight_id, Booking.status)


def create_all_tables(engine):
    """
    Create all database tables using the provided SQLAlchemy engine.

    Args:
        engine: SQLAlchemy engine instance
    """
    Base.metadata.create_all(bind=engine)


# Export all models and utilities
__all__ = [
    'Base',
    'Airport',
    'SeatConfiguration',
    'Aircraft',
    'Route',
    'Flight',
    'Fare',
    'TaxFee',
    'PromotionalCode',
    'PromoRedemption',
    'Booking',
    'Passenger',
    'Ticket',
    'SeatAssignment',
    'create_all_tables',
]
