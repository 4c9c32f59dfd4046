"""
Booking and ticketing engine.

Each public operation runs in one database transaction: the inventory
reservation, the PNR allocation and the passenger rows of a new booking
either all commit or none of them do.

Status changes are driven by TRANSITIONS, which maps an allowed
(current, requested) pair to the side effects the change carries:

    PENDING    -> CONFIRMED   stamp confirmation date, issue tickets
    PENDING    -> CANCELLED   stamp cancellation, release seats
    CONFIRMED  -> CANCELLED   stamp cancellation, release seats
    CHECKED_IN -> CANCELLED   stamp cancellation, release seats
    PENDING    -> CHECKED_IN  (none)
    CONFIRMED  -> CHECKED_IN  (none)

Any pair not in the table, including a status to itself and anything
out of CANCELLED, is rejected.
"""

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..database.config import DatabaseConfig
from ..database.models import Booking, Flight, Passenger, SeatAssignment, Ticket
from ..exceptions import BadRequestError, ConflictError, NotFoundError
from ..models.booking import (
    BookingModel,
    BookingSearchResult,
    PassengerCreate,
    SeatAssignmentModel,
    TicketModel,
)
from ..models.enums import BookingStatus, FareClass, SeatType
from ..utils.config import AppConfig, get_config
from .collaborators import (
    AncillaryAggregator,
    NullAncillaryAggregator,
    NullPaymentGateway,
    NullUserDirectory,
    PaymentGateway,
    UserDirectory,
)
from .identifiers import (
    PNR_EXHAUSTED,
    TICKET_NUMBER_EXHAUSTED,
    IdentifierGenerator,
    allocate_unique,
)
from .inventory import InventoryLedger

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

STAMP_CONFIRMATION = "stamp_confirmation"
ISSUE_TICKETS = "issue_tickets"
STAMP_CANCELLATION = "stamp_cancellation"
RELEASE_INVENTORY = "release_inventory"

TRANSITIONS: Dict[Tuple[BookingStatus, BookingStatus], Tuple[str, ...]] = {
    (BookingStatus.PENDING, BookingStatus.CONFIRMED): (STAMP_CONFIRMATION, ISSUE_TICKETS),
    (BookingStatus.PENDING, BookingStatus.CANCELLED): (STAMP_CANCELLATION, RELEASE_INVENTORY),
    (BookingStatus.CONFIRMED, BookingStatus.CANCELLED): (STAMP_CANCELLATION, RELEASE_INVENTORY),
    (BookingStatus.CHECKED_IN, BookingStatus.CANCELLED): (STAMP_CANCELLATION, RELEASE_INVENTORY),
    (BookingStatus.PENDING, BookingStatus.CHECKED_IN): (),
    (BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN): (),
}


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class BookingEngine:
    """
    Creates bookings, moves them through their lifecycle and issues tickets.

    Args:
        db: Database configuration providing sessions
        ledger: Inventory ledger that owns the seat counters
        identifiers: PNR and ticket number candidate generator
        payments: Consulted before a booking is confirmed
        users: Validates user references on new bookings
        ancillaries: Totals extras sold against a booking
        clock: Returns the current time
        config: Ticketing rates, validity and identifier retry settings
    """

    def __init__(
        self,
        db: DatabaseConfig,
        ledger: InventoryLedger,
        identifiers: IdentifierGenerator,
        payments: Optional[PaymentGateway] = None,
        users: Optional[UserDirectory] = None,
        ancillaries: Optional[AncillaryAggregator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        config: Optional[AppConfig] = None,
    ):
        self.db = db
        self.ledger = ledger
        self.identifiers = identifiers
        self.payments = payments or NullPaymentGateway()
        self.users = users or NullUserDirectory()
        self.ancillaries = ancillaries or NullAncillaryAggregator()
        self.clock = clock or datetime.now
        self.config = config or get_config()
        logger.info("BookingEngine initialized")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _get_booking(session: Session, booking_id: int) -> Booking:
        booking = session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError(f"Booking with ID {booking_id} not found", {"booking_id": booking_id})
        return booking

    @staticmethod
    def _has_tickets(session: Session, booking_id: int) -> bool:
        return session.query(Ticket.ticket_id).filter(Ticket.booking_id == booking_id).first() is not None

    def _issue_tickets(self, session: Session, booking: Booking) -> List[Ticket]:
        """One ticket per passenger, total amount split evenly between them."""
        passengers = list(booking.passengers)
        if not passengers:
            raise BadRequestError("Booking has no passengers", {"booking_id": booking.booking_id})

        fare = _money(Decimal(booking.total_amount) / len(passengers))
        taxes = _money(fare * self.config.ticket_tax_rate)
        fees = _money(fare * self.config.ticket_fee_rate)
        fare_class = booking.fare_class or FareClass.ECONOMY
        issued = self.clock()
        expires = issued + timedelta(days=self.config.ticket_validity_days)

        tickets = []
        for passenger in passengers:
            ticket = allocate_unique(
                session,
                Ticket.ticket_number,
                self.identifiers.generate_ticket_number,
                lambda number, pid=passenger.passenger_id: Ticket(
                    ticket_number=number,
                    booking_id=booking.booking_id,
                    passenger_id=pid,
                    fare=fare,
                    taxes=taxes,
                    fees=fees,
                    fare_class=fare_class,
                    issued_date=issued,
                    expiry_date=expires,
                    is_active=True,
                ),
                TICKET_NUMBER_EXHAUSTED,
                max_attempts=self.config.identifier_max_attempts,
            )
            tickets.append(ticket)

        session.expire(booking, ["tickets"])
        logger.info(f"Issued {len(tickets)} ticket(s) for booking {booking.pnr}")
        return tickets

    # Side effects named in TRANSITIONS

    def _stamp_confirmation(self, session: Session, booking: Booking, reason: Optional[str]) -> None:
        booking.confirmation_date = self.clock()

    def _issue_tickets_on_confirm(self, session: Session, booking: Booking, reason: Optional[str]) -> None:
        if self._has_tickets(session, booking.booking_id):
            raise ConflictError(
                f"Tickets already exist for booking {booking.pnr}",
                {"booking_id": booking.booking_id},
            )
        self._issue_tickets(session, booking)

    def _stamp_cancellation(self, session: Session, booking: Booking, reason: Optional[str]) -> None:
        booking.cancellation_date = self.clock()
        booking.cancellation_reason = reason

    def _release_inventory(self, session: Session, booking: Booking, reason: Optional[str]) -> None:
        self.ledger.release(session, booking.flight_id, len(booking.passengers), booking.fare_class)

    def _effect(self, name: str):
        return {
            STAMP_CONFIRMATION: self._stamp_confirmation,
            ISSUE_TICKETS: self._issue_tickets_on_confirm,
            STAMP_CANCELLATION: self._stamp_cancellation,
            RELEASE_INVENTORY: self._release_inventory,
        }[name]

    # ------------------------------------------------------------------
    # Booking lifecycle
    # ------------------------------------------------------------------

    def create_booking(
        self,
        flight_id: int,
        passengers: Sequence[PassengerCreate],
        total_amount: Decimal,
        currency: Optional[str] = None,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
        fare_class: Optional[FareClass] = None,
    ) -> BookingModel:
        """
        Reserve seats and create a PENDING booking with its passengers.

        Args:
            flight_id: Flight to book
            passengers: One entry per traveller, at least one
            total_amount: Amount charged for the whole booking
            currency: Defaults to the configured currency
            notes: Free-text notes
            user_id: Owning user; None for guest bookings
            fare_class: Fare class whose counters are reserved with the flight's

        Returns:
            The created booking

        Raises:
            NotFoundError: If the flight, the user, or an active fare for fare_class does not exist
            BadRequestError: If there are no passengers or not enough seats
            ConflictError: If no unique PNR could be allocated
        """
        if not passengers:
            raise BadRequestError("At least one passenger is required", {"flight_id": flight_id})

        if user_id is not None and not self.users.user_exists(user_id):
            raise NotFoundError(f"User with ID {user_id} not found", {"user_id": user_id})

        if fare_class is not None:
            fare_class = FareClass(fare_class)

        with self.db.get_session_context() as session:
            flight = session.get(Flight, flight_id)
            if flight is None:
                raise NotFoundError(f"Flight with ID {flight_id} not found", {"flight_id": flight_id})

            self.ledger.reserve(session, flight_id, len(passengers), fare_class)

            now = self.clock()
            booking = allocate_unique(
                session,
                Booking.pnr,
                self.identifiers.generate_pnr,
                lambda pnr: Booking(
                    pnr=pnr,
                    flight_id=flight_id,
                    user_id=user_id,
                    fare_class=fare_class,
                    status=BookingStatus.PENDING,
                    total_amount=Decimal(total_amount),
                    currency=currency or self.config.default_currency,
                    notes=notes,
                    booking_date=now,
                ),
                PNR_EXHAUSTED,
                max_attempts=self.config.identifier_max_attempts,
            )

            for passenger in passengers:
                booking.passengers.append(Passenger(**passenger.model_dump()))
            session.flush()

            logger.info(
                f"Created booking {booking.pnr} on flight {flight.flightno} "
                f"for {len(passengers)} passenger(s)"
            )
            return BookingModel.model_validate(booking)

    def update_booking_status(
        self,
        booking_id: int,
        status: BookingStatus,
        cancellation_reason: Optional[str] = None,
    ) -> BookingModel:
        """
        Move a booking to a new status and apply the transition's side effects.

        Raises:
            NotFoundError: If the booking does not exist
            BadRequestError: If the transition is not allowed
            ConflictError: If confirming a booking that already has tickets
        """
        requested = BookingStatus(status)

        with self.db.get_session_context() as session:
            booking = self._get_booking(session, booking_id)
            current = booking.status

            effects = TRANSITIONS.get((current, requested))
            if effects is None:
                raise BadRequestError(
                    f"Cannot change booking status from {current.value} to {requested.value}",
                    {"booking_id": booking_id, "current": current.value, "requested": requested.value},
                )

            if requested == BookingStatus.CONFIRMED and not self.payments.has_completed_payment(booking_id):
                logger.warning(f"Confirming booking {booking.pnr} without a completed payment")

            for name in effects:
                self._effect(name)(session, booking, cancellation_reason)

            booking.status = requested
            session.flush()

            logger.info(f"Booking {booking.pnr} status {current.value} -> {requested.value}")
            return BookingModel.model_validate(booking)

    def generate_tickets(self, booking_id: int) -> List[TicketModel]:
        """
        Issue tickets for every passenger of a booking.

        Raises:
            NotFoundError: If the booking does not exist
            BadRequestError: If tickets were already issued or the booking is cancelled
            ConflictError: If no unique ticket number could be allocated
        """
        with self.db.get_session_context() as session:
            booking = self._get_booking(session, booking_id)

            if self._has_tickets(session, booking_id):
                raise BadRequestError(
                    f"Tickets already generated for booking {booking.pnr}",
                    {"booking_id": booking_id},
                )
            if booking.status == BookingStatus.CANCELLED:
                raise BadRequestError("Cannot issue tickets for a cancelled booking", {"booking_id": booking_id})

            tickets = self._issue_tickets(session, booking)
            return [TicketModel.model_validate(t) for t in tickets]

    def delete_booking(self, booking_id: int) -> None:
        """
        Delete a booking with its passengers, tickets and seat assignments.

        Seats are returned to the flight unless the booking was already
        cancelled (cancellation returned them).

        Raises:
            NotFoundError: If the booking does not exist
            BadRequestError: If the booking is confirmed
        """
        with self.db.get_session_context() as session:
            booking = self._get_booking(session, booking_id)

            if booking.status == BookingStatus.CONFIRMED:
                raise BadRequestError(
                    "Cannot delete a confirmed booking. Cancel it first.",
                    {"booking_id": booking_id},
                )

            if booking.status != BookingStatus.CANCELLED:
                self._release_inventory(session, booking, None)

            pnr = booking.pnr
            session.delete(booking)
            logger.info(f"Deleted booking {pnr}")

    # ------------------------------------------------------------------
    # Seats
    # ------------------------------------------------------------------

    def assign_seat(
        self,
        booking_id: int,
        passenger_id: int,
        seat_number: str,
        seat_type: Optional[SeatType] = None,
        seat_class: Optional[FareClass] = None,
        seat_price: Decimal = Decimal("0"),
        is_preferred: bool = False,
    ) -> SeatAssignmentModel:
        """
        Assign a seat within a booking to one of its passengers.

        Raises:
            NotFoundError: If the booking, or the passenger within it, does not exist
            BadRequestError: If the booking is cancelled or the passenger already has a seat
            ConflictError: If another passenger of the booking holds the seat
        """
        seat_number = seat_number.strip().upper()

        with self.db.get_session_context() as session:
            booking = self._get_booking(session, booking_id)
            if booking.status == BookingStatus.CANCELLED:
                raise BadRequestError("Cannot assign seats on a cancelled booking", {"booking_id": booking_id})

            passenger = (
                session.query(Passenger)
                .filter(Passenger.passenger_id == passenger_id, Passenger.booking_id == booking_id)
                .first()
            )
            if passenger is None:
                raise NotFoundError(
                    f"Passenger {passenger_id} not found in booking {booking_id}",
                    {"booking_id": booking_id, "passenger_id": passenger_id},
                )

            has_seat = (
                session.query(SeatAssignment.seat_assignment_id)
                .filter(SeatAssignment.booking_id == booking_id, SeatAssignment.passenger_id == passenger_id)
                .first()
            )
            if has_seat is not None:
                raise BadRequestError(
                    "Passenger already has a seat assigned",
                    {"booking_id": booking_id, "passenger_id": passenger_id},
                )

            seat_taken = (
                session.query(SeatAssignment.seat_assignment_id)
                .filter(SeatAssignment.booking_id == booking_id, SeatAssignment.seat_number == seat_number)
                .first()
            )
            if seat_taken is not None:
                raise ConflictError(
                    f"Seat {seat_number} is already assigned",
                    {"booking_id": booking_id, "seat_number": seat_number},
                )

            assignment = SeatAssignment(
                booking_id=booking_id,
                passenger_id=passenger_id,
                seat_number=seat_number,
                seat_type=SeatType(seat_type) if seat_type is not None else None,
                seat_class=FareClass(seat_class) if seat_class is not None else booking.fare_class,
                seat_price=Decimal(seat_price),
                is_preferred=is_preferred,
                assigned_date=self.clock(),
            )
            try:
                with session.begin_nested():
                    session.add(assignment)
                    session.flush()
            except IntegrityError as e:
                logger.warning(f"Seat {seat_number} on booking {booking.pnr} was taken concurrently")
                raise ConflictError(
                    f"Seat {seat_number} is already assigned",
                    {"booking_id": booking_id, "seat_number": seat_number},
                ) from e

            logger.info(f"Assigned seat {seat_number} to passenger {passenger_id} on booking {booking.pnr}")
            return SeatAssignmentModel.model_validate(assignment)

    def get_seat_assignments(self, booking_id: int) -> List[SeatAssignmentModel]:
        with self.db.get_session_context() as session:
            self._get_booking(session, booking_id)
            assignments = (
                session.query(SeatAssignment)
                .filter(SeatAssignment.booking_id == booking_id)
                .order_by(SeatAssignment.seat_number)
                .all()
            )
            return [SeatAssignmentModel.model_validate(a) for a in assignments]

    def remove_seat_assignment(self, booking_id: int, seat_assignment_id: int) -> None:
        """
        Raises:
            NotFoundError: If the assignment does not exist within the booking
        """
        with self.db.get_session_context() as session:
            assignment = (
                session.query(SeatAssignment)
                .filter(
                    SeatAssignment.seat_assignment_id == seat_assignment_id,
                    SeatAssignment.booking_id == booking_id,
                )
                .first()
            )
            if assignment is None:
                raise NotFoundError(
                    f"Seat assignment {seat_assignment_id} not found in booking {booking_id}",
                    {"booking_id": booking_id, "seat_assignment_id": seat_assignment_id},
                )
            session.delete(assignment)
            logger.info(f"Removed seat {assignment.seat_number} from booking {booking_id}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: int) -> BookingModel:
        with self.db.get_session_context() as session:
            return BookingModel.model_validate(self._get_booking(session, booking_id))

    def get_booking_by_pnr(self, pnr: str) -> BookingModel:
        """
        Look up a booking by PNR, ignoring case.

        Raises:
            NotFoundError: If no booking has the PNR
        """
        normalized = pnr.strip().upper()
        with self.db.get_session_context() as session:
            booking = session.query(Booking).filter(Booking.pnr == normalized).first()
            if booking is None:
                raise NotFoundError(f"Booking with PNR {normalized} not found", {"pnr": normalized})
            return BookingModel.model_validate(booking)

    def search_bookings(
        self,
        pnr: Optional[str] = None,
        flight_id: Optional[int] = None,
        status: Optional[BookingStatus] = None,
        booking_date_from: Optional[Union[date, datetime]] = None,
        booking_date_to: Optional[Union[date, datetime]] = None,
        page: int = 1,
        limit: int = 10,
    ) -> BookingSearchResult:
        """Filter bookings, newest first, one page at a time."""
        if page < 1 or limit < 1:
            raise BadRequestError("page and limit must be at least 1", {"page": page, "limit": limit})

        with self.db.get_session_context() as session:
            query = session.query(Booking)

            if pnr:
                query = query.filter(Booking.pnr == pnr.strip().upper())
            if flight_id is not None:
                query = query.filter(Booking.flight_id == flight_id)
            if status is not None:
                query = query.filter(Booking.status == BookingStatus(status))
            if booking_date_from is not None:
                if not isinstance(booking_date_from, datetime):
                    booking_date_from = datetime.combine(booking_date_from, time.min)
                query = query.filter(Booking.booking_date >= booking_date_from)
            if booking_date_to is not None:
                if not isinstance(booking_date_to, datetime):
                    booking_date_to = datetime.combine(booking_date_to, time.max)
                query = query.filter(Booking.booking_date <= booking_date_to)

            total = query.with_entities(func.count(Booking.booking_id)).scalar()
            bookings = (
                query.options(
                    selectinload(Booking.passengers),
                    selectinload(Booking.tickets),
                    selectinload(Booking.seat_assignments),
                )
                .order_by(Booking.booking_date.desc(), Booking.booking_id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )

            return BookingSearchResult(
                bookings=[BookingModel.model_validate(b) for b in bookings],
                total=total,
                page=page,
                limit=limit,
                has_more=total > page * limit,
            )

    def get_bookings_by_status(self, status: BookingStatus) -> List[BookingModel]:
        with self.db.get_session_context() as session:
            bookings = (
                session.query(Booking)
                .options(selectinload(Booking.passengers), selectinload(Booking.tickets))
                .filter(Booking.status == BookingStatus(status))
                .order_by(Booking.booking_date.desc())
                .all()
            )
            return [BookingModel.model_validate(b) for b in bookings]

    def get_booking_extras_total(self, booking_id: int) -> Decimal:
        """Total of baggage, in-flight services and insurance sold with a booking."""
        with self.db.get_session_context() as session:
            self._get_booking(session, booking_id)
        return self.ancillaries.booking_extras_total(booking_id)
