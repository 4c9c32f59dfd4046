"""
Booking-related Pydantic models for the reservation core.

This module contains the passenger input model used when creating a
booking and the read models for bookings, passengers, tickets and seat
assignments.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from .enums import BookingStatus, FareClass, SeatType


class PassengerCreate(BaseModel):
    """Passenger details supplied when a booking is created."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=10)
    email: Optional[str] = Field(None, max_length=255)
    phone_number: Optional[str] = Field(None, max_length=30)
    nationality: Optional[str] = Field(None, max_length=3)
    passport_number: Optional[str] = Field(None, max_length=20)
    passport_expiry_date: Optional[date] = None
    passport_issuing_country: Optional[str] = Field(None, max_length=3)
    special_assistance: Optional[str] = None
    frequent_flyer_number: Optional[str] = Field(None, max_length=30)


class PassengerModel(PassengerCreate):
    """Passenger as stored against a booking."""
    model_config = ConfigDict(from_attributes=True)

    passenger_id: int
    booking_id: int


class TicketModel(BaseModel):
    """Issued ticket with its fare breakdown."""
    model_config = ConfigDict(from_attributes=True)

    ticket_id: int
    ticket_number: str = Field(..., pattern=r"^\d{13}$", description="13-digit ticket number")
    booking_id: int
    passenger_id: int
    fare: Decimal
    taxes: Decimal
    fees: Decimal
    fare_class: FareClass
    issued_date: datetime
    expiry_date: datetime
    is_active: bool = True


class SeatAssignmentModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    seat_assignment_id: int
    booking_id: int
    passenger_id: int
    seat_number: str
    seat_type: Optional[SeatType] = None
    seat_class: Optional[FareClass] = None
    seat_price: Decimal = Decimal("0")
    is_preferred: bool = False
    assigned_date: datetime


class BookingModel(BaseModel):
    """
    Reservation with its passengers, tickets and seat assignments.

    Tickets are only present once the booking has been confirmed.
    """
    model_config = ConfigDict(from_attributes=True)

    booking_id: int
    pnr: str = Field(..., pattern=r"^[A-Z0-9]{6}$", description="6-character booking reference")
    flight_id: int
    user_id: Optional[str] = None
    fare_class: Optional[FareClass] = None
    status: BookingStatus
    total_amount: Decimal
    currency: str = "USD"
    notes: Optional[str] = None
    booking_date: datetime
    confirmation_date: Optional[datetime] = None
    cancellation_date: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    passengers: List[PassengerModel] = Field(default_factory=list)
    tickets: List[TicketModel] = Field(default_factory=list)
    seat_assignments: List[SeatAssignmentModel] = Field(default_factory=list)

    @property
    def passenger_count(self) -> int:
        return len(self.passengers)


class BookingSearchResult(BaseModel):
    bookings: List[BookingModel]
    total: int
    page: int
    limit: int
    has_more: bool
