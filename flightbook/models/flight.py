"""
Flight and catalog Pydantic models for the reservation core.

This module contains read models for airports, aircraft, routes, flights
and fares, plus the inventory snapshot returned by the ledger.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Optional
from pydantic import BaseModel, Field, ConfigDict

from .enums import FareClass, FlightStatus, TaxCalculationType, TaxFeeType


class AirportModel(BaseModel):
    """Airport information model."""
    model_config = ConfigDict(from_attributes=True)

    airport_id: int
    iata: str = Field(..., min_length=3, max_length=3, description="3-letter IATA code")
    icao: Optional[str] = Field(None, max_length=4, description="4-letter ICAO code")
    name: str = Field(..., max_length=100, description="Airport name")
    city: str
    country: str
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    timezone: str = "UTC"


class NearbyAirportModel(AirportModel):
    """Airport found by nearby-airport expansion, with its distance."""
    distance_km: float = Field(..., ge=0, description="Great-circle distance from the reference airport")


class AircraftModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    aircraft_id: int
    registration: str
    model: str
    manufacturer: str
    seat_configuration_id: int
    is_active: bool = True


class RouteModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    route_id: int
    origin_id: int
    destination_id: int
    distance_km: int = 0
    estimated_duration_minutes: int
    is_active: bool = True


class FlightModel(BaseModel):
    """
    Scheduled flight with its seat counters.

    booked_seats + available_seats always equals total_seats.
    """
    model_config = ConfigDict(from_attributes=True)

    flight_id: int
    flightno: str = Field(..., max_length=10, description="Flight number")
    route_id: int
    aircraft_id: int
    departure_date: date
    scheduled_departure: datetime = Field(..., description="Scheduled departure time")
    scheduled_arrival: datetime = Field(..., description="Scheduled arrival time")
    actual_departure: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    duration_minutes: int = Field(..., ge=0)
    status: FlightStatus = Field(default=FlightStatus.SCHEDULED, description="Current flight status")
    total_seats: int = Field(..., ge=0)
    booked_seats: int = Field(..., ge=0)
    available_seats: int = Field(..., ge=0)


class TaxFeeModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tax_fee_id: int
    fare_id: int
    type: TaxFeeType
    name: str
    calculation_type: TaxCalculationType
    amount: Decimal
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    currency: str = "USD"
    is_active: bool = True


class FareModel(BaseModel):
    """Priced fare class on a flight with its class-scoped counters."""
    model_config = ConfigDict(from_attributes=True)

    fare_id: int
    flight_id: int
    fare_class: FareClass
    base_fare: Decimal = Field(..., ge=0)
    dynamic_price_adjustment: Decimal = Decimal("0")
    total_fare: Decimal
    currency: str = "USD"
    allotted_seats: int = Field(..., ge=0)
    booked_seats: int = Field(..., ge=0)
    available_seats: int = Field(..., ge=0)
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None


class SeatCounters(BaseModel):
    """One booked/available pair and the capacity it balances against."""

    capacity: int
    booked_seats: int
    available_seats: int

    @property
    def is_balanced(self) -> bool:
        return self.booked_seats + self.available_seats == self.capacity


class InventorySnapshot(BaseModel):
    """Point-in-time view of a flight's counters and its active fare counters."""

    flight_id: int
    flight: SeatCounters
    fares: Dict[FareClass, SeatCounters] = Field(default_factory=dict)
    taken_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_consistent(self) -> bool:
        """True when every counter pair balances against its capacity."""
        return self.flight.is_balanced and all(c.is_balanced for c in self.fares.values())
