"""
Search and availability Pydantic models for the reservation core.
"""

from datetime import date, time
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from .enums import FareClass, FlightStatus, SortBy, SortOrder, TripType
from .flight import FlightModel


class MultiCitySegment(BaseModel):
    origin: str = Field(..., min_length=3, max_length=3, description="Origin IATA code")
    destination: str = Field(..., min_length=3, max_length=3, description="Destination IATA code")
    departure_date: date

    @field_validator("origin", "destination")
    @classmethod
    def normalise_codes(cls, v: str) -> str:
        return v.upper()


class FlightSearchCriteria(BaseModel):
    """
    Flight search criteria.

    All filters are conjunctive. departure_date takes precedence over the
    departure_date_from/departure_date_to range; the same applies to the
    return leg. A radius_km of None uses the configured default.
    """

    origin: str = Field(..., min_length=3, max_length=3, description="Origin IATA code")
    destination: str = Field(..., min_length=3, max_length=3, description="Destination IATA code")
    trip_type: TripType = TripType.ONE_WAY

    departure_date: Optional[date] = None
    departure_date_from: Optional[date] = None
    departure_date_to: Optional[date] = None
    return_date: Optional[date] = None
    return_date_from: Optional[date] = None
    return_date_to: Optional[date] = None
    multi_city_segments: List[MultiCitySegment] = Field(default_factory=list)

    passengers: int = Field(default=1, ge=1)
    include_nearby_airports: bool = False
    radius_km: Optional[float] = Field(None, ge=1, le=100)

    status: Optional[FlightStatus] = Field(None, description="Defaults to every status except cancelled")
    departure_time_from: Optional[time] = None
    departure_time_to: Optional[time] = None
    arrival_time_from: Optional[time] = None
    arrival_time_to: Optional[time] = None
    max_duration_minutes: Optional[int] = Field(None, ge=1)
    aircraft_model: Optional[str] = Field(None, description="Substring match")
    aircraft_manufacturer: Optional[str] = Field(None, description="Exact match")

    fare_class: Optional[FareClass] = None
    min_price: Optional[Decimal] = Field(None, ge=0)
    max_price: Optional[Decimal] = Field(None, ge=0)

    sort_by: SortBy = SortBy.DEPARTURE_TIME
    sort_order: SortOrder = SortOrder.ASC
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @field_validator("origin", "destination")
    @classmethod
    def normalise_codes(cls, v: str) -> str:
        return v.upper()

    @property
    def filters_by_fare(self) -> bool:
        return self.fare_class is not None or self.min_price is not None or self.max_price is not None


class FlightSearchItem(FlightModel):
    """Flight in a search result with its resolved airports and lowest matching fare."""

    origin: str
    destination: str
    aircraft_model: Optional[str] = None
    aircraft_manufacturer: Optional[str] = None
    lowest_fare: Optional[Decimal] = None


class SearchResult(BaseModel):
    flights: List[FlightSearchItem] = Field(default_factory=list)
    return_flights: Optional[List[FlightSearchItem]] = None
    total: int = 0
    page: int = 1
    limit: int = 10
    has_more: bool = False


class AvailabilityResult(BaseModel):
    """Point-in-time availability for a flight, optionally scoped to one fare class."""

    flight_id: int
    is_available: bool
    available_seats: int
    requested_seats: int
    fare_class: Optional[FareClass] = None
    can_overbook: bool
    waitlist_available: bool
    overbooking_limit: int = 0
    message: str
