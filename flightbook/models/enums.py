"""
Enums for the reservation core.

This module contains all enumeration types used throughout the application
for consistent data validation and type safety. The same enums back the
SQLAlchemy columns and the pydantic models.
"""

from enum import Enum


class FlightStatus(str, Enum):
    """Flight status enumeration for tracking flight states."""
    SCHEDULED = "scheduled"
    DELAYED = "delayed"
    BOARDING = "boarding"
    DEPARTED = "departed"
    ARRIVED = "arrived"
    CANCELLED = "cancelled"
    DIVERTED = "diverted"


class FareClass(str, Enum):
    """Priced service tiers, inventoried independently of the flight."""
    ECONOMY = "economy"
    PREMIUM_ECONOMY = "premium_economy"
    BUSINESS = "business"
    FIRST = "first"


class BookingStatus(str, Enum):
    """Booking lifecycle states."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    CHECKED_IN = "checked_in"


class SeatType(str, Enum):
    WINDOW = "window"
    MIDDLE = "middle"
    AISLE = "aisle"


class TaxFeeType(str, Enum):
    """Kinds of charges that can be attached to a fare."""
    AIRPORT_TAX = "airport_tax"
    FUEL_SURCHARGE = "fuel_surcharge"
    SERVICE_FEE = "service_fee"
    SECURITY_FEE = "security_fee"
    PASSENGER_FACILITY_CHARGE = "passenger_facility_charge"
    CUSTOMS_FEE = "customs_fee"
    IMMIGRATION_FEE = "immigration_fee"
    OTHER = "other"


# Charge types reported under "taxes"; every other type is a fee.
TAX_BUCKET_TYPES = frozenset({
    TaxFeeType.AIRPORT_TAX,
    TaxFeeType.SECURITY_FEE,
    TaxFeeType.PASSENGER_FACILITY_CHARGE,
})


class TaxCalculationType(str, Enum):
    """How a tax or fee amount is turned into a charge."""
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    PER_PASSENGER = "per_passenger"


class PromoCodeType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class PromoCodeStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    USED_UP = "used_up"


class TripType(str, Enum):
    ONE_WAY = "one-way"
    ROUND_TRIP = "round-trip"
    MULTI_CITY = "multi-city"


class SortBy(str, Enum):
    """Sort keys supported by flight search."""
    DEPARTURE_TIME = "departure_time"
    ARRIVAL_TIME = "arrival_time"
    DURATION = "duration"
    PRICE = "price"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"
