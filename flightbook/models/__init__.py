"""
Flightbook Pydantic models package.

This package contains all Pydantic v2 models used throughout the reservation
core as request and result types, plus the enums shared with the database
schema.
"""

# Enums
from .enums import (
    FlightStatus,
    FareClass,
    BookingStatus,
    SeatType,
    TaxFeeType,
    TaxCalculationType,
    PromoCodeType,
    PromoCodeStatus,
    TripType,
    SortBy,
    SortOrder,
    TAX_BUCKET_TYPES,
)

# Catalog and inventory models
from .flight import (
    AirportModel,
    NearbyAirportModel,
    AircraftModel,
    RouteModel,
    FlightModel,
    FareModel,
    TaxFeeModel,
    SeatCounters,
    InventorySnapshot,
)

# Booking models
from .booking import (
    PassengerCreate,
    PassengerModel,
    TicketModel,
    SeatAssignmentModel,
    BookingModel,
    BookingSearchResult,
)

# Pricing models
from .pricing import (
    ChargeLine,
    PriceBreakdown,
    PromoValidationResult,
    PromotionalCodeModel,
    PromotionalCodeCreate,
)

# Search models
from .search import (
    MultiCitySegment,
    FlightSearchCriteria,
    FlightSearchItem,
    SearchResult,
    AvailabilityResult,
)

__all__ = [
    # Enums
    "FlightStatus",
    "FareClass",
    "BookingStatus",
    "SeatType",
    "TaxFeeType",
    "TaxCalculationType",
    "PromoCodeType",
    "PromoCodeStatus",
    "TripType",
    "SortBy",
    "SortOrder",
    "TAX_BUCKET_TYPES",

    # Catalog models
    "AirportModel",
    "NearbyAirportModel",
    "AircraftModel",
    "RouteModel",
    "FlightModel",
    "FareModel",
    "TaxFeeModel",
    "SeatCounters",
    "InventorySnapshot",

    # Booking models
    "PassengerCreate",
    "PassengerModel",
    "TicketModel",
    "SeatAssignmentModel",
    "BookingModel",
    "BookingSearchResult",

    # Pricing models
    "ChargeLine",
    "PriceBreakdown",
    "PromoValidationResult",
    "PromotionalCodeModel",
    "PromotionalCodeCreate",

    # Search models
    "MultiCitySegment",
    "FlightSearchCriteria",
    "FlightSearchItem",
    "SearchResult",
    "AvailabilityResult",
]
