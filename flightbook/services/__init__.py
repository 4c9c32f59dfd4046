"""
Business logic services for the reservation core.

This module contains the identifier generator, the inventory ledger and
the catalog, pricing, booking and search engines built on top of them.
"""

from .identifiers import IdentifierGenerator, allocate_unique
from .inventory import InventoryLedger
from .catalog import CatalogService
from .pricing import FarePricingEngine
from .bookings import BookingEngine, TRANSITIONS
from .search import AvailabilitySearchEngine, haversine_km
from .collaborators import (
    PaymentGateway,
    UserDirectory,
    AncillaryAggregator,
    NullPaymentGateway,
    NullUserDirectory,
    NullAncillaryAggregator,
)

__all__ = [
    'IdentifierGenerator',
    'allocate_unique',
    'InventoryLedger',
    'CatalogService',
    'FarePricingEngine',
    'BookingEngine',
    'TRANSITIONS',
    'AvailabilitySearchEngine',
    'haversine_km',
    'PaymentGateway',
    'UserDirectory',
    'AncillaryAggregator',
    'NullPaymentGateway',
    'NullUserDirectory',
    'NullAncillaryAggregator',
]
