"""
Database package for the reservation core.

This package provides the SQLAlchemy models and database configuration
that the booking, pricing and search engines run against.
"""

from .models import (
    Base,
    Airport,
    SeatConfiguration,
    Aircraft,
    Route,
    Flight,
    Fare,
    TaxFee,
    PromotionalCode,
    PromoRedemption,
    Booking,
    Passenger,
    Ticket,
    SeatAssignment,
    create_all_tables
)

from .config import (
    DatabaseConfig,
    get_database_config,
    initialize_database,
    get_db_session_context
)

__all__ = [
    # Models
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

    # Configuration
    'DatabaseConfig',
    'get_database_config',
    'initialize_database',
    'get_db_session_context',
]
