"""
Shared fixtures for the reservation core test suite.

Every test gets its own in-memory SQLite database. The in-memory engine
shares one connection between sessions, so tests finish one session
before opening the next.
"""

import random
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from flightbook.cache.manager import CacheManager
from flightbook.database.config import DatabaseConfig
from flightbook.database.models import Aircraft, Airport, Route, SeatConfiguration
from flightbook.models.booking import PassengerCreate
from flightbook.models.enums import FareClass
from flightbook.services.bookings import BookingEngine
from flightbook.services.catalog import CatalogService
from flightbook.services.identifiers import IdentifierGenerator
from flightbook.services.inventory import InventoryLedger
from flightbook.services.pricing import FarePricingEngine
from flightbook.services.search import AvailabilitySearchEngine
from flightbook.utils.config import AppConfig

# Pinned "now" for every engine: 45 days before the first departures
NOW = datetime(2030, 5, 1, 12, 0, 0)


@pytest.fixture
def db():
    """Create an initialized in-memory database with all tables."""
    config = DatabaseConfig(database_url="sqlite:///:memory:")
    config.initialize()
    config.create_tables()
    yield config
    config.close()


@pytest.fixture
def app_config():
    return AppConfig(database_url="sqlite:///:memory:")


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def catalog(db):
    return CatalogService(db)


@pytest.fixture
def ledger():
    return InventoryLedger()


@pytest.fixture
def identifiers():
    """Seeded generator so PNRs and ticket numbers are reproducible."""
    return IdentifierGenerator(rng=random.Random(42), carrier_prefix="001")


@pytest.fixture
def booking_engine(db, ledger, identifiers, clock, app_config):
    return BookingEngine(db, ledger, identifiers, clock=clock, config=app_config)


@pytest.fixture
def pricing_engine(db, clock):
    return FarePricingEngine(db, clock=clock)


@pytest.fixture
def search_engine(db, app_config):
    return AvailabilitySearchEngine(db, cache=CacheManager(client=None), config=app_config)


@pytest.fixture
def make_passengers():
    """Return a factory for n distinct passengers."""
    def factory(count):
        return [
            PassengerCreate(first_name=f"Traveller{i}", last_name="Test", email=f"traveller{i}@example.com")
            for i in range(1, count + 1)
        ]
    return factory


@pytest.fixture
def world(db, catalog):
    """
    A small network with fixed coordinates, schedules and fares.

    NRB lies 30 km and FAR 80 km due north of JFK. Every aircraft has
    5 seats: 3 economy and 2 business.
    """
    with db.get_session_context() as session:
        jfk = Airport(iata="JFK", icao="KJFK", name="John F. Kennedy International", city="New York",
                      country="United States", latitude=40.6413, longitude=-73.7781)
        lax = Airport(iata="LAX", icao="KLAX", name="Los Angeles International", city="Los Angeles",
                      country="United States", latitude=33.9416, longitude=-118.4085)
        nrb = Airport(iata="NRB", name="Nearby Regional", city="Nearby", country="United States",
                      latitude=40.9111, longitude=-73.7781)
        far = Airport(iata="FAR", name="Faraway Field", city="Faraway", country="United States",
                      latitude=41.3608, longitude=-73.7781)
        noc = Airport(iata="NOC", name="No Coordinates Strip", city="Unknown", country="United States")
        session.add_all([jfk, lax, nrb, far, noc])

        layout = SeatConfiguration(name="Small Jet", total_seats=5, seats_economy=3, seats_business=2)
        session.add(layout)
        session.flush()

        boeing = Aircraft(registration="N100FB", model="737-800", manufacturer="Boeing",
                          seat_configuration_id=layout.seat_configuration_id)
        airbus = Aircraft(registration="N200FB", model="A320neo", manufacturer="Airbus",
                          seat_configuration_id=layout.seat_configuration_id)
        session.add_all([boeing, airbus])
        session.flush()

        jfk_lax = Route(origin_id=jfk.airport_id, destination_id=lax.airport_id,
                        distance_km=3983, estimated_duration_minutes=330)
        lax_jfk = Route(origin_id=lax.airport_id, destination_id=jfk.airport_id,
                        distance_km=3983, estimated_duration_minutes=300)
        nrb_lax = Route(origin_id=nrb.airport_id, destination_id=lax.airport_id,
                        distance_km=3990, estimated_duration_minutes=320)
        session.add_all([jfk_lax, lax_jfk, nrb_lax])
        session.flush()

        ids = SimpleNamespace(
            jfk=jfk.airport_id, lax=lax.airport_id, nrb=nrb.airport_id,
            boeing=boeing.aircraft_id, airbus=airbus.aircraft_id,
            jfk_lax=jfk_lax.route_id, lax_jfk=lax_jfk.route_id, nrb_lax=nrb_lax.route_id,
        )

    morning = catalog.create_flight("FB100", ids.jfk_lax, ids.boeing, datetime(2030, 6, 15, 9, 30))
    evening = catalog.create_flight("FB102", ids.jfk_lax, ids.airbus, datetime(2030, 6, 15, 18, 0),
                                    duration_minutes=360)
    inbound = catalog.create_flight("FB200", ids.lax_jfk, ids.boeing, datetime(2030, 6, 22, 8, 0))
    regional = catalog.create_flight("FB300", ids.nrb_lax, ids.airbus, datetime(2030, 6, 15, 12, 0))

    ids.morning = morning.flight_id
    ids.evening = evening.flight_id
    ids.inbound = inbound.flight_id
    ids.regional = regional.flight_id

    ids.morning_economy = catalog.create_fare(morning.flight_id, FareClass.ECONOMY, Decimal("300.00")).fare_id
    ids.morning_business = catalog.create_fare(morning.flight_id, FareClass.BUSINESS, Decimal("900.00")).fare_id
    ids.evening_economy = catalog.create_fare(evening.flight_id, FareClass.ECONOMY, Decimal("250.00")).fare_id
    ids.inbound_economy = catalog.create_fare(inbound.flight_id, FareClass.ECONOMY, Decimal("280.00")).fare_id
    ids.regional_economy = catalog.create_fare(regional.flight_id, FareClass.ECONOMY, Decimal("200.00")).fare_id

    return ids
