"""
Flight search and availability with cache-aside airport lookups.

Search resolves the origin and destination to sets of airports (the
airport itself plus, optionally, every airport with coordinates within a
great-circle radius), matches the cross product against active routes
and filters the flights on those routes. Airport lookups and nearby sets
are cached through CacheManager; flights, fares and seat counters are
always read from the database.

Fare filters (class and price range) and the price sort share one
sub-query that computes the lowest matching active fare per flight.
With a fare filter the flights are inner-joined to it, otherwise it is
outer-joined and flights without fares sort last by price.
"""

import logging
import math
from datetime import date, time
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Set

from sqlalchemy import Time, cast, func
from sqlalchemy.orm import Query, Session, selectinload

from ..cache.manager import CacheManager
from ..cache.utils import TTLPreset, airport_keys
from ..database.config import DatabaseConfig
from ..database.models import Aircraft, Airport, Fare, Flight, Route
from ..exceptions import BadRequestError, NotFoundError
from ..models.enums import FareClass, FlightStatus, SortBy, SortOrder, TripType
from ..models.flight import AirportModel, FlightModel, NearbyAirportModel
from ..models.search import (
    AvailabilityResult,
    FlightSearchCriteria,
    FlightSearchItem,
    MultiCitySegment,
    SearchResult,
)
from ..utils.config import AppConfig, get_config

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _check_date_range(start: Optional[date], end: Optional[date], label: str) -> None:
    if start is not None and end is not None and start > end:
        raise BadRequestError(
            f"{label} start date must be on or before its end date",
            {"from": start.isoformat(), "to": end.isoformat()},
        )


class AvailabilitySearchEngine:
    """
    Flight search and seat availability checks.

    Args:
        db: Database configuration providing sessions
        cache: Cache for airport lookups; an in-memory CacheManager when omitted
        config: Nearby-airport radius and overbooking ratio
    """

    def __init__(
        self,
        db: DatabaseConfig,
        cache: Optional[CacheManager] = None,
        config: Optional[AppConfig] = None,
    ):
        self.db = db
        self.cache = cache or CacheManager()
        self.config = config or get_config()
        logger.info("AvailabilitySearchEngine initialized")

    # ------------------------------------------------------------------
    # Airports
    # ------------------------------------------------------------------

    async def get_airport(self, iata: str) -> AirportModel:
        """
        Look up an airport by IATA code (cache-aside).

        Raises:
            NotFoundError: If no airport has the code
        """
        iata = iata.upper()
        cache_key = airport_keys.info(iata)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit for airport {iata}")
            return AirportModel.model_validate(cached)

        with self.db.get_session_context() as session:
            airport = session.query(Airport).filter(Airport.iata == iata).first()
            if airport is None:
                raise NotFoundError(f"Airport with IATA code {iata} not found", {"iata": iata})
            result = AirportModel.model_validate(airport)

        await self.cache.set(cache_key, result.model_dump(mode="json"), ttl=TTLPreset.AIRPORT_INFO)
        return result

    async def find_nearby_airports(self, iata: str, radius_km: Optional[float] = None) -> List[NearbyAirportModel]:
        """
        Airports with coordinates within radius_km of another, nearest first.

        The reference airport itself is never included, and a reference
        airport without coordinates has no nearby airports.

        Raises:
            NotFoundError: If no airport has the code
        """
        iata = iata.upper()
        radius = float(radius_km if radius_km is not None else self.config.nearby_airports_radius_km)
        cache_key = airport_keys.nearby(iata, radius)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit for airports near {iata} within {radius:g} km")
            return [NearbyAirportModel.model_validate(item) for item in cached]

        reference = await self.get_airport(iata)
        nearby: List[NearbyAirportModel] = []

        if reference.latitude is not None and reference.longitude is not None:
            with self.db.get_session_context() as session:
                candidates = (
                    session.query(Airport)
                    .filter(
                        Airport.airport_id != reference.airport_id,
                        Airport.latitude.isnot(None),
                        Airport.longitude.isnot(None),
                    )
                    .all()
                )
                for airport in candidates:
                    distance = haversine_km(
                        reference.latitude, reference.longitude, airport.latitude, airport.longitude
                    )
                    if distance <= radius:
                        nearby.append(NearbyAirportModel(
                            **AirportModel.model_validate(airport).model_dump(),
                            distance_km=round(distance, 2),
                        ))
            nearby.sort(key=lambda a: a.distance_km)
        else:
            logger.debug(f"Airport {iata} has no coordinates; no nearby airports")

        await self.cache.set(
            cache_key,
            [a.model_dump(mode="json") for a in nearby],
            ttl=TTLPreset.NEARBY_AIRPORTS,
        )
        return nearby

    async def invalidate_airport_cache(self) -> int:
        """Drop every cached airport lookup and nearby set."""
        removed = await self.cache.clear_pattern(airport_keys.pattern())
        logger.info(f"Invalidated {removed} cached airport entries")
        return removed

    async def _resolve_airport_ids(self, iata: str, include_nearby: bool, radius_km: Optional[float]) -> Set[int]:
        airport = await self.get_airport(iata)
        ids = {airport.airport_id}
        if include_nearby:
            ids.update(a.airport_id for a in await self.find_nearby_airports(iata, radius_km))
        return ids

    # ------------------------------------------------------------------
    # Query building
    # ------------------------------------------------------------------

    @staticmethod
    def _route_ids(session: Session, origin_ids: Iterable[int], destination_ids: Iterable[int]) -> List[int]:
        rows = (
            session.query(Route.route_id)
            .filter(
                Route.origin_id.in_(list(origin_ids)),
                Route.destination_id.in_(list(destination_ids)),
                Route.is_active.is_(True),
            )
            .all()
        )
        return [row.route_id for row in rows]

    @staticmethod
    def _lowest_fares(session: Session, criteria: FlightSearchCriteria, with_price_range: bool):
        query = session.query(
            Fare.flight_id.label("flight_id"),
            func.min(Fare.total_fare).label("lowest_fare"),
        ).filter(Fare.is_active.is_(True))

        if criteria.fare_class is not None:
            query = query.filter(Fare.fare_class == FareClass(criteria.fare_class))
        if with_price_range:
            if criteria.min_price is not None:
                query = query.filter(Fare.total_fare >= criteria.min_price)
            if criteria.max_price is not None:
                query = query.filter(Fare.total_fare <= criteria.max_price)

        return query.group_by(Fare.flight_id).subquery()

    @staticmethod
    def _time_of_day(session: Session, column: Any, bound: time, lower: bool):
        if session.get_bind().dialect.name == "sqlite":
            # SQLite stores datetimes as text; compare HH:MM:SS strings
            value = func.time(column)
            bound = bound.strftime("%H:%M:%S")
        else:
            value = cast(column, Time)
        return value >= bound if lower else value <= bound

    @staticmethod
    def _filter_dates(query: Query, on: Optional[date], start: Optional[date], end: Optional[date]) -> Query:
        if on is not None:
            return query.filter(Flight.departure_date == on)
        if start is not None:
            query = query.filter(Flight.departure_date >= start)
        if end is not None:
            query = query.filter(Flight.departure_date <= end)
        return query

    def _outbound_query(self, session: Session, route_ids: List[int], criteria: FlightSearchCriteria) -> Query:
        fares = self._lowest_fares(session, criteria, with_price_range=True)
        query = session.query(Flight, fares.c.lowest_fare)
        if criteria.filters_by_fare:
            query = query.join(fares, fares.c.flight_id == Flight.flight_id)
        else:
            query = query.outerjoin(fares, fares.c.flight_id == Flight.flight_id)

        query = query.filter(
            Flight.route_id.in_(route_ids),
            Flight.available_seats >= criteria.passengers,
        )
        query = self._filter_dates(
            query, criteria.departure_date, criteria.departure_date_from, criteria.departure_date_to
        )

        if criteria.status is not None:
            query = query.filter(Flight.status == FlightStatus(criteria.status))
        else:
            query = query.filter(Flight.status != FlightStatus.CANCELLED)

        if criteria.departure_time_from is not None:
            query = query.filter(self._time_of_day(session, Flight.scheduled_departure, criteria.departure_time_from, True))
        if criteria.departure_time_to is not None:
            query = query.filter(self._time_of_day(session, Flight.scheduled_departure, criteria.departure_time_to, False))
        if criteria.arrival_time_from is not None:
            query = query.filter(self._time_of_day(session, Flight.scheduled_arrival, criteria.arrival_time_from, True))
        if criteria.arrival_time_to is not None:
            query = query.filter(self._time_of_day(session, Flight.scheduled_arrival, criteria.arrival_time_to, False))

        if criteria.max_duration_minutes is not None:
            query = query.filter(Flight.duration_minutes <= criteria.max_duration_minutes)

        if criteria.aircraft_model or criteria.aircraft_manufacturer:
            query = query.join(Aircraft, Aircraft.aircraft_id == Flight.aircraft_id)
            if criteria.aircraft_model:
                query = query.filter(Aircraft.model.ilike(f"%{criteria.aircraft_model}%"))
            if criteria.aircraft_manufacturer:
                query = query.filter(Aircraft.manufacturer == criteria.aircraft_manufacturer)

        return self._sort(query, criteria, fares.c.lowest_fare)

    def _return_query(self, session: Session, route_ids: List[int], criteria: FlightSearchCriteria) -> Query:
        fares = self._lowest_fares(session, criteria, with_price_range=False)
        query = (
            session.query(Flight, fares.c.lowest_fare)
            .outerjoin(fares, fares.c.flight_id == Flight.flight_id)
            .filter(
                Flight.route_id.in_(route_ids),
                Flight.available_seats >= criteria.passengers,
                Flight.status != FlightStatus.CANCELLED,
            )
        )
        query = self._filter_dates(query, criteria.return_date, criteria.return_date_from, criteria.return_date_to)
        return self._sort(query, criteria, fares.c.lowest_fare)

    @staticmethod
    def _sort(query: Query, criteria: FlightSearchCriteria, lowest_fare: Any) -> Query:
        descending = criteria.sort_order == SortOrder.DESC

        def directed(column):
            return column.desc() if descending else column.asc()

        if criteria.sort_by == SortBy.PRICE:
            # Flights without a matching fare go last in either direction
            return query.order_by(lowest_fare.is_(None), directed(lowest_fare), Flight.scheduled_departure.asc())

        column = {
            SortBy.DEPARTURE_TIME: Flight.scheduled_departure,
            SortBy.ARRIVAL_TIME: Flight.scheduled_arrival,
            SortBy.DURATION: Flight.duration_minutes,
        }[SortBy(criteria.sort_by)]
        return query.order_by(directed(column), Flight.flight_id.asc())

    @staticmethod
    def _to_items(rows) -> List[FlightSearchItem]:
        items = []
        for flight, lowest_fare in rows:
            items.append(FlightSearchItem(
                **FlightModel.model_validate(flight).model_dump(),
                origin=flight.route.origin.iata,
                destination=flight.route.destination.iata,
                aircraft_model=flight.aircraft.model,
                aircraft_manufacturer=flight.aircraft.manufacturer,
                lowest_fare=Decimal(lowest_fare) if lowest_fare is not None else None,
            ))
        return items

    @staticmethod
    def _with_related(query: Query) -> Query:
        return query.options(
            selectinload(Flight.route).selectinload(Route.origin),
            selectinload(Flight.route).selectinload(Route.destination),
            selectinload(Flight.aircraft),
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_flights(self, criteria: FlightSearchCriteria) -> SearchResult:
        """
        Search one-way or round-trip flights.

        Args:
            criteria: Route, dates and filters; see FlightSearchCriteria

        Returns:
            One page of outbound flights; for round trips also the matching
            return flights

        Raises:
            NotFoundError: If the origin or destination airport does not exist
            BadRequestError: If a date range is reversed, a round trip has no
                return date, or a multi-city trip is passed here
        """
        if criteria.trip_type == TripType.MULTI_CITY:
            raise BadRequestError("Multi-city trips are searched per segment with multi_city_search")

        _check_date_range(criteria.departure_date_from, criteria.departure_date_to, "Departure")
        _check_date_range(criteria.return_date_from, criteria.return_date_to, "Return")

        is_round_trip = criteria.trip_type == TripType.ROUND_TRIP
        if is_round_trip and not (criteria.return_date or criteria.return_date_from or criteria.return_date_to):
            raise BadRequestError("A return date is required for round-trip searches")

        origin_ids = await self._resolve_airport_ids(
            criteria.origin, criteria.include_nearby_airports, criteria.radius_km
        )
        destination_ids = await self._resolve_airport_ids(
            criteria.destination, criteria.include_nearby_airports, criteria.radius_km
        )

        empty = SearchResult(
            flights=[],
            return_flights=[] if is_round_trip else None,
            total=0,
            page=criteria.page,
            limit=criteria.limit,
            has_more=False,
        )

        with self.db.get_session_context() as session:
            route_ids = self._route_ids(session, origin_ids, destination_ids)
            if not route_ids:
                logger.info(f"No routes from {criteria.origin} to {criteria.destination}")
                return empty

            query = self._outbound_query(session, route_ids, criteria)
            total = query.count()
            rows = (
                self._with_related(query)
                .offset((criteria.page - 1) * criteria.limit)
                .limit(criteria.limit)
                .all()
            )
            flights = self._to_items(rows)

            return_flights = None
            if is_round_trip:
                return_routes = self._route_ids(session, destination_ids, origin_ids)
                return_flights = []
                if return_routes:
                    return_rows = (
                        self._with_related(self._return_query(session, return_routes, criteria))
                        .limit(criteria.limit)
                        .all()
                    )
                    return_flights = self._to_items(return_rows)

        logger.info(
            f"Search {criteria.origin}->{criteria.destination}: {total} flight(s), "
            f"page {criteria.page} of size {criteria.limit}"
        )
        return SearchResult(
            flights=flights,
            return_flights=return_flights,
            total=total,
            page=criteria.page,
            limit=criteria.limit,
            has_more=total > criteria.page * criteria.limit,
        )

    async def multi_city_search(
        self,
        segments: List[MultiCitySegment],
        criteria: Optional[FlightSearchCriteria] = None,
    ) -> List[SearchResult]:
        """
        Search each segment as an independent one-way trip.

        Filters other than route and date are taken from criteria. No seat
        or price coupling is applied between segments.
        """
        if not segments:
            raise BadRequestError("Multi-city search needs at least one segment")

        results = []
        for segment in segments:
            base = criteria or FlightSearchCriteria(origin=segment.origin, destination=segment.destination)
            segment_criteria = base.model_copy(update={
                "origin": segment.origin,
                "destination": segment.destination,
                "trip_type": TripType.ONE_WAY,
                "departure_date": segment.departure_date,
                "departure_date_from": None,
                "departure_date_to": None,
                "return_date": None,
                "return_date_from": None,
                "return_date_to": None,
                "multi_city_segments": [],
            })
            results.append(await self.search_flights(segment_criteria))
        return results

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def _overbooking_limit(self, total_seats: int) -> int:
        return math.floor(Decimal(total_seats) * Decimal(str(self.config.overbooking_ratio)))

    async def check_availability(
        self,
        flight_id: int,
        passenger_count: int,
        fare_class: Optional[FareClass] = None,
    ) -> AvailabilityResult:
        """
        Check whether passenger_count seats can be sold on a flight.

        With a fare class the class counters decide availability. When the
        request does not fit but stays within the overbooking limit of the
        aircraft, a waitlist is reported instead.

        Raises:
            NotFoundError: If the flight does not exist
        """
        if passenger_count < 1:
            raise BadRequestError("Passenger count must be at least 1", {"passenger_count": passenger_count})

        with self.db.get_session_context() as session:
            flight = session.get(Flight, flight_id)
            if flight is None:
                raise NotFoundError(f"Flight with ID {flight_id} not found", {"flight_id": flight_id})

            limit = self._overbooking_limit(flight.aircraft.seat_configuration.total_seats)

            if fare_class is not None:
                fare_class = FareClass(fare_class)
                fare = (
                    session.query(Fare)
                    .filter(Fare.flight_id == flight_id, Fare.fare_class == fare_class, Fare.is_active.is_(True))
                    .first()
                )
                if fare is None:
                    return AvailabilityResult(
                        flight_id=flight_id,
                        is_available=False,
                        available_seats=0,
                        requested_seats=passenger_count,
                        fare_class=fare_class,
                        can_overbook=False,
                        waitlist_available=False,
                        overbooking_limit=limit,
                        message=f"Fare class {fare_class.value} not available for this flight",
                    )
                available = fare.available_seats
            else:
                available = flight.available_seats

            is_available = available >= passenger_count
            can_overbook = flight.booked_seats + passenger_count <= limit
            waitlist = not is_available and can_overbook

            if is_available:
                message = "Seats available"
            elif waitlist:
                message = "Flight is full, but waitlist is available"
            else:
                message = "Flight is fully booked"

            return AvailabilityResult(
                flight_id=flight_id,
                is_available=is_available,
                available_seats=available,
                requested_seats=passenger_count,
                fare_class=fare_class,
                can_overbook=can_overbook,
                waitlist_available=waitlist,
                overbooking_limit=limit,
                message=message,
            )

    async def check_multiple_availability(
        self,
        flight_ids: List[int],
        passenger_count: int,
        fare_class: Optional[FareClass] = None,
    ) -> List[AvailabilityResult]:
        return [await self.check_availability(fid, passenger_count, fare_class) for fid in flight_ids]
