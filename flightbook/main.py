"""
Command line entry point for the flightbook reservation core.

Uses Typer for the CLI and Rich for terminal output. Every command loads
the configuration, prepares the database and wires the engines through
build_core() before doing its work.

Usage:
    flightbook init                      # Create tables and check Valkey
    flightbook search JFK LAX 2030-06-15 # One-way search
    flightbook availability 42 --seats 3 # Availability for a flight
    flightbook booking ABC123            # Show a booking by PNR
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from flightbook.cache.config import ValkeyConfig
from flightbook.cache.manager import CacheManager
from flightbook.database.config import DatabaseConfig, initialize_database
from flightbook.exceptions import FlightbookError
from flightbook.models.enums import FareClass, SortBy, SortOrder, TripType
from flightbook.models.search import FlightSearchCriteria, FlightSearchItem
from flightbook.services.bookings import BookingEngine
from flightbook.services.catalog import CatalogService
from flightbook.services.identifiers import IdentifierGenerator
from flightbook.services.inventory import InventoryLedger
from flightbook.services.pricing import FarePricingEngine
from flightbook.services.search import AvailabilitySearchEngine
from flightbook.utils.config import AppConfig, get_config

logger = logging.getLogger(__name__)

app = typer.Typer(help="Flightbook reservation core", add_completion=False)
console = Console()


@dataclass
class ReservationCore:
    """The engines of the reservation core wired to one database and cache."""

    db: DatabaseConfig
    catalog: CatalogService
    ledger: InventoryLedger
    pricing: FarePricingEngine
    bookings: BookingEngine
    search: AvailabilitySearchEngine


def build_core(db: DatabaseConfig, config: AppConfig, cache: Optional[CacheManager] = None) -> ReservationCore:
    """Create every engine around a shared inventory ledger."""
    ledger = InventoryLedger()
    return ReservationCore(
        db=db,
        catalog=CatalogService(db),
        ledger=ledger,
        pricing=FarePricingEngine(db),
        bookings=BookingEngine(
            db,
            ledger,
            IdentifierGenerator(carrier_prefix=config.carrier_prefix),
            config=config,
        ),
        search=AvailabilitySearchEngine(db, cache=cache, config=config),
    )


def configure_logging(config: AppConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _startup(use_cache: bool = True) -> ReservationCore:
    """Load configuration, initialise the database and connect the cache."""
    config = get_config()
    configure_logging(config)

    db = initialize_database(database_url=config.database_url, echo=config.debug)

    cache = CacheManager(client=None, config=ValkeyConfig.from_app_config(config))
    if use_cache:
        asyncio.run(cache.initialize())

    return build_core(db, config, cache)


def _load_core(use_cache: bool) -> ReservationCore:
    try:
        return _startup(use_cache)
    except (ValueError, SQLAlchemyError) as e:
        logger.exception("Startup failed")
        console.print(f"[red]❌ Failed to start: {e}[/red]")
        raise typer.Exit(code=1)


def _flights_table(title: str, flights: List[FlightSearchItem]) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Flight", style="cyan")
    table.add_column("Route")
    table.add_column("Departure")
    table.add_column("Arrival")
    table.add_column("Aircraft", style="dim")
    table.add_column("Seats", justify="right")
    table.add_column("From", justify="right", style="green")

    for flight in flights:
        table.add_row(
            flight.flightno,
            f"{flight.origin} → {flight.destination}",
            flight.scheduled_departure.strftime("%Y-%m-%d %H:%M"),
            flight.scheduled_arrival.strftime("%Y-%m-%d %H:%M"),
            f"{flight.aircraft_manufacturer or ''} {flight.aircraft_model or ''}".strip(),
            str(flight.available_seats),
            f"{flight.lowest_fare}" if flight.lowest_fare is not None else "-",
        )
    return table


@app.command()
def init(
    cache: bool = typer.Option(True, "--cache/--no-cache", help="Connect to Valkey on startup"),
):
    """Load configuration, prepare the database and report readiness."""
    console.print(Panel.fit("[bold cyan]✈️  Flightbook reservation core[/bold cyan]", box=box.DOUBLE))

    core = _load_core(cache)

    console.print("[green]✓[/green] Configuration loaded")
    console.print(f"[green]✓[/green] Database ready ({core.db.db_type})")
    backend = "valkey" if core.search.cache.client else "in-memory"
    console.print(f"[green]✓[/green] Cache ready ({backend})")
    console.print("[green]✓[/green] Search, pricing and booking engines initialized")


@app.command()
def search(
    origin: str = typer.Argument(..., help="Origin IATA code"),
    destination: str = typer.Argument(..., help="Destination IATA code"),
    departure_date: datetime = typer.Argument(..., formats=["%Y-%m-%d"], help="Departure date"),
    return_date: Optional[datetime] = typer.Option(None, "--return", formats=["%Y-%m-%d"], help="Return date"),
    passengers: int = typer.Option(1, "--passengers", "-p", min=1),
    fare_class: Optional[FareClass] = typer.Option(None, "--fare-class"),
    nearby: bool = typer.Option(False, "--nearby", help="Include airports near the origin and destination"),
    sort_by: SortBy = typer.Option(SortBy.DEPARTURE_TIME, "--sort-by"),
    descending: bool = typer.Option(False, "--desc"),
    cache: bool = typer.Option(True, "--cache/--no-cache"),
):
    """Search flights between two airports."""
    core = _load_core(cache)

    try:
        criteria = FlightSearchCriteria(
            origin=origin,
            destination=destination,
            trip_type=TripType.ROUND_TRIP if return_date else TripType.ONE_WAY,
            departure_date=departure_date.date(),
            return_date=return_date.date() if return_date else None,
            passengers=passengers,
            fare_class=fare_class,
            include_nearby_airports=nearby,
            sort_by=sort_by,
            sort_order=SortOrder.DESC if descending else SortOrder.ASC,
        )
        result = asyncio.run(core.search.search_flights(criteria))
    except ValueError as e:
        console.print(f"[red]❌ Invalid search: {e}[/red]")
        raise typer.Exit(code=2)
    except FlightbookError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        raise typer.Exit(code=1)

    console.print(_flights_table(f"{criteria.origin} → {criteria.destination}", result.flights))
    if result.return_flights is not None:
        console.print(_flights_table(f"{criteria.destination} → {criteria.origin}", result.return_flights))
    console.print(f"[dim]{result.total} flight(s) found[/dim]")


@app.command()
def availability(
    flight_id: int = typer.Argument(..., help="Flight id"),
    seats: int = typer.Option(1, "--seats", "-s", min=1),
    fare_class: Optional[FareClass] = typer.Option(None, "--fare-class"),
    cache: bool = typer.Option(True, "--cache/--no-cache"),
):
    """Check seat availability for a flight."""
    core = _load_core(cache)

    try:
        result = asyncio.run(core.search.check_availability(flight_id, seats, fare_class))
    except FlightbookError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        raise typer.Exit(code=1)

    icon = "✅" if result.is_available else "❌"
    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Available seats", str(result.available_seats))
    table.add_row("Requested seats", str(result.requested_seats))
    table.add_row("Overbooking limit", str(result.overbooking_limit))
    table.add_row("Waitlist", "yes" if result.waitlist_available else "no")

    console.print(f"{icon} [bold]{result.message}[/bold]")
    console.print(table)


@app.command()
def booking(
    pnr: str = typer.Argument(..., help="6-character booking reference"),
    cache: bool = typer.Option(False, "--cache/--no-cache"),
):
    """Show a booking with its passengers and tickets."""
    core = _load_core(cache)

    try:
        found = core.bookings.get_booking_by_pnr(pnr)
    except FlightbookError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        raise typer.Exit(code=1)

    console.print(Panel.fit(
        f"[bold]{found.pnr}[/bold]  status: [cyan]{found.status.value}[/cyan]  "
        f"total: [green]{found.total_amount} {found.currency}[/green]",
        title=f"Booking {found.booking_id}",
    ))

    table = Table(box=box.ROUNDED)
    table.add_column("Passenger")
    table.add_column("Ticket", style="cyan")
    tickets = {t.passenger_id: t.ticket_number for t in found.tickets}
    for passenger in found.passengers:
        table.add_row(f"{passenger.first_name} {passenger.last_name}", tickets.get(passenger.passenger_id, "-"))
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
