"""
Environment configuration loader with validation for the reservation core.
"""

import logging
import os
from decimal import Decimal
from typing import Optional, Dict, Any, List, Literal, Tuple

from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class PricingTier(BaseModel):
    """One row of a threshold -> adjustment table."""

    comparison: Literal["gt", "lt"]
    threshold: float
    rate: Decimal

    def matches(self, value: float) -> bool:
        if self.comparison == "gt":
            return value > self.threshold
        return value < self.threshold


def _tiers(rows: List[Tuple[str, float, str]]) -> List[PricingTier]:
    return [PricingTier(comparison=c, threshold=t, rate=Decimal(r)) for c, t, r in rows]


class PricingPolicy(BaseModel):
    """
    Dynamic pricing policy as two ordered threshold tables.

    Each table is evaluated first-match-wins. Rates are fractions of the
    base fare and are summed across tables (never compounded).
    """

    demand_tiers: List[PricingTier] = Field(
        default_factory=lambda: _tiers([
            ("gt", 0.8, "0.20"),
            ("gt", 0.6, "0.10"),
            ("lt", 0.3, "-0.10"),
        ]),
        description="Occupancy thresholds",
    )
    departure_tiers: List[PricingTier] = Field(
        default_factory=lambda: _tiers([
            ("lt", 7, "0.15"),
            ("lt", 14, "0.08"),
            ("gt", 60, "-0.05"),
        ]),
        description="Days-until-departure thresholds",
    )

    @staticmethod
    def _lookup(tiers: List[PricingTier], value: float) -> Decimal:
        for tier in tiers:
            if tier.matches(value):
                return tier.rate
        return Decimal("0")

    def demand_rate(self, occupancy: float) -> Decimal:
        """Adjustment rate for a fare-class occupancy in [0, 1]."""
        return self._lookup(self.demand_tiers, occupancy)

    def departure_rate(self, days_until_departure: int) -> Decimal:
        """Adjustment rate for the number of days left before departure."""
        return self._lookup(self.departure_tiers, days_until_departure)


class AppConfig(BaseModel):
    """Configuration model for the reservation core with validation."""

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///flightbook.db", description="Database connection URL"
    )

    # Valkey Cache Configuration
    valkey_host: str = Field(default="localhost", description="Valkey server host")
    valkey_port: int = Field(
        default=6379, ge=1, le=65535, description="Valkey server port"
    )
    valkey_password: Optional[str] = Field(
        default=None, description="Valkey server password"
    )
    valkey_database: int = Field(
        default=0, ge=0, le=15, description="Valkey database number"
    )

    # Application
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Identifiers
    carrier_prefix: str = Field(
        default="001", description="3-digit airline accounting code for ticket numbers"
    )
    identifier_max_attempts: int = Field(
        default=10, ge=1, description="Candidate attempts before identifier generation fails"
    )

    # Booking and ticketing
    default_currency: str = Field(default="USD", max_length=10)
    ticket_validity_days: int = Field(default=365, ge=1)
    ticket_tax_rate: Decimal = Field(default=Decimal("0.10"), ge=0)
    ticket_fee_rate: Decimal = Field(default=Decimal("0.05"), ge=0)

    # Availability
    overbooking_ratio: float = Field(
        default=1.1, ge=1.0, description="Overbooking ceiling as a multiple of aircraft capacity"
    )
    nearby_airports_radius_km: float = Field(default=50.0, gt=0)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("carrier_prefix")
    @classmethod
    def validate_carrier_prefix(cls, v: str) -> str:
        if len(v) != 3 or not v.isdigit():
            raise ValueError("Carrier prefix must be exactly 3 digits")
        return v


def load_config(env_file: Optional[str] = None) -> AppConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Optional path to .env file. If None, looks for .env in current directory.

    Returns:
        AppConfig: Validated configuration object

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    if env_file is None:
        env_file = ".env"

    if os.path.exists(env_file):
        load_dotenv(env_file)

    config_data: Dict[str, Any] = {
        "database_url": os.getenv("DATABASE_URL", "sqlite:///flightbook.db"),
        "valkey_host": os.getenv("VALKEY_HOST", "localhost"),
        "valkey_port": int(os.getenv("VALKEY_PORT", "6379")),
        "valkey_password": os.getenv("VALKEY_PASSWORD") or None,
        "valkey_database": int(os.getenv("VALKEY_DATABASE", "0")),
        "debug": os.getenv("FLIGHTBOOK_DEBUG", "false").lower()
        in ("true", "1", "yes", "on"),
        "log_level": os.getenv("FLIGHTBOOK_LOG_LEVEL", "INFO"),
        "carrier_prefix": os.getenv("FLIGHTBOOK_CARRIER_PREFIX", "001"),
        "identifier_max_attempts": int(os.getenv("FLIGHTBOOK_IDENTIFIER_MAX_ATTEMPTS", "10")),
        "default_currency": os.getenv("FLIGHTBOOK_DEFAULT_CURRENCY", "USD"),
        "ticket_validity_days": int(os.getenv("FLIGHTBOOK_TICKET_VALIDITY_DAYS", "365")),
        "ticket_tax_rate": Decimal(os.getenv("FLIGHTBOOK_TICKET_TAX_RATE", "0.10")),
        "ticket_fee_rate": Decimal(os.getenv("FLIGHTBOOK_TICKET_FEE_RATE", "0.05")),
        "overbooking_ratio": float(os.getenv("FLIGHTBOOK_OVERBOOKING_RATIO", "1.1")),
        "nearby_airports_radius_km": float(
            os.getenv("FLIGHTBOOK_NEARBY_RADIUS_KM", "50")
        ),
    }

    try:
        return AppConfig(**config_data)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")


def validate_required_settings(config: AppConfig) -> None:
    """
    Validate that all required settings are properly configured.

    Args:
        config: Configuration object to validate

    Raises:
        ValueError: If required settings are missing or invalid
    """
    if not config.database_url:
        raise ValueError("DATABASE_URL is required")

    if not config.valkey_host:
        raise ValueError("VALKEY_HOST is required")

    logger.info("Configuration validated successfully")
    logger.info(f"  Database: {config.database_url.split('@')[-1]}")
    logger.info(f"  Valkey: {config.valkey_host}:{config.valkey_port}")
    logger.info(f"  Debug mode: {config.debug}")


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get the global configuration instance, loading it if necessary.

    Returns:
        AppConfig: The global configuration object
    """
    global _config
    if _config is None:
        _config = load_config()
        validate_required_settings(_config)
    return _config
