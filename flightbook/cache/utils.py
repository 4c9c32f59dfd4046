"""
Cache keys and expiry times for airport data.

Only slowly-changing catalog data is cached: airports by IATA code and
the set of airports near another within a radius. Seat counters never are.
"""

import random
from enum import Enum
from typing import Union


class TTLPreset(int, Enum):
    """Base expiry in seconds for each kind of cached entry."""

    AIRPORT_INFO = 86400     # 24 hours
    NEARBY_AIRPORTS = 86400  # 24 hours


def ttl_with_jitter(base_ttl: Union[int, TTLPreset], spread: float = 0.1, floor: int = 30) -> int:
    """
    Randomise an expiry by +/- spread of itself so entries written together
    do not expire together. Never returns less than floor.
    """
    base = int(base_ttl)
    offset = int(base * spread)
    return max(base + random.randint(-offset, offset), floor)


class AirportKeys:
    """Key layout: airport:info:<IATA> and airport:nearby:<IATA>:radius=<km>."""

    namespace = "airport"

    def info(self, iata: str) -> str:
        return f"{self.namespace}:info:{iata.upper()}"

    def nearby(self, iata: str, radius_km: float) -> str:
        # 50 and 50.0 share a key
        return f"{self.namespace}:nearby:{iata.upper()}:radius={float(radius_km):g}"

    def pattern(self) -> str:
        return f"{self.namespace}:*"


airport_keys = AirportKeys()
