"""
Airport lookup cache: Valkey when reachable, an in-memory store otherwise.
"""

from .config import ValkeyConfig, CacheUnavailableError
from .client import ValkeyClient
from .manager import CacheManager, CacheStats, CircuitBreaker, LocalStore
from .utils import TTLPreset, AirportKeys, airport_keys, ttl_with_jitter

__all__ = [
    "ValkeyConfig",
    "CacheUnavailableError",
    "ValkeyClient",
    "CacheManager",
    "CacheStats",
    "CircuitBreaker",
    "LocalStore",
    "TTLPreset",
    "AirportKeys",
    "airport_keys",
    "ttl_with_jitter",
]
