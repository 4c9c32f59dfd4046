"""
Cache manager for airport lookups with graceful degradation.

Search calls get/set/clear_pattern and never sees a cache error. Without
a Valkey client every call goes to a bounded in-memory store. With one,
a failed call is answered from that store instead, and after repeated
failures a circuit breaker stops calling Valkey for a while.
"""

import fnmatch
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from valkey.exceptions import ConnectionError, ResponseError, TimeoutError

from .client import ValkeyClient
from .config import CacheUnavailableError, ValkeyConfig
from .utils import TTLPreset, ttl_with_jitter

logger = logging.getLogger(__name__)

CACHE_ERRORS = (ConnectionError, TimeoutError, ResponseError, CacheUnavailableError)


@dataclass
class CacheStats:
    """Counters since the manager was created."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    errors: int = 0
    fallbacks: int = 0
    skipped: int = 0

    @property
    def hit_ratio(self) -> float:
        reads = self.hits + self.misses
        return self.hits / reads if reads else 0.0


class LocalStore:
    """In-process key/value store with expiry, evicting the oldest key when full."""

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            del self._entries[next(iter(self._entries))]
        self._entries[key] = (value, time.monotonic() + ttl if ttl else None)

    def clear_pattern(self, pattern: str) -> int:
        doomed = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)


class CircuitBreaker:
    """
    Opens after threshold consecutive failures; lets a call through again
    once retry_after seconds have passed.
    """

    def __init__(self, threshold: int = 5, retry_after: float = 60):
        self.threshold = threshold
        self.retry_after = retry_after
        self.failures = 0
        self.opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        if self.opened_at is None:
            return False
        return time.monotonic() - self.opened_at < self.retry_after

    def record_failure(self) -> None:
        self.failures += 1
        if self.failures >= self.threshold and self.opened_at is None:
            self.opened_at = time.monotonic()
            logger.warning(f"Valkey circuit opened after {self.failures} consecutive failures")

    def record_success(self) -> None:
        if self.opened_at is not None:
            logger.info("Valkey circuit closed")
        self.failures = 0
        self.opened_at = None


class CacheManager:
    """
    Cache-aside store for the search engine.

    Args:
        client: Connected ValkeyClient, or None to use the local store only
        config: Used by initialize() to build a client
        enable_fallback: Answer from the local store when Valkey fails;
            when False a failed call behaves as a miss
        failure_threshold: Consecutive failures that open the circuit
        retry_after: Seconds the circuit stays open
        local_max_size: Entries kept by the local store
    """

    def __init__(
        self,
        client: Optional[ValkeyClient] = None,
        config: Optional[ValkeyConfig] = None,
        enable_fallback: bool = True,
        failure_threshold: int = 5,
        retry_after: float = 60,
        local_max_size: int = 1000,
    ):
        self.client = client
        self.config = config or ValkeyConfig()
        self.enable_fallback = enable_fallback
        self.breaker = CircuitBreaker(failure_threshold, retry_after)
        self.local = LocalStore(local_max_size)
        self.stats = CacheStats()

    async def initialize(self) -> None:
        """
        Connect to Valkey, falling back to the local store if it is down.

        Raises:
            CacheUnavailableError: If Valkey is down and fallback is disabled
        """
        client = self.client or ValkeyClient(self.config)
        try:
            await client.ensure_connection()
        except CacheUnavailableError as e:
            if not self.enable_fallback:
                raise
            logger.warning(f"Airport cache running in memory only: {e}")
            self.client = None
            return
        self.client = client
        logger.info("Airport cache backed by Valkey")

    async def _call(self, operation: Callable[[], Awaitable[Any]], fallback: Callable[[], Any]) -> Any:
        if self.breaker.is_open:
            self.stats.skipped += 1
            return fallback()

        try:
            result = await operation()
        except CACHE_ERRORS as e:
            logger.warning(f"Valkey call failed: {e}")
            self.stats.errors += 1
            self.breaker.record_failure()
            if not self.enable_fallback:
                return None
            self.stats.fallbacks += 1
            return fallback()

        self.breaker.record_success()
        return result

    def _count_read(self, value: Any) -> Any:
        if value is None:
            self.stats.misses += 1
        else:
            self.stats.hits += 1
        return value

    async def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value for key, or default on a miss."""
        if self.client is None:
            value = self._count_read(self.local.get(key))
            return default if value is None else value

        async def from_valkey():
            await self.client.ensure_connection()
            raw = self.client.connection.get(key)
            if raw is None:
                return self._count_read(None)
            try:
                return self._count_read(json.loads(raw))
            except ValueError:
                logger.warning(f"Ignoring non-JSON cache entry {key}")
                return self._count_read(None)

        value = await self._call(from_valkey, lambda: self._count_read(self.local.get(key)))
        return default if value is None else value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[Union[int, TTLPreset]] = None,
        jitter: bool = True,
    ) -> bool:
        """Store a JSON-serialisable value, jittering ttl unless told not to."""
        expiry = None
        if ttl is not None:
            expiry = ttl_with_jitter(ttl) if jitter else int(ttl)
        self.stats.sets += 1

        def to_local():
            self.local.set(key, value, expiry)
            return True

        if self.client is None:
            return to_local()

        async def to_valkey():
            await self.client.ensure_connection()
            payload = json.dumps(value)
            if expiry:
                return bool(self.client.connection.setex(key, expiry, payload))
            return bool(self.client.connection.set(key, payload))

        return bool(await self._call(to_valkey, to_local))

    async def clear_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern; returns the Valkey count when connected."""
        removed_locally = self.local.clear_pattern(pattern)
        if self.client is None:
            return removed_locally

        async def from_valkey():
            await self.client.ensure_connection()
            keys = list(self.client.connection.scan_iter(match=pattern))
            return self.client.connection.delete(*keys) if keys else 0

        return await self._call(from_valkey, lambda: removed_locally) or 0
