"""
Pooled Valkey connection used by the CacheManager.
"""

import asyncio
import logging
import time
from typing import Optional

import valkey
from valkey.exceptions import ConnectionError, TimeoutError

from .config import CacheUnavailableError, ValkeyConfig

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    A connection pool to one Valkey server, pinged before use.

    connect() retries with a doubling delay; ensure_connection() pings at
    most once per ping_interval and reconnects when the ping fails.
    """

    def __init__(self, config: Optional[ValkeyConfig] = None):
        self.config = config or ValkeyConfig()
        self._conn: Optional[valkey.Valkey] = None
        self._last_ping = 0.0

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> valkey.Valkey:
        """
        The live valkey.Valkey connection.

        Raises:
            CacheUnavailableError: If connect() has not succeeded
        """
        if self._conn is None:
            raise CacheUnavailableError(f"Not connected to {self.config}")
        return self._conn

    async def connect(self) -> None:
        """
        Open the pool and ping the server.

        Raises:
            CacheUnavailableError: If every attempt failed
        """
        delay = self.config.retry_delay
        for attempt in range(1, self.config.connect_attempts + 1):
            conn = valkey.Valkey(connection_pool=valkey.ConnectionPool(**self.config.pool_kwargs()))
            try:
                conn.ping()
            except (ConnectionError, TimeoutError, OSError) as e:
                logger.warning(f"Valkey attempt {attempt}/{self.config.connect_attempts} failed: {e}")
                if attempt == self.config.connect_attempts:
                    raise CacheUnavailableError(f"Cannot reach {self.config}: {e}") from e
                await asyncio.sleep(delay)
                delay *= 2
                continue

            self._conn = conn
            self._last_ping = time.monotonic()
            logger.info(f"Connected to {self.config}")
            return

    async def ping(self, force: bool = False) -> bool:
        """Check the server, skipping the round trip if one succeeded recently."""
        if self._conn is None:
            return False

        now = time.monotonic()
        if not force and now - self._last_ping < self.config.ping_interval:
            return True

        try:
            self._conn.ping()
        except (ConnectionError, TimeoutError) as e:
            logger.warning(f"Valkey ping failed: {e}")
            self._conn = None
            return False

        self._last_ping = now
        return True

    async def ensure_connection(self) -> None:
        """
        Reconnect if the last ping failed.

        Raises:
            CacheUnavailableError: If reconnecting failed
        """
        if not await self.ping():
            await self.connect()
