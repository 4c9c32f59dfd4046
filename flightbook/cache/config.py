"""
Connection settings for the Valkey server behind the airport cache.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..utils.config import AppConfig

logger = logging.getLogger(__name__)


@dataclass
class ValkeyConfig:
    """
    Where the airport cache lives and how hard to try reaching it.

    Host, port, password and database come from AppConfig; the pool and
    retry settings rarely need changing.
    """

    host: str = "localhost"
    port: int = 6379
    password: Optional[str] = None
    database: int = 0
    max_connections: int = 10
    socket_timeout: float = 2.0
    connect_attempts: int = 3
    retry_delay: float = 0.5
    ping_interval: int = 30

    @classmethod
    def from_app_config(cls, config: "AppConfig") -> "ValkeyConfig":
        return cls(
            host=config.valkey_host,
            port=config.valkey_port,
            password=config.valkey_password,
            database=config.valkey_database,
        )

    def pool_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for valkey.ConnectionPool."""
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "db": self.database,
            "max_connections": self.max_connections,
            "socket_timeout": self.socket_timeout,
            "socket_connect_timeout": self.socket_timeout,
            "decode_responses": True,
        }
        if self.password:
            kwargs["password"] = self.password
        return kwargs

    def __str__(self) -> str:
        auth = "with password" if self.password else "no password"
        return f"valkey://{self.host}:{self.port}/{self.database} ({auth})"


class CacheUnavailableError(Exception):
    """Valkey could not be reached or stopped answering pings."""
