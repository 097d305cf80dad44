"""
Pooled Valkey connection for the queue cache.

The client pings on connect and, at most once per ``health_check_interval``,
before use. A failed ping drops the connection and the next
``ensure_connection`` call reconnects with exponential backoff.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import valkey
from valkey.connection import ConnectionPool
from valkey.exceptions import ConnectionError, TimeoutError

from .config import ValkeyConfig, ValkeyConnectionError

logger = logging.getLogger(__name__)

BACKOFF_BASE_SECONDS = 0.5
BACKOFF_CAP_SECONDS = 5.0


def backoff_delay(attempt: int) -> float:
    """Delay before retry number ``attempt`` (1-based), doubling up to the cap."""
    return min(BACKOFF_BASE_SECONDS * 2 ** (attempt - 1), BACKOFF_CAP_SECONDS)


class ValkeyClient:

    def __init__(self, config: Optional[ValkeyConfig] = None):
        self.config = config or ValkeyConfig.from_env()
        self._pool: Optional[ConnectionPool] = None
        self._server: Optional[valkey.Valkey] = None
        self._checked_at = 0.0
        self._failed_attempts = 0

    @property
    def is_connected(self) -> bool:
        return self._server is not None

    @property
    def client(self) -> valkey.Valkey:
        """The raw synchronous Valkey client."""
        if self._server is None:
            raise ValkeyConnectionError("Valkey client is not connected")
        return self._server

    def _open(self) -> None:
        pool = ConnectionPool(**self.config.to_connection_pool_kwargs())
        server = valkey.Valkey(connection_pool=pool)
        try:
            if not server.ping():
                raise ValkeyConnectionError("Valkey did not answer PING")
        except (ConnectionError, TimeoutError, OSError):
            pool.disconnect()
            raise
        self._pool, self._server = pool, server
        self._checked_at = time.monotonic()

    async def connect(self) -> None:
        """
        Open the pool, retrying with backoff.

        Raises:
            ValkeyConnectionError: After ``max_connection_attempts`` failures
        """
        if self.is_connected:
            return

        attempts = self.config.max_connection_attempts
        for attempt in range(1, attempts + 1):
            try:
                self._open()
            except (ConnectionError, TimeoutError, OSError, ValkeyConnectionError) as e:
                self._failed_attempts += 1
                logger.warning(f"Valkey connect to {self.config} failed ({attempt}/{attempts}): {e}")
                if attempt == attempts:
                    raise ValkeyConnectionError(
                        f"Could not reach Valkey at {self.config.host}:{self.config.port} "
                        f"after {attempts} attempts: {e}"
                    ) from e
                await asyncio.sleep(backoff_delay(attempt))
            else:
                logger.info(f"Connected to {self.config}")
                return

    async def disconnect(self) -> None:
        pool, self._pool, self._server = self._pool, None, None
        if pool is None:
            return
        try:
            pool.disconnect()
        except (ConnectionError, OSError) as e:
            logger.warning(f"Error while closing Valkey pool: {e}")
        else:
            logger.info("Valkey pool closed")

    async def health_check(self, force: bool = False) -> bool:
        """PING the server unless a check already ran within the interval."""
        if self._server is None:
            return False

        now = time.monotonic()
        if not force and now - self._checked_at < self.config.health_check_interval:
            return True
        self._checked_at = now

        try:
            healthy = bool(self._server.ping())
        except (ConnectionError, TimeoutError) as e:
            logger.warning(f"Valkey health check failed: {e}")
            healthy = False

        if not healthy:
            await self.disconnect()
        return healthy

    async def ensure_connection(self) -> None:
        """
        Reconnect when the last health check failed.

        Raises:
            ValkeyConnectionError: If the server stays unreachable
        """
        if not await self.health_check():
            await self.connect()

    async def get_connection_info(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            "is_connected": self.is_connected,
            "server": str(self.config),
            "failed_attempts": self._failed_attempts,
        }
        if self._server is None:
            return info

        try:
            server_info = self._server.info()
        except (ConnectionError, TimeoutError) as e:
            info["server_info_error"] = str(e)
        else:
            info["server_version"] = server_info.get("valkey_version") or server_info.get("redis_version")
            info["used_memory"] = server_info.get("used_memory_human")
        return info


_global_client: Optional[ValkeyClient] = None


async def get_client(config: Optional[ValkeyConfig] = None) -> ValkeyClient:
    """
    Shared client, connected on first use.

    Raises:
        ValkeyConnectionError: If the server cannot be reached
    """
    global _global_client

    if _global_client is None:
        client = ValkeyClient(config)
        await client.connect()
        _global_client = client
    return _global_client


async def close_global_client() -> None:
    global _global_client

    if _global_client is not None:
        await _global_client.disconnect()
        _global_client = None
