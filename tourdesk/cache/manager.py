"""
Queue cache manager.

Every booking write invalidates the cached queue view, and every queue read
may populate it. Neither path may fail because Valkey is slow or down, so
each server call goes through a circuit breaker and, when the server
misbehaves, through a small in-process store instead.
"""

import fnmatch
import json
import logging
from collections import OrderedDict
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple, Union

from valkey.exceptions import ConnectionError, ResponseError, TimeoutError

from .client import ValkeyClient, get_client
from .config import ValkeyConfig, ValkeyConnectionError
from .utils import CacheKeyPrefix, CacheKeyBuilder, TTLCalculator, TTLPreset

logger = logging.getLogger(__name__)

CACHE_ERRORS = (ConnectionError, TimeoutError, ResponseError, ValkeyConnectionError)


@dataclass
class CacheStats:
    """Counters reported by ``CacheManager.get_stats``."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    deletes: int = 0
    errors: int = 0
    fallback_operations: int = 0
    short_circuited: int = 0
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def hit_ratio(self) -> float:
        reads = self.hits + self.misses
        return self.hits / reads if reads else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_ratio": round(self.hit_ratio, 3),
            "writes": self.writes,
            "deletes": self.deletes,
            "errors": self.errors,
            "fallback_operations": self.fallback_operations,
            "short_circuited": self.short_circuited,
            "uptime_seconds": (datetime.now() - self.started_at).total_seconds(),
        }


@dataclass
class CircuitBreaker:
    """
    Stops calling Valkey after ``threshold`` consecutive failures.

    Once open, calls are refused for ``reset_after`` seconds; the next call
    after that is let through as a trial, and a success closes the circuit.
    """

    threshold: int = 5
    reset_after: int = 60
    failures: int = 0
    opened_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None

    def allows_call(self, now: Optional[datetime] = None) -> bool:
        if self.opened_at is None:
            return True
        return ((now or datetime.now()) - self.opened_at).total_seconds() >= self.reset_after

    def record_success(self) -> None:
        if self.opened_at is not None:
            logger.info("Valkey circuit closed")
        self.failures = 0
        self.opened_at = None

    def record_failure(self, now: Optional[datetime] = None) -> None:
        self.failures += 1
        if self.failures >= self.threshold:
            if self.opened_at is None:
                logger.warning(f"Valkey circuit opened after {self.failures} consecutive failures")
            self.opened_at = now or datetime.now()


class FallbackStore:
    """Bounded in-process key/value store with per-entry expiry and FIFO eviction."""

    def __init__(self, max_size: int = 1000, clock: Callable[[], datetime] = datetime.now):
        self.max_size = max_size
        self.clock = clock
        self._entries: "OrderedDict[str, Tuple[Any, Optional[datetime]]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        expires_at = self.clock() + timedelta(seconds=ttl) if ttl else None
        self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self, pattern: str = "*") -> int:
        doomed = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)


class CacheManager:
    """
    JSON cache over Valkey with graceful degradation.

    Without a client (Valkey unreachable at startup) every call is served by
    the fallback store. With a client, failed calls count against the
    circuit breaker and are retried against the fallback store when
    ``enable_fallback`` is set.
    """

    def __init__(
        self,
        client: Optional[ValkeyClient] = None,
        config: Optional[ValkeyConfig] = None,
        enable_fallback: bool = True,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_timeout: int = 60,
    ):
        self.client = client
        self.config = config or ValkeyConfig.from_env()
        self.enable_fallback = enable_fallback
        self.breaker = CircuitBreaker(threshold=circuit_breaker_threshold, reset_after=circuit_breaker_timeout)
        self.fallback = FallbackStore()
        self.stats = CacheStats()
        self.key_builder = CacheKeyBuilder()
        self.ttl_calculator = TTLCalculator()

    @property
    def is_circuit_open(self) -> bool:
        return self.breaker.is_open

    async def initialize(self) -> None:
        """Connect to Valkey; keep serving from the fallback store if that fails."""
        try:
            if self.client is None:
                self.client = await get_client(self.config)
            await self.client.ensure_connection()
            logger.info(f"Queue cache connected to {self.config}")
        except CACHE_ERRORS as e:
            logger.warning(f"Valkey unavailable, queue cache runs in-process: {e}")
            self.client = None
            if not self.enable_fallback:
                raise

    async def _call(
        self,
        operation: Callable[[Any], Any],
        fallback: Optional[Callable[[], Any]] = None,
    ) -> Any:
        """
        Run ``operation`` against the raw Valkey client.

        Returns the fallback's result (or None) when the circuit is open or
        the call fails with a cache error.
        """
        if not self.breaker.allows_call():
            self.stats.short_circuited += 1
            return fallback() if fallback and self.enable_fallback else None

        try:
            await self.client.ensure_connection()
            result = operation(self.client.client)
        except CACHE_ERRORS as e:
            self.stats.errors += 1
            self.breaker.record_failure()
            logger.warning(f"Valkey call failed: {e}")
            if self.enable_fallback and fallback:
                self.stats.fallback_operations += 1
                return fallback()
            return None

        self.breaker.record_success()
        return result

    @staticmethod
    def _decode(raw: Any) -> Any:
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return raw

    async def get(self, key: str, default: Any = None) -> Any:
        """Cached value for ``key``, or ``default`` when absent."""
        if self.client is None:
            value = self.fallback.get(key)
            if value is None:
                self.stats.misses += 1
            else:
                self.stats.hits += 1
        else:
            def read(server):
                raw = server.get(key)
                if raw is None:
                    self.stats.misses += 1
                    return None
                self.stats.hits += 1
                return self._decode(raw)

            value = await self._call(read, lambda: self.fallback.get(key))

        return default if value is None else value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[Union[int, TTLPreset]] = None,
        jitter: bool = True,
    ) -> bool:
        """
        Store ``value`` as JSON, expiring after ``ttl`` seconds (jittered by default).

        Returns:
            True when the value landed in Valkey or in the fallback store
        """
        expire = None
        if ttl is not None:
            expire = self.ttl_calculator.calculate_ttl_with_jitter(ttl) if jitter else int(ttl)

        def write_fallback():
            self.fallback.set(key, value, expire)
            return True

        if self.client is None:
            return write_fallback()

        payload = json.dumps(value) if isinstance(value, (dict, list, tuple)) else str(value)

        def write(server):
            self.stats.writes += 1
            if expire:
                return server.setex(key, expire, payload)
            return server.set(key, payload)

        return bool(await self._call(write, write_fallback))

    async def delete(self, key: str) -> bool:
        """Remove ``key`` from Valkey and from the fallback store."""
        removed = self.fallback.delete(key)
        if self.client is None:
            return removed

        def remove(server):
            self.stats.deletes += 1
            return server.delete(key)

        return bool(await self._call(remove)) or removed

    async def clear_pattern(self, pattern: str) -> int:
        """
        Delete every key matching the glob ``pattern``.

        The fallback store is cleared as well, so values written while Valkey
        was down never survive an invalidation.
        """
        removed = self.fallback.clear(pattern)
        if self.client is None:
            return removed

        def remove_matching(server):
            keys = list(server.scan_iter(match=pattern))
            return server.delete(*keys) if keys else 0

        return removed + (await self._call(remove_matching) or 0)

    async def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        stats.update({
            "circuit_open": self.breaker.is_open,
            "consecutive_failures": self.breaker.failures,
            "fallback_enabled": self.enable_fallback,
            "fallback_entries": len(self.fallback),
        })
        if self.client is not None:
            stats["connection_info"] = await self.client.get_connection_info()
        return stats

    async def health_check(self) -> Dict[str, Any]:
        """Round-trip a marker key through Valkey."""
        health: Dict[str, Any] = {
            "status": "degraded",
            "cache_available": False,
            "fallback_active": self.client is None,
            "circuit_open": self.breaker.is_open,
        }
        if self.client is None:
            health["errors"] = ["No Valkey client available"]
            return health

        marker_key = self.key_builder.build_key(CacheKeyPrefix.HEALTH, "ping")
        await self.set(marker_key, {"at": datetime.now().isoformat()}, ttl=TTLPreset.HEALTH_CHECK)
        echoed = await self.get(marker_key)
        await self.delete(marker_key)

        if echoed and not self.breaker.is_open:
            health.update({"status": "healthy", "cache_available": True})
        return health

    async def close(self) -> None:
        if self.client is not None:
            with suppress(*CACHE_ERRORS):
                await self.client.disconnect()
        self.fallback.clear()
        logger.info("Queue cache closed")


_global_cache_manager: Optional[CacheManager] = None


async def get_cache_manager(
    client: Optional[ValkeyClient] = None,
    config: Optional[ValkeyConfig] = None,
    **kwargs,
) -> CacheManager:
    """Shared cache manager, created and connected on first use."""
    global _global_cache_manager

    if _global_cache_manager is None:
        _global_cache_manager = CacheManager(client=client, config=config, **kwargs)
        await _global_cache_manager.initialize()

    return _global_cache_manager


async def close_global_cache_manager() -> None:
    global _global_cache_manager

    if _global_cache_manager is not None:
        await _global_cache_manager.close()
        _global_cache_manager = None
