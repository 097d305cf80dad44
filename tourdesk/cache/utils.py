"""
Cache utilities for key naming conventions and TTL management.
"""

import random
from enum import Enum
from typing import Any, Union


class CacheKeyPrefix(str, Enum):
    """Standard cache key prefixes."""

    QUEUE_VIEW = "queue:view"
    HEALTH = "health"


class TTLPreset(int, Enum):
    """Standard TTL presets in seconds."""

    # Queue snapshots are invalidated on every write; the TTL only bounds staleness
    QUEUE_VIEW = 30
    HEALTH_CHECK = 60


class CacheKeyBuilder:
    """Builds consistently namespaced cache keys."""

    @staticmethod
    def _prefix(prefix: Union[CacheKeyPrefix, str]) -> str:
        return prefix.value if isinstance(prefix, CacheKeyPrefix) else str(prefix)

    @staticmethod
    def build_key(prefix: Union[CacheKeyPrefix, str], *parts: Any, **params: Any) -> str:
        """
        Build a cache key with prefix, parts, and parameters.

        Example:
            build_key(CacheKeyPrefix.QUEUE_VIEW, "all")
            # Returns: "queue:view:all"
        """
        key_parts = [CacheKeyBuilder._prefix(prefix)]

        for part in parts:
            if part is not None:
                key_parts.append(str(part))

        for key, value in sorted(params.items()):
            if value is not None:
                key_parts.append(f"{key}={value}")

        return ":".join(key_parts)

    @staticmethod
    def build_pattern(prefix: Union[CacheKeyPrefix, str], *parts: str) -> str:
        """
        Build a key pattern for scanning/matching multiple keys.

        Example:
            build_pattern(CacheKeyPrefix.QUEUE_VIEW, "*")
            # Returns: "queue:view:*"
        """
        return ":".join([CacheKeyBuilder._prefix(prefix), *parts])


class TTLCalculator:
    """TTL calculation with jitter to prevent expiration clustering."""

    @staticmethod
    def calculate_ttl_with_jitter(
        base_ttl: Union[int, TTLPreset],
        jitter_percent: float = 0.1,
        min_ttl: int = 1,
    ) -> int:
        """
        Calculate TTL with random jitter.

        Example:
            calculate_ttl_with_jitter(30, 0.1)  # 27-33 seconds
        """
        base_seconds = int(base_ttl)
        jitter_range = int(base_seconds * jitter_percent)
        jitter = random.randint(-jitter_range, jitter_range)
        return max(base_seconds + jitter, min_ttl)


def queue_view_key(artist_id: Any = None) -> str:
    """Cache key for a queue snapshot, scoped to one artist or to all."""
    return CacheKeyBuilder.build_key(CacheKeyPrefix.QUEUE_VIEW, artist_id or "all")


QUEUE_VIEW_PATTERN = CacheKeyBuilder.build_pattern(CacheKeyPrefix.QUEUE_VIEW, "*")
