"""
Caching layer for the booking core.

This module contains the Valkey client configuration and the cache manager
used for queue snapshots.
"""

from .config import ValkeyConfig, ValkeyConnectionError
from .client import ValkeyClient, get_client, close_global_client
from .utils import (
    CacheKeyPrefix,
    TTLPreset,
    CacheKeyBuilder,
    TTLCalculator,
    queue_view_key,
    QUEUE_VIEW_PATTERN,
)
from .manager import CacheManager, CacheStats, get_cache_manager, close_global_cache_manager
from .queue_view import QueueViewCache

__all__ = [
    # Configuration
    "ValkeyConfig",
    "ValkeyConnectionError",

    # Client
    "ValkeyClient",
    "get_client",
    "close_global_client",

    # Manager
    "CacheManager",
    "CacheStats",
    "get_cache_manager",
    "close_global_cache_manager",
    "QueueViewCache",

    # Utilities
    "CacheKeyPrefix",
    "TTLPreset",
    "CacheKeyBuilder",
    "TTLCalculator",
    "queue_view_key",
    "QUEUE_VIEW_PATTERN",
]
