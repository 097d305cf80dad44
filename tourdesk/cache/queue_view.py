"""
Cached snapshots of the booking queue.

A snapshot stores queue items together with the full hold history of each
(option, passenger) pair. Urgency and ranking are resolved against the
clock when the snapshot is read, so a cached entry never freezes a hold's
expiry state.

Every invalidation bumps ``generation``. A reader takes the generation
before loading from the store and hands it back to ``set``; if a write
invalidated the cache in between, the stale snapshot is dropped instead of
cached. The counter is per process, matching the services that share one
``QueueViewCache``.
"""

import logging
from typing import Any, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..models.queue import QueueItemModel
from .manager import CacheManager
from .utils import QUEUE_VIEW_PATTERN, TTLPreset, queue_view_key

logger = logging.getLogger(__name__)


class QueueViewCache:
    """Reads, writes and invalidates queue snapshots through the cache manager."""

    def __init__(self, cache_manager: CacheManager, ttl: Union[int, TTLPreset] = TTLPreset.QUEUE_VIEW):
        self.cache = cache_manager
        self.ttl = ttl
        self.generation = 0

    async def get(self, artist_id: Any = None) -> Optional[List[QueueItemModel]]:
        key = queue_view_key(artist_id)
        cached = await self.cache.get(key)
        if cached is None:
            return None

        try:
            return [QueueItemModel.model_validate(item) for item in cached]
        except (PydanticValidationError, TypeError) as e:
            logger.warning(f"Discarding unreadable queue snapshot {key}: {e}")
            await self.cache.delete(key)
            return None

    async def set(self, artist_id: Any, items: List[QueueItemModel], generation: Optional[int] = None) -> bool:
        """Cache a snapshot unless the cache was invalidated since ``generation`` was read."""
        if generation is not None and generation != self.generation:
            logger.debug(f"Skipping stale queue snapshot (generation {generation}, now {self.generation})")
            return False

        payload = [item.model_dump(mode="json") for item in items]
        return await self.cache.set(queue_view_key(artist_id), payload, ttl=self.ttl)

    async def invalidate(self) -> int:
        self.generation += 1
        deleted = await self.cache.clear_pattern(QUEUE_VIEW_PATTERN)
        logger.debug(f"Invalidated {deleted} queue snapshot(s)")
        return deleted
