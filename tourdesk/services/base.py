"""
Shared wiring for booking services.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional
from uuid import UUID

from ..cache.queue_view import QueueViewCache
from ..database.config import DatabaseConfig
from ..utils.config import TourdeskConfig, get_config
from .followups import FollowUpDispatcher

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class BookingService:
    """
    Base class holding the collaborators every booking service needs.

    Args:
        db_config: Database configuration providing sessions
        config: Core settings; the global configuration when omitted
        followups: Dispatcher for post-commit side effects
        queue_cache: Queue snapshot cache to invalidate after writes
        clock: Source of the current time (naive local datetimes)
    """

    def __init__(
        self,
        db_config: DatabaseConfig,
        config: Optional[TourdeskConfig] = None,
        followups: Optional[FollowUpDispatcher] = None,
        queue_cache: Optional[QueueViewCache] = None,
        clock: Clock = datetime.now,
    ):
        self.db_config = db_config
        self.config = config or get_config()
        self.followups = followups or FollowUpDispatcher(db_config)
        self.queue_cache = queue_cache
        self.clock = clock

    async def _invalidate_queue(self) -> None:
        if self.queue_cache is not None:
            await self.queue_cache.invalidate()


def leg_context(leg) -> Dict[str, Optional[UUID]]:
    """Correlation ids (leg, project, artist) for notification requests."""
    if leg is None:
        return {"leg_id": None, "project_id": None, "artist_id": None}
    project = leg.project
    return {
        "leg_id": leg.id,
        "project_id": leg.project_id,
        "artist_id": project.artist_id if project is not None else None,
    }
