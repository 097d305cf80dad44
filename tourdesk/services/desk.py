"""
Booking desk: one object wiring every booking service to shared collaborators.
"""

import logging
from datetime import datetime
from typing import Optional

from ..cache.config import ValkeyConfig
from ..cache.manager import CacheManager, get_cache_manager
from ..cache.queue_view import QueueViewCache
from ..database.config import DatabaseConfig, initialize_database
from ..utils.config import TourdeskConfig, get_config
from .assignments import AssignmentManager
from .base import Clock
from .followups import FollowUpDispatcher, NotificationSink
from .grouping import GroupingDeriver
from .holds import HoldManager
from .options import OptionCatalog
from .queue import BookingQueue
from .selections import SelectionService
from .ticketing import TicketingLedger

logger = logging.getLogger(__name__)


class BookingDesk:
    """
    Facade over the assignment, option, grouping, hold, ticketing, selection
    and queue services.

    All services share one database configuration, one follow-up dispatcher
    and one queue snapshot cache, so a write made through any of them
    invalidates the queue view every other one reads.
    """

    def __init__(
        self,
        db_config: DatabaseConfig,
        config: Optional[TourdeskConfig] = None,
        cache_manager: Optional[CacheManager] = None,
        sink: Optional[NotificationSink] = None,
        clock: Clock = datetime.now,
    ):
        self.db_config = db_config
        self.config = config or get_config()
        self.followups = FollowUpDispatcher(db_config, sink)
        self.cache_manager = cache_manager
        self.queue_cache = (
            QueueViewCache(cache_manager, ttl=self.config.queue_cache_ttl_seconds)
            if cache_manager is not None
            else None
        )

        shared = dict(
            db_config=db_config,
            config=self.config,
            followups=self.followups,
            queue_cache=self.queue_cache,
            clock=clock,
        )
        self.assignments = AssignmentManager(**shared)
        self.options = OptionCatalog(**shared)
        self.grouping = GroupingDeriver(**shared)
        self.holds = HoldManager(**shared)
        self.ticketing = TicketingLedger(**shared)
        self.selections = SelectionService(**shared)
        self.queue = BookingQueue(**shared)


async def create_booking_desk(
    config: Optional[TourdeskConfig] = None,
    use_cache: Optional[bool] = None,
    sink: Optional[NotificationSink] = None,
) -> BookingDesk:
    """
    Build a desk from configuration: database tables are created if missing,
    and the queue cache connects to Valkey when enabled.
    """
    config = config or get_config()
    db_config = initialize_database(database_url=config.database_url, echo=config.database_echo)

    if use_cache is None:
        use_cache = config.queue_cache_enabled

    cache_manager = None
    if use_cache:
        cache_manager = await get_cache_manager(config=ValkeyConfig.for_desk(config))
        logger.info(f"Queue cache active (valkey connected: {cache_manager.client is not None})")

    return BookingDesk(db_config, config=config, cache_manager=cache_manager, sink=sink)
