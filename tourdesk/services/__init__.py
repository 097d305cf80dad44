"""
Booking services.

Every operation is an async method taking the ``ActingUser`` as its first
argument; role checks happen in the ``requires_role`` decorator.
"""

from .base import BookingService, leg_context
from .assignments import AssignmentManager
from .options import OptionCatalog
from .followups import (
    FollowUpDispatcher,
    NotificationSink,
    DatabaseNotificationSink,
    MemoryNotificationSink,
)
from .grouping import GroupingDeriver, individual_label, group_label
from .holds import HoldManager, classify_urgency, select_authoritative_hold
from .ticketing import TicketingLedger
from .selections import SelectionStateMachine, SelectionService
from .queue import BookingQueue, rank, resolve_item, queue_sort_key
from .desk import BookingDesk, create_booking_desk

__all__ = [
    "BookingService",
    "leg_context",
    "AssignmentManager",
    "OptionCatalog",
    "FollowUpDispatcher",
    "NotificationSink",
    "DatabaseNotificationSink",
    "MemoryNotificationSink",
    "GroupingDeriver",
    "individual_label",
    "group_label",
    "HoldManager",
    "classify_urgency",
    "select_authoritative_hold",
    "TicketingLedger",
    "SelectionStateMachine",
    "SelectionService",
    "BookingQueue",
    "rank",
    "resolve_item",
    "queue_sort_key",
    "BookingDesk",
    "create_booking_desk",
]
