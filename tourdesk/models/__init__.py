"""
Pydantic models package for the booking core.

This package contains the read models returned by services, the input
schemas used to validate operation arguments, and shared enums.
"""

# Enums
from .enums import (
    UserRole,
    BookingUnitKind,
    SelectionStatus,
    HoldUrgency,
    NotificationType,
    NotificationSeverity,
    QUEUE_STATUSES,
    EMPLOYEE_ROLES,
)

from .option import (
    OptionComponentModel,
    FlightOptionModel,
)

from .selection import (
    BookingUnitModel,
    GroupDerivationResult,
    SelectionModel,
    TransitionResult,
    LegAssignmentModel,
)

from .ticketing import (
    HoldModel,
    HoldPlacement,
    PNRModel,
    TicketingResult,
)

from .queue import (
    QueueItemModel,
    QueueStatsModel,
)

from .notification import NotificationRequest

from .requests import (
    PNR_CODE_LENGTH,
    parse_request,
    LegRequest,
    SelectionRequest,
    SelectOptionRequest,
    PlaceHoldRequest,
    PlaceHoldsRequest,
    MarkTicketedRequest,
    AssignPassengersRequest,
    PassengerAssignmentRequest,
    SegmentRequest,
    CreateOptionRequest,
    OptionRequest,
    QueueRequest,
)

__all__ = [
    # Enums
    "UserRole",
    "BookingUnitKind",
    "SelectionStatus",
    "HoldUrgency",
    "NotificationType",
    "NotificationSeverity",
    "QUEUE_STATUSES",
    "EMPLOYEE_ROLES",

    # Options
    "OptionComponentModel",
    "FlightOptionModel",

    # Booking units and selections
    "BookingUnitModel",
    "GroupDerivationResult",
    "SelectionModel",
    "TransitionResult",
    "LegAssignmentModel",

    # Holds and PNRs
    "HoldModel",
    "HoldPlacement",
    "PNRModel",
    "TicketingResult",

    # Queue
    "QueueItemModel",
    "QueueStatsModel",

    # Notifications
    "NotificationRequest",

    # Requests
    "PNR_CODE_LENGTH",
    "parse_request",
    "LegRequest",
    "SelectionRequest",
    "SelectOptionRequest",
    "PlaceHoldRequest",
    "PlaceHoldsRequest",
    "MarkTicketedRequest",
    "AssignPassengersRequest",
    "PassengerAssignmentRequest",
    "SegmentRequest",
    "CreateOptionRequest",
    "OptionRequest",
    "QueueRequest",
]
