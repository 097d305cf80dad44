"""
Enums for the booking core.

This module contains all enumeration types shared by the database layer,
the pydantic models and the services.
"""

from enum import Enum


class UserRole(str, Enum):
    """Role supplied by the identity provider for the acting user."""
    CLIENT = "client"
    AGENT = "agent"
    ADMIN = "admin"


class BookingUnitKind(str, Enum):
    """Kind of booking unit derived from a leg's passenger assignments."""
    INDIVIDUAL = "individual"  # Exactly one passenger
    GROUP = "group"            # Everyone not flagged as individual


class SelectionStatus(str, Enum):
    """Lifecycle status of a passenger's flight choice."""
    PENDING = "pending"        # Client has chosen, no agent action yet
    HELD = "held"              # Agent secured price/seat
    TICKETED = "ticketed"      # Terminal success
    CANCELLED = "cancelled"    # Terminal failure


class HoldUrgency(str, Enum):
    """Urgency of a hold, derived from remaining time at read time."""
    EXPIRED = "expired"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class NotificationType(str, Enum):
    """Notification request types emitted by the core."""
    CLIENT_SELECTION = "client_selection"
    HOLD_EXPIRING = "hold_expiring"
    TICKETED = "ticketed"


class NotificationSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


# Statuses that keep a selection in the agent queue
QUEUE_STATUSES = (SelectionStatus.PENDING, SelectionStatus.HELD)

EMPLOYEE_ROLES = frozenset({UserRole.AGENT, UserRole.ADMIN})
