"""
Error taxonomy for booking operations.

Every error carries a short, human-readable message that is safe to show
to an agent or client. Raw store errors are translated before they reach
callers.
"""

from typing import Optional


class TourdeskError(Exception):
    """Base class for all booking core errors."""

    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(TourdeskError):
    """Missing identity or insufficient role."""
    default_message = "Unauthorized"


class ValidationError(TourdeskError):
    """Malformed input (bad PNR length, hold hours out of range, ...)."""
    default_message = "Invalid input"


class NotFound(TourdeskError):
    """Referenced leg, option, selection or passenger does not exist."""
    default_message = "Not found"


class InvalidTransition(TourdeskError):
    """Selection state machine guard violated."""
    default_message = "Invalid selection status transition"


class DuplicateTicketing(TourdeskError):
    """A PNR with the same code already exists for the passenger."""
    default_message = "Passenger is already ticketed for this leg"


class DependencyFailure(TourdeskError):
    """A best-effort follow-up (notification, selection sync) failed."""
    default_message = "A follow-up action failed"


__all__ = [
    "TourdeskError",
    "Unauthorized",
    "ValidationError",
    "NotFound",
    "InvalidTransition",
    "DuplicateTicketing",
    "DependencyFailure",
]
