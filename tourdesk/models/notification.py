"""
Notification request model.

The core only builds these records; delivery belongs to an external
notification service reading the outbox.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .enums import NotificationSeverity, NotificationType


class NotificationRequest(BaseModel):
    """Fire-and-forget notification event emitted after a primary write."""
    model_config = ConfigDict(from_attributes=True)

    type: NotificationType
    severity: NotificationSeverity = NotificationSeverity.INFO
    title: str = Field(..., max_length=200)
    body: Optional[str] = None
    leg_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    artist_id: Optional[UUID] = None
    actor_user_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=datetime.now)
