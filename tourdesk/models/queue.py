"""
Booking queue models.

A queue item joins an active selection with its option, leg, project,
artist and passenger, plus the hold history of its (option, passenger)
pair. Urgency is resolved at read time and is never stored.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .enums import HoldUrgency, SelectionStatus
from .ticketing import HoldModel


class QueueItemModel(BaseModel):
    """
    One selection awaiting agent action.

    ``holds`` carries every hold recorded for the (option, passenger) pair so
    that a cached snapshot can be re-resolved against the current time.
    ``hold`` and ``urgency`` are filled by the queue service when read.
    """
    model_config = ConfigDict(from_attributes=True)

    selection_id: UUID
    status: SelectionStatus
    created_at: datetime
    updated_at: Optional[datetime] = None

    passenger_id: UUID
    passenger_name: str
    booking_unit_id: Optional[UUID] = None

    option_id: UUID
    option_name: str
    option_price: Optional[Decimal] = None
    option_currency: str = "USD"

    leg_id: UUID
    leg_label: Optional[str] = None
    origin_city: Optional[str] = None
    destination_city: Optional[str] = None
    departure_date: Optional[date] = None

    project_id: UUID
    project_name: str
    artist_id: UUID
    artist_name: str

    holds: List[HoldModel] = Field(default_factory=list)
    hold: Optional[HoldModel] = None
    urgency: HoldUrgency = HoldUrgency.NONE
    is_ticketed: bool = Field(default=False, description="Any PNR exists for this passenger on this leg")


class QueueStatsModel(BaseModel):
    """Summary counts for the booking queue dashboard."""
    total: int = Field(default=0, ge=0)
    pending: int = Field(default=0, ge=0)
    held: int = Field(default=0, ge=0)
    ticketed: int = Field(default=0, ge=0)
    by_urgency: Dict[HoldUrgency, int] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=datetime.now)
