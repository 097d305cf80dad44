"""
Hold and PNR models.

Holds are time-boxed promises on an (option, passenger) pair. PNRs are the
durable record of ticketing and are never removed by workflow actions.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class HoldModel(BaseModel):
    """
    Time-boxed hold on a flight option for one passenger.

    Holds are never extended; expiry is derived by comparing ``expires_at``
    with the current time whenever the hold is read.
    """
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    option_id: UUID
    passenger_id: UUID
    expires_at: datetime = Field(..., description="Hold expiration time")
    created_by: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now()) >= self.expires_at


class HoldPlacement(BaseModel):
    """Result of placing a hold."""
    hold_id: UUID
    expires_at: datetime


class PNRModel(BaseModel):
    """Ticketing record linking a passenger, an option and a reservation code."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    passenger_id: UUID
    option_id: UUID
    leg_id: UUID
    code: str = Field(..., min_length=6, max_length=6, description="Airline reservation code")
    price_paid: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    ticketed_by: Optional[UUID] = None
    created_at: datetime


class TicketingResult(BaseModel):
    """Result of ticketing a passenger."""
    pnr_id: UUID
    pnr_code: str
