"""
Flight option models.

A flight option is a priced, airline-described proposal for a leg, made of
one or more ordered flight components (segments).
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class OptionComponentModel(BaseModel):
    """One flight segment of an option."""
    model_config = ConfigDict(from_attributes=True)

    component_order: int = Field(default=1, ge=1, description="Position within the option")
    airline: Optional[str] = Field(None, max_length=64, description="Operating airline")
    flight_number: Optional[str] = Field(None, max_length=16, description="Flight number (e.g., 'BA117')")
    departure_airport: Optional[str] = Field(None, max_length=3, description="Departure IATA code")
    arrival_airport: Optional[str] = Field(None, max_length=3, description="Arrival IATA code")
    departure_time: Optional[datetime] = Field(None, description="Scheduled departure")
    arrival_time: Optional[datetime] = Field(None, description="Scheduled arrival")
    source_text: Optional[str] = Field(None, description="Raw pasted itinerary text")


class FlightOptionModel(BaseModel):
    """
    Priced flight option offered for a leg.

    Edits to an option never rewrite holds or PNRs that already reference it.
    """
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    leg_id: UUID = Field(..., description="Leg this option is offered for")
    name: str = Field(..., max_length=200, description="Display name")
    description: Optional[str] = None
    total_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    is_recommended: bool = False
    is_available: bool = True
    components: List[OptionComponentModel] = Field(default_factory=list)
