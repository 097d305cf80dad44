"""
Booking unit and selection models.

Booking units are derived from a leg's passenger assignments; selections
record each passenger's current choice of flight option for the leg.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .enums import BookingUnitKind, SelectionStatus


class BookingUnitModel(BaseModel):
    """
    Named set of passengers that chooses a flight option as one unit.

    ``individual`` units hold exactly one passenger, ``group`` units hold
    every passenger of the leg not flagged as individual.
    """
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    leg_id: UUID
    kind: BookingUnitKind
    label: str = Field(..., max_length=300)
    passenger_ids: List[UUID] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class GroupDerivationResult(BaseModel):
    """Outcome of deriving booking units for a leg."""
    leg_id: UUID
    individuals_created: int = Field(..., ge=0)
    group_created: int = Field(..., ge=0, le=1)
    total_passengers: int = Field(..., ge=0)


class SelectionModel(BaseModel):
    """One passenger's choice of flight option for a leg."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    passenger_id: UUID
    leg_id: UUID
    option_id: UUID
    booking_unit_id: Optional[UUID] = None
    status: SelectionStatus = SelectionStatus.PENDING
    is_active: bool = True
    selected_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class TransitionResult(BaseModel):
    """Status of a selection after a state machine transition."""
    selection_id: UUID
    status: SelectionStatus


class LegAssignmentModel(BaseModel):
    """A passenger assigned to a leg and whether they choose on their own."""
    leg_id: UUID
    passenger_id: UUID
    full_name: str
    treat_as_individual: bool = False
    created_at: Optional[datetime] = None
