"""
Input schemas for booking operations.

Operations parse their arguments through these models before touching the
store. Pydantic errors are translated into the core ``ValidationError`` so
callers always receive a short message.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, List, Optional, Type, TypeVar
from uuid import UUID

from pydantic import AfterValidator, BaseModel, Field, StrictBool, StrictInt, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError

PNR_CODE_LENGTH = 6

RequestT = TypeVar("RequestT", bound=BaseModel)


def _currency_code(v: str) -> str:
    currency = v.strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ValueError("Currency must be a 3-letter code")
    return currency


def _unique_ids(ids: List[UUID]) -> List[UUID]:
    if not ids:
        raise ValueError("At least one passenger is required")
    return list(dict.fromkeys(ids))


# Non-empty, de-duplicated in first-seen order
PassengerIds = Annotated[List[UUID], AfterValidator(_unique_ids)]


def parse_request(schema: Type[RequestT], **data) -> RequestT:
    """
    Validate operation arguments against a schema.

    Raises:
        ValidationError: With the first validation problem as its message
    """
    try:
        return schema(**data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        message = str(first.get("msg", "Invalid input"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        else:
            field = ".".join(str(part) for part in first.get("loc", ()))
            if field:
                message = f"{field}: {message}"
        raise ValidationError(message) from e


class LegRequest(BaseModel):
    leg_id: UUID


class SelectionRequest(BaseModel):
    selection_id: UUID


class SelectOptionRequest(BaseModel):
    booking_unit_id: UUID
    option_id: UUID


class PlaceHoldRequest(BaseModel):
    """Hold request; the hour range is checked against configuration."""
    option_id: UUID
    passenger_id: UUID
    leg_id: Optional[UUID] = None
    hours: StrictInt = 24
    notes: Optional[str] = Field(None, max_length=500)


class MarkTicketedRequest(BaseModel):
    option_id: UUID
    leg_id: UUID
    passenger_id: UUID
    pnr_code: str
    price_paid: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    currency: str = "USD"

    @field_validator("pnr_code")
    @classmethod
    def normalize_pnr_code(cls, v: str) -> str:
        """Upper-case the code and require exactly six letters or digits."""
        code = v.strip().upper()
        if len(code) != PNR_CODE_LENGTH:
            raise ValueError(f"PNR must be exactly {PNR_CODE_LENGTH} characters")
        if not code.isalnum():
            raise ValueError("PNR must contain only letters and digits")
        return code

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return _currency_code(v)


class PlaceHoldsRequest(BaseModel):
    """One option held for several passengers in one transaction."""
    option_id: UUID
    passenger_ids: PassengerIds
    leg_id: Optional[UUID] = None
    hours: StrictInt = 24
    notes: Optional[str] = Field(None, max_length=500)


class AssignPassengersRequest(BaseModel):
    leg_id: UUID
    passenger_ids: PassengerIds


class PassengerAssignmentRequest(BaseModel):
    leg_id: UUID
    passenger_id: UUID
    treat_as_individual: StrictBool = False


SEGMENT_FIELDS = ("airline", "flight_number", "departure_airport", "arrival_airport",
                  "departure_time", "arrival_time")


class SegmentRequest(BaseModel):
    """One manually entered flight segment, e.g. ``UA 123 AMS-PHL``."""
    airline: str = Field(..., max_length=3)
    flight_number: str = Field(..., max_length=8)
    departure_airport: str
    arrival_airport: str
    departure_time: datetime
    arrival_time: datetime

    @field_validator("airline", "flight_number")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        code = v.strip().upper()
        if not code.isalnum():
            raise ValueError("Airline and flight number must contain only letters and digits")
        return code

    @field_validator("departure_airport", "arrival_airport")
    @classmethod
    def normalize_airport(cls, v: str) -> str:
        code = v.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError("Airport must be a 3-letter IATA code")
        return code

    @property
    def summary(self) -> str:
        return f"{self.airline}{self.flight_number} {self.departure_airport}-{self.arrival_airport}"


class CreateOptionRequest(BaseModel):
    leg_id: UUID
    name: str = Field(..., max_length=200)
    description: Optional[str] = None
    segments: List[SegmentRequest]
    total_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    currency: str = "USD"
    is_recommended: StrictBool = False

    @field_validator("name")
    @classmethod
    def require_name(cls, v: str) -> str:
        name = v.strip()
        if not name:
            raise ValueError("Option name is required")
        return name

    @field_validator("segments", mode="before")
    @classmethod
    def require_segment_fields(cls, v: Any) -> Any:
        """Name the first incomplete segment (1-based) before field validation runs."""
        if not v:
            raise ValueError("At least one segment is required")
        for number, segment in enumerate(v, start=1):
            if isinstance(segment, dict) and any(segment.get(name) in (None, "") for name in SEGMENT_FIELDS):
                raise ValueError(f"Segment {number} missing required fields")
        return v

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return _currency_code(v)


class OptionRequest(BaseModel):
    option_id: UUID


class QueueRequest(BaseModel):
    artist_id: Optional[UUID] = None
