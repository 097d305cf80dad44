"""
Flight option catalog maintained by agents.

Options are entered by hand as an ordered list of segments. Deleting an
option takes its segments, holds and selections with it, but an option that
has been ticketed stays: PNRs are a permanent record and keep pointing at it.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..auth import ActingUser, requires_role
from ..database.models import PNR, FlightOption, Hold, Leg, OptionComponent, Selection
from ..errors import InvalidTransition, NotFound
from ..models.option import FlightOptionModel
from ..models.requests import CreateOptionRequest, OptionRequest, parse_request
from .base import BookingService

logger = logging.getLogger(__name__)


class OptionCatalog(BookingService):
    """Creates, flags and deletes the flight options of a leg."""

    def _get_option(self, session: Session, option_id: UUID) -> FlightOption:
        option = session.get(FlightOption, option_id)
        if option is None:
            raise NotFound("Option not found or not accessible")
        return option

    @requires_role()
    async def create_option(
        self,
        acting_user: ActingUser,
        leg_id: UUID,
        name: str,
        segments: List[Dict[str, Any]],
        description: Optional[str] = None,
        total_price: Optional[Decimal] = None,
        currency: Optional[str] = None,
        is_recommended: bool = False,
    ) -> FlightOptionModel:
        """
        Create an option from manually entered segments.

        Each segment needs ``airline``, ``flight_number``, ``departure_airport``,
        ``arrival_airport``, ``departure_time`` and ``arrival_time``. Segments
        keep the order they are given in; codes are upper-cased and each
        segment records a short summary such as ``UA123 AMS-PHL``.

        Raises:
            ValidationError: If the name is blank, no segment is given, or a segment is incomplete
            NotFound: If the leg does not exist
        """
        request = parse_request(
            CreateOptionRequest,
            leg_id=leg_id,
            name=name,
            description=description,
            segments=segments,
            total_price=total_price,
            currency=currency or self.config.default_currency,
            is_recommended=is_recommended,
        )

        with self.db_config.get_session_context() as session:
            if session.get(Leg, request.leg_id) is None:
                raise NotFound("Leg not found or not accessible")

            option = FlightOption(
                leg_id=request.leg_id,
                name=request.name,
                description=request.description,
                total_price=request.total_price,
                currency=request.currency,
                is_recommended=request.is_recommended,
                is_available=True,
                created_at=self.clock(),
            )
            session.add(option)
            session.flush()

            session.add_all([
                OptionComponent(
                    option_id=option.id,
                    component_order=order,
                    airline=segment.airline,
                    flight_number=segment.flight_number,
                    departure_airport=segment.departure_airport,
                    arrival_airport=segment.arrival_airport,
                    departure_time=segment.departure_time,
                    arrival_time=segment.arrival_time,
                    source_text=segment.summary,
                )
                for order, segment in enumerate(request.segments, start=1)
            ])
            session.flush()
            session.refresh(option)

            result = FlightOptionModel.model_validate(option)

        logger.info(
            f"Option {result.id} '{result.name}' created on leg {request.leg_id} "
            f"with {len(result.components)} segment(s)"
        )
        return result

    @requires_role()
    async def set_recommended(
        self,
        acting_user: ActingUser,
        option_id: UUID,
        is_recommended: bool,
    ) -> FlightOptionModel:
        """Flag or unflag an option as recommended. Several options of a leg may be recommended."""
        request = parse_request(OptionRequest, option_id=option_id)

        with self.db_config.get_session_context() as session:
            option = self._get_option(session, request.option_id)
            option.is_recommended = bool(is_recommended)
            session.flush()
            result = FlightOptionModel.model_validate(option)

        logger.info(f"Option {request.option_id} recommended={result.is_recommended}")
        await self._invalidate_queue()
        return result

    @requires_role()
    async def delete_option(self, acting_user: ActingUser, option_id: UUID) -> None:
        """
        Delete an option with its segments, holds and selections.

        Raises:
            NotFound: If the option does not exist
            InvalidTransition: If a PNR references the option
        """
        request = parse_request(OptionRequest, option_id=option_id)

        with self.db_config.get_session_context() as session:
            option = self._get_option(session, request.option_id)

            tickets = session.query(PNR).filter(PNR.option_id == option.id).count()
            if tickets:
                raise InvalidTransition(f"Option has {tickets} PNR(s) recorded and cannot be deleted")

            selections = session.query(Selection).filter(Selection.option_id == option.id).delete(
                synchronize_session=False
            )
            holds = session.query(Hold).filter(Hold.option_id == option.id).delete(synchronize_session=False)
            session.query(OptionComponent).filter(OptionComponent.option_id == option.id).delete(
                synchronize_session=False
            )
            session.delete(option)

        logger.info(
            f"Option {request.option_id} deleted with {holds} hold(s) and {selections} selection(s) "
            f"by {acting_user.role.value} {acting_user.id}"
        )
        await self._invalidate_queue()
