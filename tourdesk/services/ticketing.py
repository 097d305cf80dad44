"""
Ticketing ledger.

Ticketing is the irreversible act of recording a PNR for a passenger. The
store's unique constraint on (passenger_id, code) is the only exclusivity
mechanism: when two agents race to ticket the same passenger with the same
code, the loser's insert is rejected and reported as ``DuplicateTicketing``.

Once the PNR has committed, selection bookkeeping and the notification
request run as follow-ups; their failure never undoes the PNR.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import ActingUser, requires_role
from ..database.models import FlightOption, Passenger, PNR, Selection
from ..errors import DuplicateTicketing, NotFound
from ..models.enums import (
    QUEUE_STATUSES,
    NotificationSeverity,
    NotificationType,
    SelectionStatus,
)
from ..models.notification import NotificationRequest
from ..models.requests import MarkTicketedRequest, parse_request
from ..models.ticketing import PNRModel, TicketingResult
from .base import BookingService, leg_context

logger = logging.getLogger(__name__)


class TicketingLedger(BookingService):
    """Records PNRs and answers whether a passenger is ticketed for a leg."""

    @requires_role()
    async def mark_ticketed(
        self,
        acting_user: ActingUser,
        option_id: UUID,
        leg_id: UUID,
        passenger_id: UUID,
        pnr_code: str,
        price_paid: Union[Decimal, float, str],
        currency: Optional[str] = None,
    ) -> TicketingResult:
        """
        Record a PNR for a passenger on a leg.

        The code is stripped and upper-cased before validation. A second call
        with a different code for the same passenger and leg is accepted.

        Raises:
            ValidationError: If the code, price or currency is malformed
            NotFound: If the option, leg or passenger does not exist
            DuplicateTicketing: If the passenger already has a PNR with this code
        """
        request = parse_request(
            MarkTicketedRequest,
            option_id=option_id,
            leg_id=leg_id,
            passenger_id=passenger_id,
            pnr_code=pnr_code,
            price_paid=price_paid,
            currency=currency or self.config.default_currency,
        )

        try:
            with self.db_config.get_session_context() as session:
                option = session.get(FlightOption, request.option_id)
                if option is None or option.leg_id != request.leg_id:
                    raise NotFound("Option not found for this leg")
                if session.get(Passenger, request.passenger_id) is None:
                    raise NotFound("Passenger not found")

                pnr = PNR(
                    passenger_id=request.passenger_id,
                    option_id=request.option_id,
                    leg_id=request.leg_id,
                    code=request.pnr_code,
                    price_paid=request.price_paid,
                    currency=request.currency,
                    ticketed_by=acting_user.id,
                    created_at=self.clock(),
                )
                session.add(pnr)
                session.flush()

                result = TicketingResult(pnr_id=pnr.id, pnr_code=pnr.code)
                context = leg_context(option.leg)
        except IntegrityError as e:
            logger.info(
                f"Rejected PNR {request.pnr_code} for passenger {request.passenger_id}: already recorded"
            )
            raise DuplicateTicketing("Passenger is already ticketed for this leg") from e

        logger.info(
            f"Passenger {request.passenger_id} ticketed on leg {request.leg_id} "
            f"with PNR {result.pnr_code} ({request.price_paid} {request.currency})"
        )

        self.followups.run_in_session(
            "selection sync after ticketing",
            lambda session: self._sync_selections(session, request),
        )
        self.followups.notify(NotificationRequest(
            type=NotificationType.TICKETED,
            severity=NotificationSeverity.INFO,
            title="Passenger Ticketed",
            body=f"PNR {result.pnr_code} recorded",
            actor_user_id=acting_user.id,
            **context,
        ))
        await self._invalidate_queue()
        return result

    def _sync_selections(self, session: Session, request: MarkTicketedRequest) -> None:
        """
        Move the ticketed option's selection to ``ticketed`` and retire the rest.

        Leaves at most one active selection for the passenger on the leg.
        """
        now = self.clock()
        active = (
            session.query(Selection)
            .filter(
                Selection.passenger_id == request.passenger_id,
                Selection.leg_id == request.leg_id,
                Selection.is_active.is_(True),
            )
            .all()
        )

        for selection in active:
            if selection.option_id != request.option_id:
                selection.is_active = False
                selection.updated_at = now
            elif selection.status in QUEUE_STATUSES:
                selection.status = SelectionStatus.TICKETED
                selection.updated_at = now

    def is_passenger_ticketed(self, leg_id: UUID, passenger_id: UUID) -> bool:
        """A passenger is ticketed for a leg once any PNR exists for the pair."""
        with self.db_config.get_session_context() as session:
            return session.query(
                session.query(PNR)
                .filter(PNR.leg_id == leg_id, PNR.passenger_id == passenger_id)
                .exists()
            ).scalar()

    @requires_role()
    async def list_pnrs(
        self,
        acting_user: ActingUser,
        leg_id: Optional[UUID] = None,
        passenger_id: Optional[UUID] = None,
    ) -> List[PNRModel]:
        """List PNRs, oldest first, optionally filtered by leg and passenger."""
        with self.db_config.get_session_context() as session:
            query = session.query(PNR)
            if leg_id is not None:
                query = query.filter(PNR.leg_id == leg_id)
            if passenger_id is not None:
                query = query.filter(PNR.passenger_id == passenger_id)

            rows = query.order_by(PNR.created_at, PNR.code).all()
            return [PNRModel.model_validate(row) for row in rows]
