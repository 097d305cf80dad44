"""
Hold placement and urgency classification.

A hold is a time-boxed promise on an (option, passenger) pair. Holds are
never extended: every placement inserts a new row. Expiry is derived by
comparing ``expires_at`` with the clock whenever a hold is read; nothing
sweeps expired rows.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional
from uuid import UUID

from ..auth import ActingUser, requires_role
from ..database.models import FlightOption, Hold, Passenger
from ..errors import NotFound, ValidationError
from ..models.enums import HoldUrgency, NotificationSeverity, NotificationType
from ..models.notification import NotificationRequest
from ..models.requests import PlaceHoldRequest, PlaceHoldsRequest, parse_request
from ..models.ticketing import HoldModel, HoldPlacement
from .base import BookingService, leg_context

logger = logging.getLogger(__name__)

URGENCY_HIGH_HOURS = 2
URGENCY_MEDIUM_HOURS = 6


def classify_urgency(
    expires_at: Optional[datetime],
    now: datetime,
    high_hours: float = URGENCY_HIGH_HOURS,
    medium_hours: float = URGENCY_MEDIUM_HOURS,
) -> HoldUrgency:
    """
    Classify a hold by its remaining time.

    ``expired`` once ``now`` reaches ``expires_at``, then ``high`` up to
    ``high_hours`` remaining, ``medium`` up to ``medium_hours``, otherwise
    ``low``. No hold at all is ``none``.
    """
    if expires_at is None:
        return HoldUrgency.NONE
    if now >= expires_at:
        return HoldUrgency.EXPIRED

    remaining = expires_at - now
    if remaining <= timedelta(hours=high_hours):
        return HoldUrgency.HIGH
    if remaining <= timedelta(hours=medium_hours):
        return HoldUrgency.MEDIUM
    return HoldUrgency.LOW


def select_authoritative_hold(holds: Iterable[HoldModel], now: datetime) -> Optional[HoldModel]:
    """
    Pick the hold that speaks for an (option, passenger) pair.

    The most recently created unexpired hold wins. When every hold has
    expired, the most recent expired one is returned so the pair still
    reports as ``expired`` rather than ``none``.
    """
    holds = list(holds)
    unexpired = [hold for hold in holds if not hold.is_expired(now)]
    candidates = unexpired or holds
    if not candidates:
        return None
    return max(candidates, key=lambda hold: (hold.created_at, hold.expires_at))


class HoldManager(BookingService):
    """Places and reads holds."""

    def classify(self, hold: Optional[HoldModel], now: Optional[datetime] = None) -> HoldUrgency:
        """Urgency of a hold using the configured thresholds."""
        return classify_urgency(
            hold.expires_at if hold is not None else None,
            now or self.clock(),
            high_hours=self.config.urgency_high_hours,
            medium_hours=self.config.urgency_medium_hours,
        )

    def _check_hours(self, hours: int) -> None:
        low, high = self.config.min_hold_hours, self.config.max_hold_hours
        if not low <= hours <= high:
            raise ValidationError(f"Hold hours must be between {low} and {high}")

    @requires_role()
    async def place_hold(
        self,
        acting_user: ActingUser,
        option_id: UUID,
        passenger_id: UUID,
        hours: Optional[int] = None,
        leg_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> HoldPlacement:
        """
        Place a new hold expiring ``hours`` from now.

        Args:
            acting_user: Agent or admin placing the hold
            option_id: Held flight option
            passenger_id: Passenger the option is held for
            hours: Hold duration; the configured default when omitted
            leg_id: When given, the option must belong to this leg
            notes: Free-text agent notes

        Raises:
            ValidationError: If ``hours`` is outside the configured range
            NotFound: If the option or passenger does not exist
        """
        request = parse_request(
            PlaceHoldRequest,
            option_id=option_id,
            passenger_id=passenger_id,
            leg_id=leg_id,
            hours=self.config.default_hold_hours if hours is None else hours,
            notes=notes,
        )
        self._check_hours(request.hours)

        now = self.clock()
        expires_at = now + timedelta(hours=request.hours)

        with self.db_config.get_session_context() as session:
            option = session.get(FlightOption, request.option_id)
            if option is None or (request.leg_id is not None and option.leg_id != request.leg_id):
                raise NotFound("Option not found or not accessible")
            if session.get(Passenger, request.passenger_id) is None:
                raise NotFound("Passenger not found")

            hold = Hold(
                option_id=option.id,
                passenger_id=request.passenger_id,
                expires_at=expires_at,
                created_by=acting_user.id,
                notes=request.notes,
                created_at=now,
            )
            session.add(hold)
            session.flush()

            placement = HoldPlacement(hold_id=hold.id, expires_at=expires_at)
            context = leg_context(option.leg)

        logger.info(
            f"Hold {placement.hold_id} placed on option {request.option_id} for passenger "
            f"{request.passenger_id}, expires {expires_at.isoformat()}"
        )

        self.followups.notify(NotificationRequest(
            type=NotificationType.HOLD_EXPIRING,
            severity=NotificationSeverity.WARNING,
            title="Hold Placed",
            body=f"Hold placed on option expiring at {expires_at.isoformat()}",
            actor_user_id=acting_user.id,
            **context,
        ))
        await self._invalidate_queue()
        return placement

    @requires_role()
    async def place_holds(
        self,
        acting_user: ActingUser,
        option_id: UUID,
        passenger_ids: List[UUID],
        hours: Optional[int] = None,
        leg_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> List[HoldPlacement]:
        """
        Hold one option for several passengers at once.

        All holds share one expiry and are written in one transaction: an
        unknown passenger places none of them. One notification covers the
        whole batch.

        Raises:
            ValidationError: If no passenger is given or ``hours`` is outside the configured range
            NotFound: If the option or any passenger does not exist
        """
        request = parse_request(
            PlaceHoldsRequest,
            option_id=option_id,
            passenger_ids=passenger_ids,
            leg_id=leg_id,
            hours=self.config.default_hold_hours if hours is None else hours,
            notes=notes,
        )
        self._check_hours(request.hours)

        now = self.clock()
        expires_at = now + timedelta(hours=request.hours)

        with self.db_config.get_session_context() as session:
            option = session.get(FlightOption, request.option_id)
            if option is None or (request.leg_id is not None and option.leg_id != request.leg_id):
                raise NotFound("Option not found or not accessible")

            known = {
                pid for (pid,) in session.query(Passenger.id).filter(Passenger.id.in_(request.passenger_ids))
            }
            if len(known) != len(request.passenger_ids):
                raise NotFound("Passenger not found")

            holds = [
                Hold(
                    option_id=option.id,
                    passenger_id=pid,
                    expires_at=expires_at,
                    created_by=acting_user.id,
                    notes=request.notes,
                    created_at=now,
                )
                for pid in request.passenger_ids
            ]
            session.add_all(holds)
            session.flush()

            placements = [HoldPlacement(hold_id=hold.id, expires_at=expires_at) for hold in holds]
            context = leg_context(option.leg)

        logger.info(
            f"{len(placements)} hold(s) placed on option {request.option_id}, expire {expires_at.isoformat()}"
        )

        self.followups.notify(NotificationRequest(
            type=NotificationType.HOLD_EXPIRING,
            severity=NotificationSeverity.WARNING,
            title="Holds Placed",
            body=f"Option held for {len(placements)} passengers until {expires_at.isoformat()}",
            actor_user_id=acting_user.id,
            **context,
        ))
        await self._invalidate_queue()
        return placements

    @requires_role()
    async def list_holds(
        self,
        acting_user: ActingUser,
        option_id: Optional[UUID] = None,
        passenger_id: Optional[UUID] = None,
        include_expired: bool = True,
    ) -> List[HoldModel]:
        """List holds, newest first, optionally filtered by option and passenger."""
        now = self.clock()

        with self.db_config.get_session_context() as session:
            query = session.query(Hold)
            if option_id is not None:
                query = query.filter(Hold.option_id == option_id)
            if passenger_id is not None:
                query = query.filter(Hold.passenger_id == passenger_id)
            if not include_expired:
                query = query.filter(Hold.expires_at > now)

            rows = query.order_by(Hold.created_at.desc()).all()
            return [HoldModel.model_validate(row) for row in rows]

    @requires_role()
    async def get_authoritative_hold(
        self,
        acting_user: ActingUser,
        option_id: UUID,
        passenger_id: UUID,
    ) -> Optional[HoldModel]:
        """The hold currently speaking for an (option, passenger) pair, if any."""
        holds = await self.list_holds(acting_user, option_id=option_id, passenger_id=passenger_id)
        return select_authoritative_hold(holds, self.clock())
