"""
Selection state machine and the operations that drive it.

    pending ──► held ──► ticketed
       │  ◄──────┴─────────┘  (revert)
       └──► cancelled

A hold is not a prerequisite for ticketing. Reverting never touches PNRs:
a prior ticketing remains a fact of record.
"""

import logging
from typing import Dict, FrozenSet, List, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from ..auth import ActingUser, requires_role
from ..database.models import BookingUnit, FlightOption, Leg, Selection
from ..errors import InvalidTransition, NotFound, ValidationError
from ..models.enums import NotificationSeverity, NotificationType, SelectionStatus, UserRole
from ..models.notification import NotificationRequest
from ..models.option import FlightOptionModel
from ..models.requests import LegRequest, SelectionRequest, SelectOptionRequest, parse_request
from ..models.selection import SelectionModel, TransitionResult
from .base import BookingService, leg_context

logger = logging.getLogger(__name__)

PENDING = SelectionStatus.PENDING
HELD = SelectionStatus.HELD
TICKETED = SelectionStatus.TICKETED
CANCELLED = SelectionStatus.CANCELLED


class SelectionStateMachine:
    """Transition table for selection statuses."""

    # action -> (target status, statuses it may start from)
    TRANSITIONS: Dict[str, Tuple[SelectionStatus, FrozenSet[SelectionStatus]]] = {
        "hold": (HELD, frozenset({PENDING})),
        "ticket": (TICKETED, frozenset({PENDING, HELD})),
        "revert": (PENDING, frozenset({HELD, TICKETED})),
        "cancel": (CANCELLED, frozenset({PENDING, HELD})),
    }

    @classmethod
    def can(cls, action: str, current: SelectionStatus) -> bool:
        _, allowed = cls.TRANSITIONS[action]
        return current in allowed

    @classmethod
    def next_status(cls, action: str, current: SelectionStatus) -> SelectionStatus:
        """
        Return the status ``action`` leads to from ``current``.

        Raises:
            InvalidTransition: If the action is not allowed from ``current``
        """
        target, allowed = cls.TRANSITIONS[action]
        if current not in allowed:
            raise InvalidTransition(cls._rejection(action, current))
        return target

    @staticmethod
    def _rejection(action: str, current: SelectionStatus) -> str:
        if action == "hold":
            return f"Cannot mark {current.value} selection as held"
        if action == "ticket":
            return f"Cannot ticket {current.value} selection"
        if action == "revert" and current == PENDING:
            return "Selection is already pending"
        return f"Cannot {action} {current.value} selection"


class SelectionService(BookingService):
    """Client choices and agent status transitions on selections."""

    state_machine = SelectionStateMachine

    @requires_role(UserRole.CLIENT, UserRole.AGENT, UserRole.ADMIN)
    async def select_option(
        self,
        acting_user: ActingUser,
        booking_unit_id: UUID,
        option_id: UUID,
    ) -> List[SelectionModel]:
        """
        Record a booking unit's choice of flight option.

        Every member's current active selection for the leg is superseded by a
        new ``pending`` one; a new choice never duplicates.

        Raises:
            NotFound: If the unit or option is missing, or the option is for another leg
            ValidationError: If the option is marked unavailable
            InvalidTransition: If a concurrent choice for the same passengers won the race
        """
        request = parse_request(SelectOptionRequest, booking_unit_id=booking_unit_id, option_id=option_id)
        now = self.clock()

        try:
            with self.db_config.get_session_context() as session:
                unit = session.get(BookingUnit, request.booking_unit_id)
                if unit is None:
                    raise NotFound("Selection group not found")

                option = session.get(FlightOption, request.option_id)
                if option is None or option.leg_id != unit.leg_id:
                    raise NotFound("Option not found or not accessible")
                if not option.is_available:
                    raise ValidationError("Option is no longer available")

                passenger_ids = unit.passenger_ids
                session.query(Selection).filter(
                    Selection.leg_id == unit.leg_id,
                    Selection.passenger_id.in_(passenger_ids),
                    Selection.is_active.is_(True),
                ).update(
                    {Selection.is_active: False, Selection.active_key: None, Selection.updated_at: now},
                    synchronize_session=False,
                )

                selections = [
                    Selection(
                        passenger_id=passenger_id,
                        leg_id=unit.leg_id,
                        option_id=option.id,
                        booking_unit_id=unit.id,
                        status=PENDING,
                        is_active=True,
                        selected_by=acting_user.id,
                        created_at=now,
                        updated_at=now,
                    )
                    for passenger_id in passenger_ids
                ]
                session.add_all(selections)
                session.flush()

                result = [SelectionModel.model_validate(selection) for selection in selections]
                context = leg_context(option.leg)
        except IntegrityError as e:
            # Another selection for a member became active between the update and the insert
            logger.info(f"Selection for booking unit {request.booking_unit_id} lost a concurrent write")
            raise InvalidTransition("Selection changed concurrently; retry") from e

        logger.info(f"Booking unit {request.booking_unit_id} selected option {request.option_id}")

        self.followups.notify(NotificationRequest(
            type=NotificationType.CLIENT_SELECTION,
            severity=NotificationSeverity.INFO,
            title="New Client Selection",
            body="Client has made a flight option selection",
            actor_user_id=acting_user.id,
            **context,
        ))
        await self._invalidate_queue()
        return result

    async def _transition(self, acting_user: ActingUser, selection_id: UUID, action: str) -> TransitionResult:
        request = parse_request(SelectionRequest, selection_id=selection_id)

        with self.db_config.get_session_context() as session:
            selection = session.get(Selection, request.selection_id)
            if selection is None:
                raise NotFound("Selection not found")

            previous = selection.status
            target = self.state_machine.next_status(action, previous)
            if not selection.is_active:
                raise InvalidTransition("Selection is no longer active")

            selection.status = target
            selection.updated_at = self.clock()
            if target == CANCELLED:
                selection.is_active = False

            result = TransitionResult(selection_id=selection.id, status=target)

        logger.info(
            f"Selection {result.selection_id}: {previous.value} -> {target.value} "
            f"by {acting_user.role.value} {acting_user.id}"
        )
        await self._invalidate_queue()
        return result

    @requires_role()
    async def mark_held(self, acting_user: ActingUser, selection_id: UUID) -> TransitionResult:
        """Move a pending selection to ``held``."""
        return await self._transition(acting_user, selection_id, "hold")

    @requires_role()
    async def mark_selection_ticketed(self, acting_user: ActingUser, selection_id: UUID) -> TransitionResult:
        """Move a pending or held selection to ``ticketed``; no hold is required."""
        return await self._transition(acting_user, selection_id, "ticket")

    @requires_role()
    async def revert_to_pending(self, acting_user: ActingUser, selection_id: UUID) -> TransitionResult:
        """Return a held or ticketed selection to ``pending``, keeping any PNR."""
        return await self._transition(acting_user, selection_id, "revert")

    @requires_role()
    async def cancel_selection(self, acting_user: ActingUser, selection_id: UUID) -> TransitionResult:
        """Cancel a selection that is not ticketed; it stops being active."""
        return await self._transition(acting_user, selection_id, "cancel")

    @requires_role(UserRole.CLIENT, UserRole.AGENT, UserRole.ADMIN)
    async def list_active_selections(self, acting_user: ActingUser, leg_id: UUID) -> List[SelectionModel]:
        """Active selections of a leg, oldest first."""
        request = parse_request(LegRequest, leg_id=leg_id)

        with self.db_config.get_session_context() as session:
            if session.get(Leg, request.leg_id) is None:
                raise NotFound("Leg not found or not accessible")

            rows = (
                session.query(Selection)
                .filter(Selection.leg_id == request.leg_id, Selection.is_active.is_(True))
                .order_by(Selection.created_at, Selection.passenger_id)
                .all()
            )
            return [SelectionModel.model_validate(row) for row in rows]

    @requires_role(UserRole.CLIENT, UserRole.AGENT, UserRole.ADMIN)
    async def list_options(
        self,
        acting_user: ActingUser,
        leg_id: UUID,
        available_only: bool = True,
    ) -> List[FlightOptionModel]:
        """Flight options offered for a leg, recommended first, with their segments."""
        request = parse_request(LegRequest, leg_id=leg_id)

        with self.db_config.get_session_context() as session:
            if session.get(Leg, request.leg_id) is None:
                raise NotFound("Leg not found or not accessible")

            query = session.query(FlightOption).filter(FlightOption.leg_id == request.leg_id)
            if available_only:
                query = query.filter(FlightOption.is_available.is_(True))

            rows = query.order_by(FlightOption.is_recommended.desc(), FlightOption.created_at, FlightOption.name).all()
            return [FlightOptionModel.model_validate(row) for row in rows]
