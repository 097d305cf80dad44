"""
Passenger assignments to legs.

Assignments are the input to booking unit derivation. Changing them does
not touch existing units; agents re-derive the leg afterwards.
"""

import logging
from typing import List
from uuid import UUID

from sqlalchemy.orm import Session

from ..auth import ActingUser, requires_role
from ..database.models import Leg, LegPassenger, Passenger
from ..errors import NotFound
from ..models.requests import (
    AssignPassengersRequest,
    LegRequest,
    PassengerAssignmentRequest,
    parse_request,
)
from ..models.selection import LegAssignmentModel
from .base import BookingService

logger = logging.getLogger(__name__)


def _assignment_model(assignment: LegPassenger) -> LegAssignmentModel:
    return LegAssignmentModel(
        leg_id=assignment.leg_id,
        passenger_id=assignment.passenger_id,
        full_name=assignment.passenger.full_name,
        treat_as_individual=assignment.treat_as_individual,
        created_at=assignment.created_at,
    )


class AssignmentManager(BookingService):
    """Assigns passengers to legs and flags who books on their own."""

    def _get_leg(self, session: Session, leg_id: UUID) -> Leg:
        leg = session.get(Leg, leg_id)
        if leg is None:
            raise NotFound("Leg not found or not accessible")
        return leg

    def _get_assignment(self, session: Session, leg_id: UUID, passenger_id: UUID) -> LegPassenger:
        assignment = (
            session.query(LegPassenger)
            .filter(LegPassenger.leg_id == leg_id, LegPassenger.passenger_id == passenger_id)
            .one_or_none()
        )
        if assignment is None:
            raise NotFound("Passenger is not assigned to this leg")
        return assignment

    @requires_role()
    async def assign_passengers(
        self,
        acting_user: ActingUser,
        leg_id: UUID,
        passenger_ids: List[UUID],
    ) -> List[LegAssignmentModel]:
        """
        Assign passengers to a leg, replacing any existing assignment of theirs.

        Re-assigned passengers start over as part of the group
        (``treat_as_individual`` is reset).

        Raises:
            ValidationError: If no passenger is given
            NotFound: If the leg is missing, or a passenger is not part of the leg's project
        """
        request = parse_request(AssignPassengersRequest, leg_id=leg_id, passenger_ids=passenger_ids)
        now = self.clock()

        with self.db_config.get_session_context() as session:
            leg = self._get_leg(session, request.leg_id)

            found = {
                passenger.id
                for passenger in session.query(Passenger).filter(
                    Passenger.id.in_(request.passenger_ids),
                    Passenger.project_id == leg.project_id,
                )
            }
            missing = [str(pid) for pid in request.passenger_ids if pid not in found]
            if missing:
                raise NotFound(f"Passenger not found in this project: {', '.join(missing)}")

            session.query(LegPassenger).filter(
                LegPassenger.leg_id == leg.id,
                LegPassenger.passenger_id.in_(request.passenger_ids),
            ).delete(synchronize_session=False)
            session.flush()

            assignments = [
                LegPassenger(leg_id=leg.id, passenger_id=pid, treat_as_individual=False, created_at=now)
                for pid in request.passenger_ids
            ]
            session.add_all(assignments)
            session.flush()

            result = [_assignment_model(assignment) for assignment in assignments]

        logger.info(
            f"Assigned {len(result)} passenger(s) to leg {request.leg_id} "
            f"by {acting_user.role.value} {acting_user.id}"
        )
        return result

    @requires_role()
    async def remove_passenger(self, acting_user: ActingUser, leg_id: UUID, passenger_id: UUID) -> None:
        """
        Remove a passenger from a leg.

        Raises:
            NotFound: If the leg is missing or the passenger is not assigned to it
        """
        request = parse_request(PassengerAssignmentRequest, leg_id=leg_id, passenger_id=passenger_id)

        with self.db_config.get_session_context() as session:
            self._get_leg(session, request.leg_id)
            session.delete(self._get_assignment(session, request.leg_id, request.passenger_id))

        logger.info(f"Removed passenger {request.passenger_id} from leg {request.leg_id}")

    @requires_role()
    async def set_treat_as_individual(
        self,
        acting_user: ActingUser,
        leg_id: UUID,
        passenger_id: UUID,
        treat_as_individual: bool,
    ) -> LegAssignmentModel:
        """Flag whether a passenger gets their own booking unit on the next derivation."""
        request = parse_request(
            PassengerAssignmentRequest,
            leg_id=leg_id,
            passenger_id=passenger_id,
            treat_as_individual=treat_as_individual,
        )

        with self.db_config.get_session_context() as session:
            self._get_leg(session, request.leg_id)
            assignment = self._get_assignment(session, request.leg_id, request.passenger_id)
            assignment.treat_as_individual = request.treat_as_individual
            session.flush()
            result = _assignment_model(assignment)

        logger.info(
            f"Passenger {request.passenger_id} on leg {request.leg_id}: "
            f"treat_as_individual={request.treat_as_individual}"
        )
        return result

    @requires_role()
    async def list_assignments(self, acting_user: ActingUser, leg_id: UUID) -> List[LegAssignmentModel]:
        request = parse_request(LegRequest, leg_id=leg_id)

        with self.db_config.get_session_context() as session:
            self._get_leg(session, request.leg_id)
            rows = (
                session.query(LegPassenger)
                .filter(LegPassenger.leg_id == request.leg_id)
                .order_by(LegPassenger.created_at, LegPassenger.passenger_id)
                .all()
            )
            return [_assignment_model(row) for row in rows]
