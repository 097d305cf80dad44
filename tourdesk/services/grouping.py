"""
Booking unit derivation from leg passenger assignments.

Passengers flagged ``treat_as_individual`` each get their own unit; all
other passengers of the leg share exactly one group unit. Units are
replaced wholesale on every run, which makes derivation idempotent.

The delete and the recreate happen in one transaction: a failure while
creating the new units leaves the previous units in place.
"""

import logging
from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import ActingUser, requires_role
from ..database.models import BookingUnit, BookingUnitMember, Leg, LegPassenger, Selection
from ..errors import NotFound
from ..models.enums import BookingUnitKind
from ..models.requests import LegRequest, parse_request
from ..models.selection import BookingUnitModel, GroupDerivationResult
from .base import BookingService

logger = logging.getLogger(__name__)


def route_label(leg: Leg) -> str:
    return f"{leg.origin_city or 'Origin'} → {leg.destination_city or 'Destination'}"


def individual_label(full_name: str, leg: Leg) -> str:
    """Label for a one-passenger unit, e.g. ``"Ana Diaz — Lisbon → Madrid"``."""
    return f"{full_name} — {route_label(leg)}"


def group_label(leg: Leg, passenger_count: int) -> str:
    """Label for the shared unit, built from the leg label or its route."""
    base = leg.label or route_label(leg)
    return f"{base} — {passenger_count} passengers"


class GroupingDeriver(BookingService):
    """Derives and lists the booking units of a leg."""

    @requires_role()
    async def derive_groups(self, acting_user: ActingUser, leg_id: UUID) -> GroupDerivationResult:
        """
        Replace the leg's booking units with units derived from its assignments.

        Raises:
            NotFound: If the leg does not exist or has no passenger assignments
        """
        request = parse_request(LegRequest, leg_id=leg_id)

        with self.db_config.get_session_context() as session:
            leg = session.get(Leg, request.leg_id)
            if leg is None:
                raise NotFound("Leg not found or not accessible")

            assignments = (
                session.query(LegPassenger)
                .filter(LegPassenger.leg_id == leg.id)
                .order_by(LegPassenger.created_at, LegPassenger.passenger_id)
                .all()
            )
            if not assignments:
                raise NotFound("No passengers assigned to this leg")

            self._delete_units(session, leg.id)

            individuals = [a for a in assignments if a.treat_as_individual]
            grouped = [a for a in assignments if not a.treat_as_individual]

            for assignment in individuals:
                unit = BookingUnit(
                    leg_id=leg.id,
                    kind=BookingUnitKind.INDIVIDUAL,
                    label=individual_label(assignment.passenger.full_name, leg),
                )
                unit.members.append(BookingUnitMember(passenger_id=assignment.passenger_id))
                session.add(unit)

            if grouped:
                unit = BookingUnit(
                    leg_id=leg.id,
                    kind=BookingUnitKind.GROUP,
                    label=group_label(leg, len(grouped)),
                )
                unit.members.extend(BookingUnitMember(passenger_id=a.passenger_id) for a in grouped)
                session.add(unit)

            result = GroupDerivationResult(
                leg_id=leg.id,
                individuals_created=len(individuals),
                group_created=1 if grouped else 0,
                total_passengers=len(assignments),
            )

        logger.info(
            f"Derived booking units for leg {result.leg_id}: "
            f"{result.individuals_created} individual, {result.group_created} group"
        )
        await self._invalidate_queue()
        return result

    @staticmethod
    def _delete_units(session: Session, leg_id: UUID) -> None:
        """Remove every unit of the leg; selections keep their rows but lose the link."""
        unit_ids = select(BookingUnit.id).where(BookingUnit.leg_id == leg_id)

        session.query(Selection).filter(Selection.booking_unit_id.in_(unit_ids)).update(
            {Selection.booking_unit_id: None}, synchronize_session=False
        )
        session.query(BookingUnitMember).filter(BookingUnitMember.unit_id.in_(unit_ids)).delete(
            synchronize_session=False
        )
        session.query(BookingUnit).filter(BookingUnit.leg_id == leg_id).delete(
            synchronize_session=False
        )

    @requires_role()
    async def get_booking_units(self, acting_user: ActingUser, leg_id: UUID) -> List[BookingUnitModel]:
        """List the leg's booking units, group unit first."""
        request = parse_request(LegRequest, leg_id=leg_id)

        with self.db_config.get_session_context() as session:
            if session.get(Leg, request.leg_id) is None:
                raise NotFound("Leg not found or not accessible")

            units = (
                session.query(BookingUnit)
                .filter(BookingUnit.leg_id == request.leg_id)
                .order_by(BookingUnit.created_at, BookingUnit.label)
                .all()
            )
            models = [BookingUnitModel.model_validate(unit) for unit in units]

        models.sort(key=lambda unit: unit.kind != BookingUnitKind.GROUP)
        return models
