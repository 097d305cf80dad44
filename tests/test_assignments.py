"""
Tests for passenger assignments to legs.
"""

import uuid

import pytest

from tourdesk.database.models import LegPassenger, Passenger
from tourdesk.errors import NotFound, Unauthorized, ValidationError
from tourdesk.models.enums import BookingUnitKind
from tourdesk.services.assignments import AssignmentManager


@pytest.fixture
def assignments(service_kwargs):
    return AssignmentManager(**service_kwargs)


@pytest.fixture
def new_passenger(db_config, tour):
    """A member of the tour's project who is not on any leg yet."""
    with db_config.get_session_context() as session:
        passenger = Passenger(project_id=tour.project_id, full_name="Eli Park")
        session.add(passenger)
        session.flush()
        return passenger.id


class TestAssignPassengers:

    @pytest.mark.asyncio
    async def test_adds_passenger_to_group(self, assignments, agent, tour, new_passenger):
        result = await assignments.assign_passengers(agent, tour.leg.id, [new_passenger])

        assert [(a.full_name, a.treat_as_individual) for a in result] == [("Eli Park", False)]
        listed = await assignments.list_assignments(agent, tour.leg.id)
        assert len(listed) == 4

    @pytest.mark.asyncio
    async def test_reassigning_resets_individual_flag(self, assignments, agent, tour, db_config):
        ana = tour.leg.passenger_ids[0]

        await assignments.assign_passengers(agent, tour.leg.id, [ana, ana])

        with db_config.get_session_context() as session:
            rows = session.query(LegPassenger).filter(LegPassenger.passenger_id == ana).all()
            assert [row.treat_as_individual for row in rows] == [False]

    @pytest.mark.asyncio
    async def test_empty_list(self, assignments, agent, tour):
        with pytest.raises(ValidationError, match="At least one passenger is required"):
            await assignments.assign_passengers(agent, tour.leg.id, [])

    @pytest.mark.asyncio
    async def test_passenger_from_another_project(self, assignments, agent, tour, db_config):
        dara = tour.other_leg.passenger_ids[0]

        with pytest.raises(NotFound, match="Passenger not found in this project"):
            await assignments.assign_passengers(agent, tour.leg.id, [tour.leg.passenger_ids[0], dara])

        with db_config.get_session_context() as session:
            assert session.query(LegPassenger).filter(LegPassenger.leg_id == tour.leg.id).count() == 3

    @pytest.mark.asyncio
    async def test_unknown_leg(self, assignments, agent, new_passenger):
        with pytest.raises(NotFound, match="Leg not found"):
            await assignments.assign_passengers(agent, uuid.uuid4(), [new_passenger])

    @pytest.mark.asyncio
    async def test_requires_employee(self, assignments, client_user, tour, new_passenger):
        with pytest.raises(Unauthorized):
            await assignments.assign_passengers(client_user, tour.leg.id, [new_passenger])


class TestAssignmentChanges:

    @pytest.mark.asyncio
    async def test_remove_passenger(self, assignments, agent, tour):
        bruno = tour.leg.passenger_ids[1]

        await assignments.remove_passenger(agent, tour.leg.id, bruno)

        listed = await assignments.list_assignments(agent, tour.leg.id)
        assert bruno not in [a.passenger_id for a in listed]

    @pytest.mark.asyncio
    async def test_remove_unassigned(self, assignments, agent, tour, new_passenger):
        with pytest.raises(NotFound, match="not assigned to this leg"):
            await assignments.remove_passenger(agent, tour.leg.id, new_passenger)

    @pytest.mark.asyncio
    async def test_toggle_individual_changes_derived_units(self, assignments, grouping, agent, tour):
        carla = tour.leg.passenger_ids[2]

        result = await assignments.set_treat_as_individual(agent, tour.leg.id, carla, True)
        derived = await grouping.derive_groups(agent, tour.leg.id)

        assert result.treat_as_individual is True
        assert result.full_name == "Carla Mota"
        assert derived.individuals_created == 3
        assert derived.group_created == 0

        await assignments.set_treat_as_individual(agent, tour.leg.id, carla, False)
        await grouping.derive_groups(agent, tour.leg.id)
        units = await grouping.get_booking_units(agent, tour.leg.id)
        group = [u for u in units if u.kind == BookingUnitKind.GROUP]
        assert group[0].passenger_ids == [carla]

    @pytest.mark.asyncio
    async def test_toggle_requires_a_real_flag(self, assignments, agent, tour):
        with pytest.raises(ValidationError):
            await assignments.set_treat_as_individual(agent, tour.leg.id, tour.leg.passenger_ids[0], "yes")

    @pytest.mark.asyncio
    async def test_toggle_unassigned(self, assignments, agent, tour, new_passenger):
        with pytest.raises(NotFound):
            await assignments.set_treat_as_individual(agent, tour.leg.id, new_passenger, True)
