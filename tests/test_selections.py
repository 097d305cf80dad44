"""
Tests for client selections and the selection state machine.
"""

import uuid

import pytest
from sqlalchemy import event, insert
from sqlalchemy.orm import Session

from tourdesk.database.models import PNR, FlightOption, OptionComponent, Selection
from tourdesk.errors import InvalidTransition, NotFound, Unauthorized, ValidationError
from tourdesk.models.enums import BookingUnitKind, NotificationType, SelectionStatus
from tourdesk.services.selections import SelectionStateMachine


async def derived_units(grouping, user, leg_id):
    await grouping.derive_groups(user, leg_id)
    units = await grouping.get_booking_units(user, leg_id)
    group = [u for u in units if u.kind == BookingUnitKind.GROUP]
    individuals = [u for u in units if u.kind == BookingUnitKind.INDIVIDUAL]
    return group[0] if group else None, individuals


class TestStateMachine:
    """Test the transition table without a database."""

    @pytest.mark.parametrize("action, current, expected", [
        ("hold", SelectionStatus.PENDING, SelectionStatus.HELD),
        ("ticket", SelectionStatus.PENDING, SelectionStatus.TICKETED),
        ("ticket", SelectionStatus.HELD, SelectionStatus.TICKETED),
        ("revert", SelectionStatus.HELD, SelectionStatus.PENDING),
        ("revert", SelectionStatus.TICKETED, SelectionStatus.PENDING),
        ("cancel", SelectionStatus.PENDING, SelectionStatus.CANCELLED),
        ("cancel", SelectionStatus.HELD, SelectionStatus.CANCELLED),
    ])
    def test_allowed(self, action, current, expected):
        assert SelectionStateMachine.can(action, current)
        assert SelectionStateMachine.next_status(action, current) == expected

    @pytest.mark.parametrize("action, current, message", [
        ("hold", SelectionStatus.HELD, "Cannot mark held selection as held"),
        ("hold", SelectionStatus.TICKETED, "Cannot mark ticketed selection as held"),
        ("ticket", SelectionStatus.TICKETED, "Cannot ticket ticketed selection"),
        ("ticket", SelectionStatus.CANCELLED, "Cannot ticket cancelled selection"),
        ("revert", SelectionStatus.PENDING, "Selection is already pending"),
        ("revert", SelectionStatus.CANCELLED, "Cannot revert cancelled selection"),
        ("cancel", SelectionStatus.TICKETED, "Cannot cancel ticketed selection"),
        ("cancel", SelectionStatus.CANCELLED, "Cannot cancel cancelled selection"),
    ])
    def test_rejected(self, action, current, message):
        assert not SelectionStateMachine.can(action, current)
        with pytest.raises(InvalidTransition) as exc_info:
            SelectionStateMachine.next_status(action, current)
        assert exc_info.value.message == message


class TestSelectOption:
    """Test recording a booking unit's choice."""

    @pytest.mark.asyncio
    async def test_creates_pending_selection_per_member(self, selections, grouping, agent, client_user, tour):
        group, individuals = await derived_units(grouping, agent, tour.leg.id)

        created = await selections.select_option(client_user, group.id, tour.leg.option_ids[0])

        assert [s.passenger_id for s in created] == group.passenger_ids
        assert all(s.status == SelectionStatus.PENDING and s.is_active for s in created)
        assert all(s.booking_unit_id == group.id for s in created)
        assert created[0].selected_by == client_user.id

    @pytest.mark.asyncio
    async def test_new_choice_supersedes_previous(self, selections, grouping, agent, client_user, tour, clock):
        _, individuals = await derived_units(grouping, agent, tour.leg.id)
        unit = individuals[0]

        first = await selections.select_option(client_user, unit.id, tour.leg.option_ids[0])
        clock.advance(minutes=10)
        second = await selections.select_option(client_user, unit.id, tour.leg.option_ids[1])

        active = await selections.list_active_selections(client_user, tour.leg.id)
        assert [s.id for s in active] == [second[0].id]
        assert active[0].option_id == tour.leg.option_ids[1]
        assert first[0].id != second[0].id

    @pytest.mark.asyncio
    async def test_reselecting_same_option_keeps_one_active(self, selections, grouping, agent, tour):
        _, individuals = await derived_units(grouping, agent, tour.leg.id)
        unit = individuals[0]

        await selections.select_option(agent, unit.id, tour.leg.option_ids[0])
        await selections.select_option(agent, unit.id, tour.leg.option_ids[0])

        active = await selections.list_active_selections(agent, tour.leg.id)
        assert len(active) == 1

    @pytest.mark.asyncio
    async def test_option_from_another_leg(self, selections, grouping, agent, tour):
        group, _ = await derived_units(grouping, agent, tour.leg.id)
        with pytest.raises(NotFound):
            await selections.select_option(agent, group.id, tour.other_leg.option_ids[0])

    @pytest.mark.asyncio
    async def test_unknown_unit(self, selections, agent, tour):
        with pytest.raises(NotFound, match="Selection group not found"):
            await selections.select_option(agent, uuid.uuid4(), tour.leg.option_ids[0])

    @pytest.mark.asyncio
    async def test_unavailable_option(self, selections, grouping, agent, tour, db_config):
        group, _ = await derived_units(grouping, agent, tour.leg.id)
        with db_config.get_session_context() as session:
            session.get(FlightOption, tour.leg.option_ids[1]).is_available = False

        with pytest.raises(ValidationError, match="no longer available"):
            await selections.select_option(agent, group.id, tour.leg.option_ids[1])

    @pytest.mark.asyncio
    async def test_emits_client_selection_notification(self, selections, grouping, agent, client_user, tour, sink):
        group, _ = await derived_units(grouping, agent, tour.leg.id)
        await selections.select_option(client_user, group.id, tour.leg.option_ids[0])

        assert [e.type for e in sink.events] == [NotificationType.CLIENT_SELECTION]
        assert sink.events[0].title == "New Client Selection"
        assert sink.events[0].actor_user_id == client_user.id

    @pytest.mark.asyncio
    async def test_concurrent_choice_is_reported_as_invalid_transition(
        self, selections, grouping, agent, client_user, tour, db_config, sink
    ):
        _, individuals = await derived_units(grouping, agent, tour.leg.id)
        unit = individuals[0]
        passenger_id = unit.passenger_ids[0]

        def competing_insert(update_context):
            # Another request commits its choice right after this one superseded the old rows
            update_context.session.execute(insert(Selection).values(
                id=uuid.uuid4(),
                passenger_id=passenger_id,
                leg_id=tour.leg.id,
                option_id=tour.leg.option_ids[1],
                status=SelectionStatus.PENDING,
                is_active=True,
                active_key=True,
            ))

        event.listen(Session, "after_bulk_update", competing_insert)
        try:
            with pytest.raises(InvalidTransition, match="Selection changed concurrently; retry"):
                await selections.select_option(client_user, unit.id, tour.leg.option_ids[0])
        finally:
            event.remove(Session, "after_bulk_update", competing_insert)

        with db_config.get_session_context() as session:
            assert session.query(Selection).filter(Selection.passenger_id == passenger_id).count() == 0
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_superseded_rows_release_the_active_key(self, selections, grouping, agent, tour, db_config):
        _, individuals = await derived_units(grouping, agent, tour.leg.id)
        unit = individuals[0]

        first = await selections.select_option(agent, unit.id, tour.leg.option_ids[0])
        second = await selections.select_option(agent, unit.id, tour.leg.option_ids[1])

        with db_config.get_session_context() as session:
            assert session.get(Selection, first[0].id).active_key is None
            assert session.get(Selection, second[0].id).active_key is True

    @pytest.mark.asyncio
    async def test_requires_authentication(self, selections, tour):
        with pytest.raises(Unauthorized, match="not authenticated"):
            await selections.select_option(None, uuid.uuid4(), tour.leg.option_ids[0])

    @pytest.mark.asyncio
    async def test_list_unknown_leg(self, selections, agent):
        with pytest.raises(NotFound):
            await selections.list_active_selections(agent, uuid.uuid4())


class TestTransitions:
    """Test agent-driven status changes."""

    @pytest.mark.asyncio
    async def test_hold_then_ticket(self, selections, agent, tour, add_selection):
        selection_id = add_selection(tour.leg.passenger_ids[0], tour.leg.id, tour.leg.option_ids[0])

        held = await selections.mark_held(agent, selection_id)
        ticketed = await selections.mark_selection_ticketed(agent, selection_id)

        assert held.status == SelectionStatus.HELD
        assert ticketed.status == SelectionStatus.TICKETED

    @pytest.mark.asyncio
    async def test_ticket_without_hold(self, selections, agent, tour, add_selection):
        selection_id = add_selection(tour.leg.passenger_ids[0], tour.leg.id, tour.leg.option_ids[0])
        result = await selections.mark_selection_ticketed(agent, selection_id)
        assert result.status == SelectionStatus.TICKETED

    @pytest.mark.asyncio
    async def test_revert_ticketed_keeps_pnr(self, selections, ticketing, agent, tour, add_selection, db_config):
        leg = tour.leg
        passenger_id = leg.passenger_ids[0]
        selection_id = add_selection(passenger_id, leg.id, leg.option_ids[0])
        await ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, passenger_id, "ABC123", 100)

        result = await selections.revert_to_pending(agent, selection_id)

        assert result.status == SelectionStatus.PENDING
        with db_config.get_session_context() as session:
            assert session.query(PNR).filter(PNR.passenger_id == passenger_id).count() == 1
        assert ticketing.is_passenger_ticketed(leg.id, passenger_id) is True

    @pytest.mark.asyncio
    async def test_revert_pending_rejected(self, selections, agent, tour, add_selection):
        selection_id = add_selection(tour.leg.passenger_ids[0], tour.leg.id, tour.leg.option_ids[0])
        with pytest.raises(InvalidTransition, match="already pending"):
            await selections.revert_to_pending(agent, selection_id)

    @pytest.mark.asyncio
    async def test_cancel_deactivates(self, selections, agent, tour, add_selection, db_config):
        selection_id = add_selection(tour.leg.passenger_ids[0], tour.leg.id, tour.leg.option_ids[0])

        result = await selections.cancel_selection(agent, selection_id)

        assert result.status == SelectionStatus.CANCELLED
        with db_config.get_session_context() as session:
            assert session.get(Selection, selection_id).is_active is False

    @pytest.mark.asyncio
    async def test_revert_cancelled_rejected(self, selections, agent, tour, add_selection):
        selection_id = add_selection(tour.leg.passenger_ids[0], tour.leg.id, tour.leg.option_ids[0])
        await selections.cancel_selection(agent, selection_id)

        with pytest.raises(InvalidTransition, match="Cannot revert cancelled selection"):
            await selections.revert_to_pending(agent, selection_id)

    @pytest.mark.asyncio
    async def test_cancel_ticketed_rejected(self, selections, agent, tour, add_selection):
        selection_id = add_selection(
            tour.leg.passenger_ids[0], tour.leg.id, tour.leg.option_ids[0], status=SelectionStatus.TICKETED
        )
        with pytest.raises(InvalidTransition, match="Cannot cancel ticketed selection"):
            await selections.cancel_selection(agent, selection_id)

    @pytest.mark.asyncio
    async def test_superseded_selection_rejected(self, selections, agent, tour, add_selection):
        selection_id = add_selection(
            tour.leg.passenger_ids[0], tour.leg.id, tour.leg.option_ids[0], is_active=False
        )
        with pytest.raises(InvalidTransition, match="no longer active"):
            await selections.mark_held(agent, selection_id)

    @pytest.mark.asyncio
    async def test_unknown_selection(self, selections, agent):
        with pytest.raises(NotFound, match="Selection not found"):
            await selections.mark_held(agent, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_client_cannot_transition(self, selections, client_user, tour, add_selection):
        selection_id = add_selection(tour.leg.passenger_ids[0], tour.leg.id, tour.leg.option_ids[0])
        with pytest.raises(Unauthorized):
            await selections.mark_held(client_user, selection_id)

    @pytest.mark.asyncio
    async def test_transition_invalidates_queue_cache(self, selections, agent, tour, add_selection, mock_cache_manager):
        selection_id = add_selection(tour.leg.passenger_ids[0], tour.leg.id, tour.leg.option_ids[0])
        await selections.mark_held(agent, selection_id)
        assert mock_cache_manager.cleared_patterns == ["queue:view:*"]


class TestListOptions:
    """Test the option listing clients choose from."""

    @pytest.mark.asyncio
    async def test_recommended_first_with_components(self, selections, client_user, tour, db_config):
        with db_config.get_session_context() as session:
            session.add(OptionComponent(
                option_id=tour.leg.option_ids[0],
                component_order=1,
                airline="TAP Air Portugal",
                flight_number="TP1026",
            ))

        options = await selections.list_options(client_user, tour.leg.id)

        assert [option.name for option in options] == ["Direct", "Via Frankfurt"]
        assert options[0].is_recommended is True
        assert [c.flight_number for c in options[0].components] == ["TP1026"]
        assert options[1].components == []

    @pytest.mark.asyncio
    async def test_unavailable_hidden_by_default(self, selections, agent, tour, db_config):
        with db_config.get_session_context() as session:
            session.get(FlightOption, tour.leg.option_ids[0]).is_available = False

        assert [o.name for o in await selections.list_options(agent, tour.leg.id)] == ["Via Frankfurt"]
        assert len(await selections.list_options(agent, tour.leg.id, available_only=False)) == 2

    @pytest.mark.asyncio
    async def test_unknown_leg(self, selections, agent):
        with pytest.raises(NotFound):
            await selections.list_options(agent, uuid.uuid4())
