"""
End-to-end booking flow through the desk facade.

Derive units, let the client choose, hold, ticket, and watch the queue.
"""

import pytest

from tourdesk.cache import CacheManager, ValkeyConfig
from tourdesk.models.enums import BookingUnitKind, HoldUrgency, SelectionStatus
from tourdesk.services.desk import BookingDesk


@pytest.fixture
def desk(db_config, settings, sink, clock):
    cache_manager = CacheManager(client=None, config=ValkeyConfig())
    return BookingDesk(db_config, config=settings, cache_manager=cache_manager, sink=sink, clock=clock)


class TestBookingFlow:
    """Test the full selection, hold and ticketing lifecycle."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, desk, agent, client_user, tour, clock):
        leg = tour.leg
        ana = leg.passenger_ids[0]

        result = await desk.grouping.derive_groups(agent, leg.id)
        assert (result.individuals_created, result.group_created, result.total_passengers) == (2, 1, 3)

        units = await desk.grouping.get_booking_units(agent, leg.id)
        for unit in units:
            await desk.selections.select_option(client_user, unit.id, leg.option_ids[0])

        queue = await desk.queue.get_queue(agent)
        assert len(queue) == 3
        assert all(item.urgency == HoldUrgency.NONE for item in queue)

        placement = await desk.holds.place_hold(agent, leg.option_ids[0], ana, hours=24)
        queue = await desk.queue.get_queue(agent)
        ana_item = next(item for item in queue if item.passenger_id == ana)
        assert ana_item.urgency == HoldUrgency.LOW
        assert ana_item.hold.id == placement.hold_id
        assert queue[0].passenger_id == ana

        await desk.selections.mark_held(agent, ana_item.selection_id)

        clock.advance(hours=23)
        queue = await desk.queue.get_queue(agent)
        assert queue[0].urgency == HoldUrgency.HIGH
        assert queue[0].status == SelectionStatus.HELD

        await desk.ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, ana, "abc123", "1250.00")

        queue = await desk.queue.get_queue(agent)
        assert ana not in {item.passenger_id for item in queue}
        assert len(queue) == 2
        assert desk.ticketing.is_passenger_ticketed(leg.id, ana)

        stats = await desk.queue.get_queue_stats(agent)
        assert (stats.pending, stats.held, stats.ticketed) == (2, 0, 1)

    @pytest.mark.asyncio
    async def test_regrouping_keeps_selections(self, desk, agent, client_user, tour):
        leg = tour.leg
        await desk.grouping.derive_groups(agent, leg.id)
        units = await desk.grouping.get_booking_units(agent, leg.id)
        group = next(unit for unit in units if unit.kind == BookingUnitKind.GROUP)
        await desk.selections.select_option(client_user, group.id, leg.option_ids[1])

        await desk.grouping.derive_groups(agent, leg.id)

        active = await desk.selections.list_active_selections(agent, leg.id)
        assert len(active) == 1
        assert active[0].booking_unit_id is None
        assert active[0].option_id == leg.option_ids[1]

    @pytest.mark.asyncio
    async def test_follow_up_notifications_in_order(self, desk, agent, client_user, tour, sink):
        leg = tour.leg
        ana = leg.passenger_ids[0]
        await desk.grouping.derive_groups(agent, leg.id)
        units = await desk.grouping.get_booking_units(agent, leg.id)
        unit = next(u for u in units if u.passenger_ids == [ana])

        await desk.selections.select_option(client_user, unit.id, leg.option_ids[0])
        await desk.holds.place_hold(agent, leg.option_ids[0], ana)
        await desk.ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, ana, "XYZ789", 1250)

        assert [event.title for event in sink.events] == [
            "New Client Selection",
            "Hold Placed",
            "Passenger Ticketed",
        ]
        assert desk.followups.failures == []
