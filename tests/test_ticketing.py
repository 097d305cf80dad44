"""
Tests for the ticketing ledger.
"""

import asyncio
import uuid
from decimal import Decimal

import pytest

from tourdesk.database.models import PNR, NotificationEvent, Selection
from tourdesk.errors import DuplicateTicketing, NotFound, Unauthorized, ValidationError
from tourdesk.models.enums import NotificationType, SelectionStatus
from tourdesk.services.ticketing import TicketingLedger

def count_pnrs(db_config, passenger_id):
    with db_config.get_session_context() as session:
        return session.query(PNR).filter(PNR.passenger_id == passenger_id).count()

class TestMarkTicketed:
    """Test PNR recording."""

    @pytest.mark.asyncio
    async def test_records_pnr(self, ticketing, agent, tour, clock):
        leg = tour.leg
        result = await ticketing.mark_ticketed(
            agent, leg.option_ids[0], leg.id, leg.passenger_ids[0], "ABC123", "1250.00"
        )

        assert result.pnr_code == "ABC123"
        pnrs = await ticketing.list_pnrs(agent, leg_id=leg.id)
        assert len(pnrs) == 1
        assert pnrs[0].id == result.pnr_id
        assert pnrs[0].price_paid == Decimal("1250.00")
        assert pnrs[0].currency == "USD"
        assert pnrs[0].ticketed_by == agent.id
        assert pnrs[0].created_at == clock()

    @pytest.mark.asyncio
    async def test_code_is_normalized(self, ticketing, agent, tour):
        leg = tour.leg
        result = await ticketing.mark_ticketed(
            agent, leg.option_ids[0], leg.id, leg.passenger_ids[0], " abc123 ", 100, currency="eur"
        )

        assert result.pnr_code == "ABC123"
        pnrs = await ticketing.list_pnrs(agent, passenger_id=leg.passenger_ids[0])
        assert pnrs[0].currency == "EUR"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["ABC12", "ABC1234", ""])
    async def test_rejects_wrong_length(self, ticketing, agent, tour, code):
        leg = tour.leg
        with pytest.raises(ValidationError, match="PNR must be exactly 6 characters"):
            await ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, leg.passenger_ids[0], code, 100)

    @pytest.mark.asyncio
    async def test_rejects_punctuation(self, ticketing, agent, tour):
        leg = tour.leg
        with pytest.raises(ValidationError, match="letters and digits"):
            await ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, leg.passenger_ids[0], "AB-123", 100)

    @pytest.mark.asyncio
    async def test_rejects_negative_price(self, ticketing, agent, tour):
        leg = tour.leg
        with pytest.raises(ValidationError):
            await ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, leg.passenger_ids[0], "ABC123", "-1")

    @pytest.mark.asyncio
    async def test_duplicate_code_rejected(self, ticketing, agent, admin, tour, db_config):
        leg = tour.leg
        passenger_id = leg.passenger_ids[0]
        await ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, passenger_id, "ABC123", 100)

        with pytest.raises(DuplicateTicketing, match="already ticketed"):
            await ticketing.mark_ticketed(admin, leg.option_ids[0], leg.id, passenger_id, "abc123", 100)

        assert count_pnrs(db_config, passenger_id) == 1

    @pytest.mark.asyncio
    async def test_different_code_is_accepted(self, ticketing, agent, tour, db_config):
        leg = tour.leg
        passenger_id = leg.passenger_ids[0]
        await ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, passenger_id, "ABC123", 100)
        await ticketing.mark_ticketed(agent, leg.option_ids[1], leg.id, passenger_id, "XYZ789", 90)

        assert count_pnrs(db_config, passenger_id) == 2
        assert ticketing.is_passenger_ticketed(leg.id, passenger_id) is True

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_has_one_winner(self, ticketing, agent, admin, tour, db_config):
        leg = tour.leg
        passenger_id = leg.passenger_ids[1]

        results = await asyncio.gather(
            ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, passenger_id, "QRS456", 100),
            ticketing.mark_ticketed(admin, leg.option_ids[0], leg.id, passenger_id, "QRS456", 100),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], DuplicateTicketing)
        assert count_pnrs(db_config, passenger_id) == 1

    @pytest.mark.asyncio
    async def test_option_must_belong_to_leg(self, ticketing, agent, tour):
        with pytest.raises(NotFound, match="Option not found for this leg"):
            await ticketing.mark_ticketed(
                agent, tour.other_leg.option_ids[0], tour.leg.id, tour.leg.passenger_ids[0], "ABC123", 100
            )

    @pytest.mark.asyncio
    async def test_unknown_passenger(self, ticketing, agent, tour):
        with pytest.raises(NotFound, match="Passenger not found"):
            await ticketing.mark_ticketed(agent, tour.leg.option_ids[0], tour.leg.id, uuid.uuid4(), "ABC123", 100)

    @pytest.mark.asyncio
    async def test_client_cannot_ticket(self, ticketing, client_user, tour):
        leg = tour.leg
        with pytest.raises(Unauthorized):
            await ticketing.mark_ticketed(client_user, leg.option_ids[0], leg.id, leg.passenger_ids[0], "ABC123", 100)

    def test_not_ticketed_without_pnr(self, ticketing, tour):
        assert ticketing.is_passenger_ticketed(tour.leg.id, tour.leg.passenger_ids[0]) is False

class TestTicketingFollowUps:
    """Test selection bookkeeping and notifications after ticketing."""

    @pytest.mark.asyncio
    async def test_selection_on_ticketed_option_moves_to_ticketed(self, ticketing, agent, tour, add_selection, db_config, clock):
        leg = tour.leg
        passenger_id = leg.passenger_ids[0]
        chosen = add_selection(passenger_id, leg.id, leg.option_ids[0], status=SelectionStatus.HELD)
        clock.advance(hours=1)

        await ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, passenger_id, "ABC123", 100)

        with db_config.get_session_context() as session:
            row = session.get(Selection, chosen)
            assert row.status == SelectionStatus.TICKETED
            assert row.is_active is True
            assert row.updated_at == clock()

    @pytest.mark.asyncio
    async def test_selection_on_other_option_retired(self, ticketing, agent, tour, add_selection, db_config):
        leg = tour.leg
        passenger_id = leg.passenger_ids[0]
        stale = add_selection(passenger_id, leg.id, leg.option_ids[1])

        await ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, passenger_id, "ABC123", 100)

        with db_config.get_session_context() as session:
            row = session.get(Selection, stale)
            assert row.is_active is False
            assert row.status == SelectionStatus.PENDING

    @pytest.mark.asyncio
    async def test_notification_emitted(self, ticketing, agent, tour, sink):
        leg = tour.leg
        await ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, leg.passenger_ids[0], "ABC123", 100)

        assert [event.type for event in sink.events] == [NotificationType.TICKETED]
        assert sink.events[0].title == "Passenger Ticketed"
        assert sink.events[0].body == "PNR ABC123 recorded"
        assert sink.events[0].artist_id == tour.artist_id

    @pytest.mark.asyncio
    async def test_sync_failure_keeps_pnr(self, ticketing, agent, tour, db_config, followups, monkeypatch):
        def broken_sync(session, request):
            raise RuntimeError("selection table locked")

        monkeypatch.setattr(ticketing, "_sync_selections", broken_sync)
        leg = tour.leg

        result = await ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, leg.passenger_ids[0], "ABC123", 100)

        assert result.pnr_code == "ABC123"
        assert count_pnrs(db_config, leg.passenger_ids[0]) == 1
        assert len(followups.failures) == 1
        assert "selection table locked" in followups.failures[0].message

    @pytest.mark.asyncio
    async def test_outbox_rows_written(self, db_config, settings, clock, agent, tour):
        ledger = TicketingLedger(db_config, config=settings, clock=clock)
        leg = tour.leg

        await ledger.mark_ticketed(agent, leg.option_ids[0], leg.id, leg.passenger_ids[0], "ABC123", 100)

        with db_config.get_session_context() as session:
            event = session.query(NotificationEvent).one()
            assert event.type == NotificationType.TICKETED
            assert event.leg_id == leg.id

    @pytest.mark.asyncio
    async def test_queue_cache_invalidated(self, ticketing, agent, tour, mock_cache_manager):
        leg = tour.leg
        await ticketing.mark_ticketed(agent, leg.option_ids[0], leg.id, leg.passenger_ids[0], "ABC123", 100)
        assert mock_cache_manager.cleared_patterns == ["queue:view:*"]
