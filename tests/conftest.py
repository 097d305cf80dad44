"""
Shared fixtures for the booking core tests.

Every test gets a fresh in-memory SQLite database, a frozen clock, an
in-memory notification sink and a mock cache manager.
"""

import fnmatch
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from tourdesk.auth import ActingUser
from tourdesk.cache.queue_view import QueueViewCache
from tourdesk.database.config import DatabaseConfig
from tourdesk.database.models import (
    Artist,
    FlightOption,
    Leg,
    LegPassenger,
    Passenger,
    Project,
    Selection,
)
from tourdesk.models.enums import SelectionStatus, UserRole
from tourdesk.services.followups import FollowUpDispatcher, MemoryNotificationSink
from tourdesk.services.grouping import GroupingDeriver
from tourdesk.services.holds import HoldManager
from tourdesk.services.queue import BookingQueue
from tourdesk.services.selections import SelectionService
from tourdesk.services.ticketing import TicketingLedger
from tourdesk.utils.config import TourdeskConfig

T0 = datetime(2026, 3, 2, 9, 0, 0)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class MockCacheManager:
    """Mock cache manager for testing."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.cleared_patterns = []

    async def get(self, key, default=None):
        return self.data.get(key, default)

    async def set(self, key, value, ttl=None, jitter=True):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, key):
        return self.data.pop(key, None) is not None

    async def clear_pattern(self, pattern):
        self.cleared_patterns.append(pattern)
        matched = [key for key in self.data if fnmatch.fnmatch(key, pattern)]
        for key in matched:
            del self.data[key]
        return len(matched)


@pytest.fixture
def db_config():
    """Fresh in-memory database with all tables."""
    config = DatabaseConfig(database_url="sqlite:///:memory:")
    config.initialize()
    config.create_tables()
    yield config
    config.close()


@pytest.fixture
def settings():
    return TourdeskConfig()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def sink():
    return MemoryNotificationSink()


@pytest.fixture
def followups(db_config, sink):
    return FollowUpDispatcher(db_config, sink)


@pytest.fixture
def mock_cache_manager():
    return MockCacheManager()


@pytest.fixture
def queue_cache(mock_cache_manager):
    return QueueViewCache(mock_cache_manager)


@pytest.fixture
def service_kwargs(db_config, settings, followups, queue_cache, clock):
    return dict(
        db_config=db_config,
        config=settings,
        followups=followups,
        queue_cache=queue_cache,
        clock=clock,
    )


@pytest.fixture
def grouping(service_kwargs):
    return GroupingDeriver(**service_kwargs)


@pytest.fixture
def holds(service_kwargs):
    return HoldManager(**service_kwargs)


@pytest.fixture
def ticketing(service_kwargs):
    return TicketingLedger(**service_kwargs)


@pytest.fixture
def selections(service_kwargs):
    return SelectionService(**service_kwargs)


@pytest.fixture
def booking_queue(service_kwargs):
    return BookingQueue(**service_kwargs)


@pytest.fixture
def agent():
    return ActingUser(id=uuid.uuid4(), role=UserRole.AGENT)


@pytest.fixture
def admin():
    return ActingUser(id=uuid.uuid4(), role=UserRole.ADMIN)


@pytest.fixture
def client_user():
    return ActingUser(id=uuid.uuid4(), role=UserRole.CLIENT)


def seed_leg(session, project, label, origin, destination, departure, names, individual_flags):
    """Create a leg with assigned passengers and two flight options."""
    leg = Leg(
        project_id=project.id,
        label=label,
        origin_city=origin,
        destination_city=destination,
        departure_date=departure,
    )
    session.add(leg)
    session.flush()

    passengers = []
    for name, individual in zip(names, individual_flags):
        passenger = Passenger(project_id=project.id, full_name=name)
        session.add(passenger)
        session.flush()
        session.add(LegPassenger(leg_id=leg.id, passenger_id=passenger.id, treat_as_individual=individual))
        passengers.append(passenger)

    options = [
        FlightOption(leg_id=leg.id, name="Direct", total_price=Decimal("1250.00"), currency="USD", is_recommended=True),
        FlightOption(leg_id=leg.id, name="Via Frankfurt", total_price=Decimal("890.00"), currency="USD"),
    ]
    session.add_all(options)
    session.flush()

    return SimpleNamespace(
        id=leg.id,
        passenger_ids=[p.id for p in passengers],
        option_ids=[o.id for o in options],
    )


@pytest.fixture
def tour(db_config):
    """
    One artist with two projects.

    ``tour.leg``: Lisbon -> Madrid, departs 2026-03-10, passengers Ana and
    Bruno travel as individuals, Carla is grouped.
    ``tour.other_leg``: a second artist's leg without a departure date.
    """
    with db_config.get_session_context() as session:
        artist = Artist(name="The Wanderers")
        other_artist = Artist(name="Night Owls")
        session.add_all([artist, other_artist])
        session.flush()

        project = Project(artist_id=artist.id, name="Spring Tour")
        other_project = Project(artist_id=other_artist.id, name="Club Dates")
        session.add_all([project, other_project])
        session.flush()

        leg = seed_leg(
            session, project, None, "Lisbon", "Madrid", date(2026, 3, 10),
            ["Ana Diaz", "Bruno Reis", "Carla Mota"], [True, True, False],
        )
        other_leg = seed_leg(
            session, other_project, "Club run", None, None, None,
            ["Dara Quinn"], [False],
        )

        return SimpleNamespace(
            artist_id=artist.id,
            other_artist_id=other_artist.id,
            project_id=project.id,
            leg=leg,
            other_leg=other_leg,
        )


@pytest.fixture
def add_selection(db_config, clock):
    """Insert a selection row directly, bypassing the client flow."""

    def _add(passenger_id, leg_id, option_id, status=SelectionStatus.PENDING, created_at=None, is_active=True):
        created = created_at or clock()
        with db_config.get_session_context() as session:
            selection = Selection(
                passenger_id=passenger_id,
                leg_id=leg_id,
                option_id=option_id,
                status=status,
                is_active=is_active,
                created_at=created,
                updated_at=created,
            )
            session.add(selection)
            session.flush()
            return selection.id

    return _add
