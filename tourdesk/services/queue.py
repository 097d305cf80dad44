"""
Prioritized booking queue for agents.

The queue lists every active selection still awaiting agent action
(``pending`` or ``held``), joined to its option, leg, project, artist and
passenger, plus the hold history of its (option, passenger) pair and
whether the passenger already holds a PNR for the leg.

Ranking is a pure function of the items and the current time:

1. selections whose authoritative hold has expired;
2. soonest hold expiry, selections with a hold before those without;
3. earliest leg departure, missing dates last;
4. oldest selection first.
"""

import logging
from collections import Counter, defaultdict
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import func

from ..auth import ActingUser, requires_role
from ..database.models import Artist, FlightOption, Hold, Leg, Passenger, PNR, Project, Selection
from ..models.enums import QUEUE_STATUSES, HoldUrgency, SelectionStatus
from ..models.queue import QueueItemModel, QueueStatsModel
from ..models.requests import QueueRequest, parse_request
from ..models.ticketing import HoldModel
from .base import BookingService
from .holds import URGENCY_HIGH_HOURS, URGENCY_MEDIUM_HOURS, classify_urgency, select_authoritative_hold

logger = logging.getLogger(__name__)


def resolve_item(
    item: QueueItemModel,
    now: datetime,
    high_hours: float = URGENCY_HIGH_HOURS,
    medium_hours: float = URGENCY_MEDIUM_HOURS,
) -> QueueItemModel:
    """Attach the authoritative hold and its urgency as of ``now``."""
    hold = select_authoritative_hold(item.holds, now)
    urgency = classify_urgency(
        hold.expires_at if hold is not None else None,
        now,
        high_hours=high_hours,
        medium_hours=medium_hours,
    )
    return item.model_copy(update={"hold": hold, "urgency": urgency})


def queue_sort_key(item: QueueItemModel) -> Tuple:
    """Total order over resolved queue items."""
    hold = item.hold
    return (
        0 if item.urgency == HoldUrgency.EXPIRED else 1,
        0 if hold is not None else 1,
        hold.expires_at if hold is not None else datetime.max,
        0 if item.departure_date is not None else 1,
        item.departure_date or date.max,
        item.created_at,
        str(item.selection_id),
    )


def rank(
    items: Iterable[QueueItemModel],
    now: datetime,
    high_hours: float = URGENCY_HIGH_HOURS,
    medium_hours: float = URGENCY_MEDIUM_HOURS,
) -> List[QueueItemModel]:
    """
    Resolve every item against ``now`` and sort it into queue order.

    Deterministic: equal inputs and an equal ``now`` always produce the same
    order, with the selection id as the last tiebreak.
    """
    resolved = [resolve_item(item, now, high_hours, medium_hours) for item in items]
    return sorted(resolved, key=queue_sort_key)


class BookingQueue(BookingService):
    """Builds, caches and ranks the agent work queue."""

    def _rank(self, items: Iterable[QueueItemModel], now: datetime) -> List[QueueItemModel]:
        return rank(items, now, self.config.urgency_high_hours, self.config.urgency_medium_hours)

    @requires_role()
    async def get_queue(
        self,
        acting_user: ActingUser,
        artist_id: Optional[UUID] = None,
        use_cache: bool = True,
    ) -> List[QueueItemModel]:
        """
        Ranked queue, optionally restricted to one artist.

        The unranked snapshot may come from the queue cache; hold resolution
        and ranking always happen against the current time.
        """
        request = parse_request(QueueRequest, artist_id=artist_id)
        cache = self.queue_cache if use_cache else None

        items = await cache.get(request.artist_id) if cache is not None else None
        if items is None:
            generation = cache.generation if cache is not None else None
            items = self._load_snapshot(request.artist_id)
            if cache is not None:
                await cache.set(request.artist_id, items, generation=generation)
        else:
            logger.debug(f"Queue snapshot served from cache ({len(items)} items)")

        return self._rank(items, self.clock())

    def _load_snapshot(self, artist_id: Optional[UUID]) -> List[QueueItemModel]:
        with self.db_config.get_session_context() as session:
            query = (
                session.query(Selection, FlightOption, Leg, Project, Artist, Passenger)
                .join(FlightOption, Selection.option_id == FlightOption.id)
                .join(Leg, Selection.leg_id == Leg.id)
                .join(Project, Leg.project_id == Project.id)
                .join(Artist, Project.artist_id == Artist.id)
                .join(Passenger, Selection.passenger_id == Passenger.id)
                .filter(
                    Selection.is_active.is_(True),
                    Selection.status.in_(QUEUE_STATUSES),
                )
            )
            if artist_id is not None:
                query = query.filter(Project.artist_id == artist_id)

            rows = query.all()
            if not rows:
                return []

            option_ids = {selection.option_id for selection, *_ in rows}
            passenger_ids = {selection.passenger_id for selection, *_ in rows}

            holds_by_pair: Dict[Tuple[UUID, UUID], List[HoldModel]] = defaultdict(list)
            holds = (
                session.query(Hold)
                .filter(Hold.option_id.in_(option_ids), Hold.passenger_id.in_(passenger_ids))
                .all()
            )
            for hold in holds:
                holds_by_pair[(hold.option_id, hold.passenger_id)].append(HoldModel.model_validate(hold))

            ticketed: Set[Tuple[UUID, UUID]] = {
                (leg_id, passenger_id)
                for leg_id, passenger_id in session.query(PNR.leg_id, PNR.passenger_id)
                .filter(PNR.passenger_id.in_(passenger_ids))
                .distinct()
            }

            items = [
                QueueItemModel(
                    selection_id=selection.id,
                    status=selection.status,
                    created_at=selection.created_at,
                    updated_at=selection.updated_at,
                    passenger_id=passenger.id,
                    passenger_name=passenger.full_name,
                    booking_unit_id=selection.booking_unit_id,
                    option_id=option.id,
                    option_name=option.name,
                    option_price=option.total_price,
                    option_currency=option.currency,
                    leg_id=leg.id,
                    leg_label=leg.label,
                    origin_city=leg.origin_city,
                    destination_city=leg.destination_city,
                    departure_date=leg.departure_date,
                    project_id=project.id,
                    project_name=project.name,
                    artist_id=artist.id,
                    artist_name=artist.name,
                    holds=holds_by_pair[(option.id, passenger.id)],
                    is_ticketed=(leg.id, passenger.id) in ticketed,
                )
                for selection, option, leg, project, artist, passenger in rows
            ]

        logger.debug(f"Loaded queue snapshot with {len(items)} items")
        return items

    @requires_role()
    async def get_queue_stats(self, acting_user: ActingUser) -> QueueStatsModel:
        """Counts of active selections by status and of queue items by urgency."""
        with self.db_config.get_session_context() as session:
            counts = dict(
                session.query(Selection.status, func.count(Selection.id))
                .filter(
                    Selection.is_active.is_(True),
                    Selection.status != SelectionStatus.CANCELLED,
                )
                .group_by(Selection.status)
                .all()
            )

        items = await self.get_queue(acting_user)
        urgency_counts = Counter(item.urgency for item in items)

        return QueueStatsModel(
            total=sum(counts.values()),
            pending=counts.get(SelectionStatus.PENDING, 0),
            held=counts.get(SelectionStatus.HELD, 0),
            ticketed=counts.get(SelectionStatus.TICKETED, 0),
            by_urgency={urgency: urgency_counts.get(urgency, 0) for urgency in HoldUrgency},
            generated_at=self.clock(),
        )
