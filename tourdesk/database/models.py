"""
SQLAlchemy database models for the booking core.

This module defines the tables behind the selection, hold and ticketing
lifecycle:
- Artist, Project, Leg: the tour structure a leg belongs to
- Passenger, LegPassenger: tour personnel and their per-leg assignments
- FlightOption, OptionComponent: priced proposals for a leg and their segments
- BookingUnit, BookingUnitMember: derived individual/group choosing units
- Selection: a passenger's current choice of option for a leg
- Hold: time-boxed promise on an (option, passenger) pair
- PNR: ticketing record, unique per (passenger, code)
- NotificationEvent: outbox of notification requests
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship, validates

from ..models.enums import (
    BookingUnitKind,
    NotificationSeverity,
    NotificationType,
    SelectionStatus,
)

Base = declarative_base()


def _enum_column(enum_cls, name: str) -> SAEnum:
    """Store enum values (not member names) as portable VARCHARs."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )


class Artist(Base):
    """Artist whose touring party is being booked."""
    __tablename__ = 'artists'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    projects = relationship("Project", back_populates="artist", lazy="select")

    def __repr__(self):
        return f"<Artist(id={self.id}, name='{self.name}')>"


class Project(Base):
    """Tour or event owned by an artist."""
    __tablename__ = 'projects'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    artist_id = Column(Uuid, ForeignKey('artists.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    artist = relationship("Artist", back_populates="projects", lazy="select")
    legs = relationship("Leg", back_populates="project", lazy="select")

    def __repr__(self):
        return f"<Project(id={self.id}, name='{self.name}')>"


class Leg(Base):
    """
    One point-to-point travel segment within a project.

    ``departure_date`` is optional; the queue sorts legs without one last.
    """
    __tablename__ = 'legs'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    label = Column(String(200), nullable=True)
    origin_city = Column(String(100), nullable=True)
    destination_city = Column(String(100), nullable=True)
    departure_date = Column(Date, nullable=True, index=True)
    leg_order = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    project = relationship("Project", back_populates="legs", lazy="select")
    assignments = relationship("LegPassenger", back_populates="leg", lazy="select")
    options = relationship("FlightOption", back_populates="leg", lazy="select")

    def __repr__(self):
        return f"<Leg(id={self.id}, {self.origin_city} -> {self.destination_city})>"


class Passenger(Base):
    """Tour personnel member who can be assigned to legs."""
    __tablename__ = 'passengers'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    full_name = Column(String(200), nullable=False)
    email = Column(String(200), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    def __repr__(self):
        return f"<Passenger(id={self.id}, name='{self.full_name}')>"


class LegPassenger(Base):
    """Assignment of a passenger to a leg."""
    __tablename__ = 'leg_passengers'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    leg_id = Column(Uuid, ForeignKey('legs.id', ondelete='CASCADE'), nullable=False, index=True)
    passenger_id = Column(Uuid, ForeignKey('passengers.id', ondelete='CASCADE'), nullable=False, index=True)
    treat_as_individual = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    leg = relationship("Leg", back_populates="assignments", lazy="select")
    passenger = relationship("Passenger", lazy="joined")

    __table_args__ = (
        UniqueConstraint('leg_id', 'passenger_id', name='uq_leg_passenger'),
    )


class FlightOption(Base):
    """Priced flight proposal for a leg."""
    __tablename__ = 'flight_options'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    leg_id = Column(Uuid, ForeignKey('legs.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    total_price = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(3), nullable=False, default='USD')
    is_recommended = Column(Boolean, nullable=False, default=False)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    leg = relationship("Leg", back_populates="options", lazy="select")
    components = relationship(
        "OptionComponent",
        back_populates="option",
        order_by="OptionComponent.component_order",
        lazy="select",
    )

    def __repr__(self):
        return f"<FlightOption(id={self.id}, name='{self.name}', price={self.total_price})>"


class OptionComponent(Base):
    """One flight segment of an option, in travel order."""
    __tablename__ = 'option_components'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    option_id = Column(Uuid, ForeignKey('flight_options.id', ondelete='CASCADE'), nullable=False, index=True)
    component_order = Column(Integer, nullable=False, default=1)
    airline = Column(String(64), nullable=True)
    flight_number = Column(String(16), nullable=True)
    departure_airport = Column(String(3), nullable=True)
    arrival_airport = Column(String(3), nullable=True)
    departure_time = Column(DateTime, nullable=True)
    arrival_time = Column(DateTime, nullable=True)
    source_text = Column(Text, nullable=True)  # Raw pasted itinerary block

    option = relationship("FlightOption", back_populates="components", lazy="select")


class BookingUnit(Base):
    """
    Individual or group set of passengers that chooses as one unit.

    Rows are replaced wholesale every time units are derived for a leg.
    """
    __tablename__ = 'booking_units'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    leg_id = Column(Uuid, ForeignKey('legs.id', ondelete='CASCADE'), nullable=False, index=True)
    kind = Column(_enum_column(BookingUnitKind, 'booking_unit_kind'), nullable=False)
    label = Column(String(300), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    members = relationship(
        "BookingUnitMember",
        back_populates="unit",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def passenger_ids(self):
        return [member.passenger_id for member in self.members]

    def __repr__(self):
        return f"<BookingUnit(id={self.id}, kind='{self.kind}', members={len(self.members)})>"


class BookingUnitMember(Base):
    __tablename__ = 'booking_unit_members'

    unit_id = Column(Uuid, ForeignKey('booking_units.id', ondelete='CASCADE'), primary_key=True)
    passenger_id = Column(Uuid, ForeignKey('passengers.id', ondelete='CASCADE'), primary_key=True)

    unit = relationship("BookingUnit", back_populates="members", lazy="select")


class Selection(Base):
    """
    A passenger's choice of flight option for a leg.

    At most one active selection exists per (passenger, leg). ``active_key``
    mirrors ``is_active`` as TRUE or NULL, and the unique index on
    (passenger, leg, active_key) makes every supported store enforce it
    without a partial index.
    """
    __tablename__ = 'selections'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    passenger_id = Column(Uuid, ForeignKey('passengers.id', ondelete='CASCADE'), nullable=False, index=True)
    leg_id = Column(Uuid, ForeignKey('legs.id', ondelete='CASCADE'), nullable=False, index=True)
    option_id = Column(Uuid, ForeignKey('flight_options.id', ondelete='CASCADE'), nullable=False, index=True)
    booking_unit_id = Column(Uuid, ForeignKey('booking_units.id', ondelete='SET NULL'), nullable=True)
    status = Column(
        _enum_column(SelectionStatus, 'selection_status'),
        nullable=False,
        default=SelectionStatus.PENDING,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    active_key = Column(Boolean, nullable=True, default=True)
    selected_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    option = relationship("FlightOption", lazy="select")
    leg = relationship("Leg", lazy="select")
    passenger = relationship("Passenger", lazy="select")

    @validates("is_active")
    def _sync_active_key(self, key, value):
        self.active_key = True if value else None
        return value

    def __repr__(self):
        return f"<Selection(id={self.id}, passenger={self.passenger_id}, status='{self.status}')>"


class Hold(Base):
    """
    Time-boxed hold on an (option, passenger) pair.

    No uniqueness constraint: every placement inserts a new row and expired
    rows stay behind, inert.
    """
    __tablename__ = 'holds'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    option_id = Column(Uuid, ForeignKey('flight_options.id', ondelete='CASCADE'), nullable=False, index=True)
    passenger_id = Column(Uuid, ForeignKey('passengers.id', ondelete='CASCADE'), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_by = Column(Uuid, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (
        CheckConstraint('expires_at > created_at', name='ck_hold_expires_after_created'),
    )

    def __repr__(self):
        return f"<Hold(id={self.id}, option={self.option_id}, expires_at={self.expires_at})>"


class PNR(Base):
    """
    Ticketing record for one passenger.

    Unique on (passenger_id, code): concurrent duplicate ticketing is
    rejected by the store, never by an application lock.
    """
    __tablename__ = 'pnrs'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    passenger_id = Column(Uuid, ForeignKey('passengers.id', ondelete='CASCADE'), nullable=False, index=True)
    option_id = Column(Uuid, ForeignKey('flight_options.id'), nullable=False, index=True)
    leg_id = Column(Uuid, ForeignKey('legs.id'), nullable=False, index=True)
    code = Column(String(6), nullable=False)
    price_paid = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default='USD')
    ticketed_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (
        UniqueConstraint('passenger_id', 'code', name='uq_pnr_passenger_code'),
    )

    def __repr__(self):
        return f"<PNR(id={self.id}, passenger={self.passenger_id}, code='{self.code}')>"


class NotificationEvent(Base):
    """Outbox row for a notification request; delivered by another service."""
    __tablename__ = 'notification_events'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    type = Column(_enum_column(NotificationType, 'notification_type'), nullable=False)
    severity = Column(
        _enum_column(NotificationSeverity, 'notification_severity'),
        nullable=False,
        default=NotificationSeverity.INFO,
    )
    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=True)
    leg_id = Column(Uuid, nullable=True, index=True)
    project_id = Column(Uuid, nullable=True)
    artist_id = Column(Uuid, nullable=True, index=True)
    actor_user_id = Column(Uuid, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


# Composite indexes for queue and ledger lookups
Index('idx_hold_option_passenger', Hold.option_id, Hold.passenger_id, Hold.created_at)
Index('idx_pnr_leg_passenger', PNR.leg_id, PNR.passenger_id)
Index('idx_booking_unit_leg_kind', BookingUnit.leg_id, BookingUnit.kind)
# NULL never equals NULL, so only one row per pair can carry active_key
Index(
    'uq_selection_active_passenger_leg',
    Selection.passenger_id,
    Selection.leg_id,
    Selection.active_key,
    unique=True,
)


def create_all_tables(engine):
    """
    Create all database tables using the provided SQLAlchemy engine.

    Args:
        engine: SQLAlchemy engine instance
    """
    Base.metadata.create_all(bind=engine)


def drop_all_tables(engine):
    """
    Drop all database tables using the provided SQLAlchemy engine.

    Args:
        engine: SQLAlchemy engine instance
    """
    Base.metadata.drop_all(bind=engine)


__all__ = [
    'Base',
    'Artist',
    'Project',
    'Leg',
    'Passenger',
    'LegPassenger',
    'FlightOption',
    'OptionComponent',
    'BookingUnit',
    'BookingUnitMember',
    'Selection',
    'Hold',
    'PNR',
    'NotificationEvent',
    'create_all_tables',
    'drop_all_tables',
]
