"""
Database package for the booking core.

This package provides SQLAlchemy models and database configuration.
"""

from .models import (
    Base,
    Artist,
    Project,
    Leg,
    Passenger,
    LegPassenger,
    FlightOption,
    OptionComponent,
    BookingUnit,
    BookingUnitMember,
    Selection,
    Hold,
    PNR,
    NotificationEvent,
    create_all_tables,
    drop_all_tables,
)

from .config import (
    DatabaseConfig,
    get_database_config,
    initialize_database,
    build_database_url,
)

__all__ = [
    # Models
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

    # Configuration
    'DatabaseConfig',
    'get_database_config',
    'initialize_database',
    'build_database_url',
]
