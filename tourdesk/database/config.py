"""
Engine and session management for the booking store.

SQLite is the default (a file in the working directory, or ``sqlite://`` for
an in-memory store); MySQL/MariaDB and PostgreSQL are selected through
``DATABASE_URL`` or the ``DB_*`` variables. The store's unique constraints
are what keep selections, holds and PNRs consistent, so every unit of work
runs in one session that either commits completely or rolls back.
"""

import os
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .models import create_all_tables

logger = logging.getLogger(__name__)

# Server dialects: URL scheme, default port, default user
SERVER_DIALECTS = {
    "mysql": ("mysql+pymysql", "3306", "root"),
    "mariadb": ("mysql+pymysql", "3306", "root"),
    "postgresql": ("postgresql", "5432", "postgres"),
}

DEFAULT_DB_NAME = "tourdesk"


def build_database_url(env: Mapping[str, str] = os.environ) -> str:
    """
    Database URL from ``DATABASE_URL``, or assembled from ``DB_TYPE``,
    ``DB_HOST``, ``DB_PORT``, ``DB_NAME``, ``DB_USER`` and ``DB_PASSWORD``.

    Raises:
        ValueError: For a ``DB_TYPE`` other than sqlite, mysql, mariadb or postgresql
    """
    if env.get("DATABASE_URL"):
        return env["DATABASE_URL"]

    db_type = env.get("DB_TYPE", "sqlite").lower()
    if db_type == "sqlite":
        return f"sqlite:///{Path.cwd() / env.get('DB_NAME', f'{DEFAULT_DB_NAME}.db')}"

    if db_type not in SERVER_DIALECTS:
        raise ValueError(f"Unsupported database type: {db_type}")

    scheme, default_port, default_user = SERVER_DIALECTS[db_type]
    url = (
        f"{scheme}://{env.get('DB_USER', default_user)}:{env.get('DB_PASSWORD', '')}"
        f"@{env.get('DB_HOST', 'localhost')}:{env.get('DB_PORT', default_port)}"
        f"/{env.get('DB_NAME', DEFAULT_DB_NAME)}"
    )
    if scheme.startswith("mysql"):
        url += "?charset=utf8mb4"
    return url


def redact_url(database_url: str) -> str:
    """URL safe to log: the password is masked."""
    try:
        return make_url(database_url).render_as_string(hide_password=True)
    except ArgumentError:
        return database_url.rsplit("@", 1)[-1]


class DatabaseConfig:
    """
    Owns the engine and session factory for one database.

    Services hold a reference and open one session per operation with
    ``get_session_context``.
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        self.database_url = database_url or build_database_url()
        self.echo = echo
        self.db_type = self.database_url.split(":", 1)[0].split("+", 1)[0]
        if self.db_type not in ("sqlite", "mysql", "postgresql"):
            self.db_type = "unknown"
        self.engine_kwargs = self._engine_kwargs()

        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None

        logger.info(f"Database configured: {redact_url(self.database_url)}")

    @property
    def is_initialized(self) -> bool:
        return self.SessionLocal is not None

    def _engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": self.echo}

        if self.db_type == "sqlite":
            # One shared connection keeps in-memory databases alive across sessions
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        elif self.db_type != "unknown":
            kwargs.update(
                poolclass=QueuePool,
                pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
                max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "20")),
                pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", "30")),
                pool_recycle=int(os.getenv("DB_POOL_RECYCLE", "3600")),
                pool_pre_ping=True,
            )

        return kwargs

    def initialize(self) -> None:
        """
        Create the engine and check it with ``SELECT 1``.

        Raises:
            SQLAlchemyError: If the database is unreachable
        """
        if self.is_initialized:
            return

        engine = create_engine(self.database_url, **self.engine_kwargs)
        if self.db_type == "sqlite":
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            engine.dispose()
            logger.error(f"Cannot reach {redact_url(self.database_url)}: {e}")
            raise

        self.engine = engine
        self.SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        logger.info(f"Database engine ready ({self.db_type})")

    def create_tables(self) -> None:
        """Create missing tables and indexes."""
        self.initialize()
        create_all_tables(self.engine)
        logger.info("Booking tables created")

    def get_session(self) -> Session:
        self.initialize()
        return self.SessionLocal()

    @contextmanager
    def get_session_context(self) -> Iterator[Session]:
        """
        One unit of work: commit when the block finishes, roll back otherwise.

        Usage:
            with db_config.get_session_context() as session:
                session.add(...)

        Constraint violations are logged as warnings and other store errors as
        errors; domain errors roll back and propagate without logging.
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            if isinstance(e, IntegrityError):
                logger.warning(f"Constraint violation: {e.orig}")
            elif isinstance(e, SQLAlchemyError):
                logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def test_connection(self) -> bool:
        """True when ``SELECT 1`` succeeds."""
        try:
            self.initialize()
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Database connection test failed: {e}")
            return False
        return True

    def get_connection_info(self) -> Dict[str, Any]:
        return {
            "database_type": self.db_type,
            "database_url": redact_url(self.database_url),
            "is_initialized": self.is_initialized,
            "echo_enabled": self.echo,
        }

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            self.SessionLocal = None
            logger.info("Database connections closed")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


_db_config: Optional[DatabaseConfig] = None


def get_database_config(database_url: Optional[str] = None, echo: bool = False) -> DatabaseConfig:
    """Shared DatabaseConfig, created on first call."""
    global _db_config

    if _db_config is None:
        _db_config = DatabaseConfig(database_url=database_url, echo=echo)
    return _db_config


def initialize_database(
    database_url: Optional[str] = None,
    echo: bool = False,
    create_tables: bool = True,
) -> DatabaseConfig:
    """Initialize the shared DatabaseConfig and, by default, create its tables."""
    db_config = get_database_config(database_url=database_url, echo=echo)
    db_config.initialize()
    if create_tables:
        db_config.create_tables()
    return db_config


__all__ = [
    "DatabaseConfig",
    "build_database_url",
    "get_database_config",
    "initialize_database",
]
