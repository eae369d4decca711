"""Database connection and store wiring for one language variant."""

import logging
import sqlite3
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, create_engine

from almanac.constants import DEFAULT_BUSY_TIMEOUT_MS
from almanac.database.event_store import EventStore
from almanac.database.migrate import migrate
from almanac.database.models import Event
from almanac.database.search_index import SearchIndex
from almanac.database.tag_store import TagStore
from almanac.errors import StorageError

logger = logging.getLogger(__name__)


def _unicode_lower(value):
    """SQL ``unicode_lower(x)``: SQLite's own LOWER() folds ASCII letters only."""
    return value.lower() if isinstance(value, str) else value


class Database:
    """SQLite database holding one variant's events table and its search index."""

    def __init__(self, db_path: str, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file
            busy_timeout_ms: How long a statement waits on another writer's lock
        """
        self.db_path = db_path
        self.busy_timeout_ms = busy_timeout_ms

        # Ensure directory exists
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        # Pooled connections are shared across request threads
        self.engine = create_engine(
            f"sqlite:///{db_path}",
            connect_args={"check_same_thread": False},
        )
        event.listen(self.engine, "connect", self._configure_connection)

        self.events = EventStore(self.engine)
        self.search = SearchIndex(self.engine)
        self.tags = TagStore(self.engine)

        logger.info("Database initialized: %s", db_path)

    @classmethod
    def open(cls, db_path: str, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> "Database":
        """Open a variant: run migrations, create tables and backfill the search index.

        Raises StorageError if any step fails; the caller treats that as fatal.
        """
        try:
            db = cls(db_path, busy_timeout_ms)
        except OSError as e:
            raise StorageError(f"Failed to prepare database path {db_path}: {e}") from e

        try:
            migrate(db_path)
        except (sqlite3.Error, ValueError) as e:
            db.dispose()
            raise StorageError(f"Failed to migrate {db_path}: {e}") from e

        try:
            db.create_tables()
            db.search.backfill()
        except StorageError:
            db.dispose()
            raise
        return db

    def _configure_connection(self, dbapi_connection, _connection_record) -> None:
        """Per-connection setup: WAL journaling, lock wait, and helper SQL functions."""
        dbapi_connection.create_function("unicode_lower", 1, _unicode_lower, deterministic=True)
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()

    def create_tables(self) -> None:
        """Create the events table, its indexes and the synchronized search index."""
        try:
            SQLModel.metadata.create_all(self.engine, tables=[Event.__table__])
        except SQLAlchemyError as e:
            logger.error("Failed to create tables in %s: %s", self.db_path, e)
            raise StorageError(f"Failed to create tables: {e}") from e
        self.search.ensure_schema()
        logger.info("Database tables created")

    def dispose(self) -> None:
        """Close all pooled connections."""
        self.engine.dispose()
