"""Search index: FTS5 full-text index kept in lockstep with the events table.

The index lives in the ``events_fts`` virtual table, keyed by rowid = event id.
Three triggers on ``events`` maintain it inside the same statement as the
table write, so table and index commit (or roll back) together:

- after insert: index the new row
- after update: drop the old entry, index the new text under the same id
- after delete: drop the entry
"""

import logging
from collections.abc import Iterator

from sqlalchemy import column, func, select, table, text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from almanac.constants import EVENTS_FTS_TABLE
from almanac.database.models import Event, RankedEvent, SearchHit
from almanac.errors import StorageError

logger = logging.getLogger(__name__)

_CREATE_FTS_SQL = f"""
CREATE VIRTUAL TABLE IF NOT EXISTS {EVENTS_FTS_TABLE}
USING fts5(title, description, tags)
"""

_CREATE_TRIGGERS_SQL = (
    f"""
    CREATE TRIGGER IF NOT EXISTS events_fts_ai AFTER INSERT ON events BEGIN
        INSERT INTO {EVENTS_FTS_TABLE} (rowid, title, description, tags)
        VALUES (new.id, new.title, new.description, new.tags);
    END
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS events_fts_au AFTER UPDATE ON events BEGIN
        DELETE FROM {EVENTS_FTS_TABLE} WHERE rowid = old.id;
        INSERT INTO {EVENTS_FTS_TABLE} (rowid, title, description, tags)
        VALUES (new.id, new.title, new.description, new.tags);
    END
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS events_fts_ad AFTER DELETE ON events BEGIN
        DELETE FROM {EVENTS_FTS_TABLE} WHERE rowid = old.id;
    END
    """,
)

_BACKFILL_SQL = f"""
INSERT INTO {EVENTS_FTS_TABLE} (rowid, title, description, tags)
SELECT id, title, description, tags FROM events
"""

_fts = table(EVENTS_FTS_TABLE, column("rowid"), column("rank"))


def to_match_expression(query: str) -> str:
    """Turn free user text into an FTS5 query with no operators.

    Each whitespace-separated word becomes a quoted string (embedded quotes
    doubled), so ``AND``, ``NEAR``, ``*``, ``-`` and ``column:`` lose their
    meaning. Words are combined with FTS5's implicit AND.
    """
    return " ".join('"' + word.replace('"', '""') + '"' for word in query.split())


def _match(expression: str):
    return text(f"{EVENTS_FTS_TABLE} MATCH :expression").bindparams(expression=expression)


def _has_rows(conn, column) -> bool:
    return conn.execute(select(column).limit(1)).first() is not None


class SearchIndex:
    """Full-text search over event title, description and tags."""

    def __init__(self, engine):
        self.engine = engine

    def ensure_schema(self) -> None:
        """Create the FTS5 table and its sync triggers. Safe to run on every startup."""
        try:
            with self.engine.begin() as conn:
                conn.exec_driver_sql(_CREATE_FTS_SQL)
                for statement in _CREATE_TRIGGERS_SQL:
                    conn.exec_driver_sql(statement)
        except SQLAlchemyError as e:
            logger.error("Failed to create search index: %s", e)
            raise StorageError(f"Failed to create search index: {e}") from e

    def is_empty(self) -> bool:
        """Whether the index holds no entries at all."""
        try:
            with self.engine.connect() as conn:
                return not _has_rows(conn, _fts.c.rowid)
        except SQLAlchemyError as e:
            logger.error("Failed to inspect search index: %s", e)
            raise StorageError(f"Failed to inspect search index: {e}") from e

    def backfill(self) -> int:
        """Index every existing event if the table has rows but the index has none.

        Heals databases created before the index existed. Returns the number
        of events indexed (0 when nothing needed doing).
        """
        try:
            with self.engine.begin() as conn:
                if not _has_rows(conn, Event.id) or _has_rows(conn, _fts.c.rowid):
                    return 0
                count = conn.exec_driver_sql(_BACKFILL_SQL).rowcount
        except SQLAlchemyError as e:
            logger.error("Search index backfill failed: %s", e)
            raise StorageError(f"Failed to backfill search index: {e}") from e
        logger.info("Backfilled search index with %d event(s)", count)
        return count

    def search(self, query: str) -> Iterator[SearchHit]:
        """Yield matching event ids, best match first (ties broken by id ascending).

        The generator holds a pooled connection until it is exhausted or
        closed; callers that stop early should close it (``contextlib.closing``).
        """
        expression = to_match_expression(query)
        if not expression:
            return
        statement = (
            select(_fts.c.rowid, _fts.c.rank)
            .where(_match(expression))
            .order_by(_fts.c.rank, _fts.c.rowid)
        )
        try:
            with self.engine.connect() as conn:
                for event_id, rank in conn.execute(statement):
                    yield SearchHit(id=event_id, rank=rank)
        except SQLAlchemyError as e:
            logger.error("Search failed for %r: %s", query, e)
            raise StorageError(f"Failed to search events: {e}") from e

    def count(self, query: str) -> int:
        """Count events matching the query."""
        expression = to_match_expression(query)
        if not expression:
            return 0
        try:
            with self.engine.connect() as conn:
                return conn.execute(
                    select(func.count()).select_from(_fts).where(_match(expression))
                ).scalar_one()
        except SQLAlchemyError as e:
            logger.error("Search count failed for %r: %s", query, e)
            raise StorageError(f"Failed to count search results: {e}") from e

    def search_events(self, query: str, limit: int, offset: int) -> list[RankedEvent]:
        """Return one page of matching events with their rank, best match first.

        Events and ranks come from a single joined query, so a row deleted by a
        concurrent writer is either fully present or absent.
        """
        expression = to_match_expression(query)
        if not expression:
            return []
        statement = (
            select(Event, _fts.c.rank)
            .select_from(_fts)
            .join(Event, Event.id == _fts.c.rowid)
            .where(_match(expression))
            .order_by(_fts.c.rank, Event.id)
            .limit(limit)
            .offset(offset)
        )
        try:
            with Session(self.engine) as session:
                rows = session.exec(statement).all()  # type: ignore[call-overload]
        except SQLAlchemyError as e:
            logger.error("Search failed for %r: %s", query, e)
            raise StorageError(f"Failed to search events: {e}") from e
        return [RankedEvent(event=event, rank=rank) for event, rank in rows]
