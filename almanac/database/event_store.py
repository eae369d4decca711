"""Event store: CRUD and filtered listing for one language variant."""

import logging
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import Session, select

from almanac.database.models import Event, EventCreate, EventFilter, EventUpdate
from almanac.database.tag_store import tag_clause
from almanac.errors import NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)


def _check_new_event(data: EventCreate) -> None:
    """Reject records missing a title or a real date."""
    if not data.title.strip():
        raise ValidationError("Event title is required")
    if data.date == date.min:
        raise ValidationError("Event date is required")


def _check_changes(changes: dict[str, Any]) -> None:
    """Reject a field mask that would clear a required field."""
    if "title" in changes and (changes["title"] is None or not changes["title"].strip()):
        raise ValidationError("Event title cannot be empty")
    if "date" in changes and changes["date"] is None:
        raise ValidationError("Event date cannot be empty")


def _conditions(filters: EventFilter) -> list:
    """Translate normalized filters into SQL WHERE clauses (ANDed together)."""
    conditions = []
    if filters.year is not None:
        conditions.append(func.strftime("%Y", Event.date) == filters.year)
    if filters.month is not None:
        conditions.append(func.strftime("%m", Event.date) == filters.month)
    if filters.day is not None:
        conditions.append(func.strftime("%d", Event.date) == filters.day)
    if filters.tag is not None:
        conditions.append(tag_clause(filters.tag))
    return conditions


class EventStore:
    """Manages Event records: creation, lookup, partial update, deletion and listing.

    Every write goes through the events table; the search index follows via
    triggers inside the same statement, so a failed index update rolls the
    whole write back.
    """

    def __init__(self, engine):
        self.engine = engine

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    def create(self, data: EventCreate) -> Event:
        """Insert a new event and return it with its assigned id and timestamps."""
        _check_new_event(data)
        try:
            with self._session() as session:
                event = Event(**data.model_dump())
                session.add(event)
                session.commit()
                session.refresh(event)
        except SQLAlchemyError as e:
            logger.error("Failed to create event: %s", e)
            raise StorageError(f"Failed to create event: {e}") from e
        logger.debug("Created event %s: %s", event.id, event.title[:50])
        return event

    def create_many(self, records: list[EventCreate]) -> list[Event]:
        """Insert several events in one transaction; any invalid record aborts the batch."""
        for data in records:
            _check_new_event(data)
        if not records:
            return []
        try:
            with self._session() as session:
                events = [Event(**data.model_dump()) for data in records]
                session.add_all(events)
                session.commit()
                for event in events:
                    session.refresh(event)
        except SQLAlchemyError as e:
            logger.error("Failed to create %d events: %s", len(records), e)
            raise StorageError(f"Failed to create events: {e}") from e
        logger.info("Created %d events", len(events))
        return events

    def get(self, event_id: int) -> Event:
        """Get an event by ID."""
        try:
            with self._session() as session:
                event = session.get(Event, event_id)
        except SQLAlchemyError as e:
            logger.error("Failed to retrieve event %d: %s", event_id, e)
            raise StorageError(f"Failed to retrieve event: {e}") from e
        if event is None:
            raise NotFoundError(event_id)
        return event

    def update(self, event_id: int, changes: EventUpdate) -> Event:
        """Apply the fields set on ``changes`` and refresh ``updated_at``."""
        values = changes.changes()
        _check_changes(values)
        statement = (
            update(Event)
            .where(Event.id == event_id)  # type: ignore[arg-type]
            .values(**values, updated_at=datetime.now(UTC))
        )
        try:
            # Write first so the lock is held before anything is read back
            with self.engine.begin() as conn:
                if conn.execute(statement).rowcount == 0:
                    raise NotFoundError(event_id)
        except SQLAlchemyError as e:
            logger.error("Failed to update event %d: %s", event_id, e)
            raise StorageError(f"Failed to update event: {e}") from e
        logger.debug("Updated event %d fields: %s", event_id, sorted(values))
        return self.get(event_id)

    def delete(self, event_id: int) -> None:
        """Delete an event by ID."""
        try:
            with self._session() as session:
                event = session.get(Event, event_id)
                if event is None:
                    raise NotFoundError(event_id)
                session.delete(event)
                session.commit()
        except StaleDataError as e:
            raise NotFoundError(event_id) from e
        except SQLAlchemyError as e:
            logger.error("Failed to delete event %d: %s", event_id, e)
            raise StorageError(f"Failed to delete event: {e}") from e
        logger.info("Deleted event %d", event_id)

    def count_matching(self, filters: EventFilter) -> int:
        """Count events matching every set filter."""
        try:
            with self._session() as session:
                return session.exec(
                    select(func.count()).select_from(Event).where(*_conditions(filters))
                ).one()
        except SQLAlchemyError as e:
            logger.error("Failed to count events: %s", e)
            raise StorageError(f"Failed to count events: {e}") from e

    def list_matching(self, filters: EventFilter, limit: int, offset: int) -> list[Event]:
        """List matching events, newest date first (id breaks ties so paging is stable)."""
        try:
            with self._session() as session:
                return list(
                    session.exec(
                        select(Event)
                        .where(*_conditions(filters))
                        .order_by(Event.date.desc(), Event.id.desc())  # type: ignore[union-attr]
                        .limit(limit)
                        .offset(offset)
                    ).all()
                )
        except SQLAlchemyError as e:
            logger.error("Failed to retrieve events: %s", e)
            raise StorageError(f"Failed to retrieve events: {e}") from e
