"""Event catalog: routes every operation to the language variant it names."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from almanac.constants import Language
from almanac.database import Database, Event, EventCreate, EventUpdate, TagCount
from almanac.database.models import EventPage, SearchPage
from almanac.errors import StorageError, ValidationError
from almanac.query import Param, QueryEngine, parse_event_id

if TYPE_CHECKING:
    from almanac.config import Config

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def resolve_language(code: str | None) -> Language:
    """``"ru"`` in any case selects Russian; everything else falls back to English."""
    if code is not None and code.lower() == Language.RU:
        return Language.RU
    return Language.EN


def _coerce(model: type[M], data: M | Mapping[str, Any]) -> M:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model.__name__}: {e}") from e


class EventCatalog:
    """Both language variants behind one interface.

    Holds nothing but the read-only Language -> Database mapping, so a single
    instance can be shared by every request thread.
    """

    def __init__(self, databases: Mapping[Language, Database]):
        self.databases = MappingProxyType(dict(databases))
        self._engines = MappingProxyType(
            {language: QueryEngine(db, language) for language, db in self.databases.items()}
        )

    @classmethod
    def open(cls, config: Config) -> EventCatalog:
        """Open every configured variant. Raises StorageError if any of them fails."""
        opened: dict[Language, Database] = {}
        try:
            for language, path in config.db_paths().items():
                logger.info("Opening %s database at %s", language, path)
                opened[language] = Database.open(path, config.busy_timeout_ms)
        except StorageError:
            for db in opened.values():
                db.dispose()
            raise
        return cls(opened)

    def close(self) -> None:
        for db in self.databases.values():
            db.dispose()

    def query(self, language: str | None) -> QueryEngine:
        return self._engines[resolve_language(language)]

    def _db(self, language: str | None) -> Database:
        return self.databases[resolve_language(language)]

    # --- reads ---

    def list_events(
        self,
        language: str | None,
        year: Param = None,
        month: Param = None,
        day: Param = None,
        page: Param = None,
        page_size: Param = None,
    ) -> EventPage:
        return self.query(language).list_events(year, month, day, page, page_size)

    def get_event(self, language: str | None, event_id: Param) -> Event:
        return self.query(language).get_event(event_id)

    def list_tags(self, language: str | None) -> list[TagCount]:
        return self.query(language).list_tags()

    def list_events_by_tag(
        self, language: str | None, tag: str | None, page: Param = None, page_size: Param = None
    ) -> EventPage:
        return self.query(language).list_events_by_tag(tag, page, page_size)

    def search_events(
        self, language: str | None, query: str | None, page: Param = None, page_size: Param = None
    ) -> SearchPage:
        return self.query(language).search_events(query, page, page_size)

    # --- writes ---

    def create_event(self, language: str | None, data: EventCreate | Mapping[str, Any]) -> Event:
        event = self._db(language).events.create(_coerce(EventCreate, data))
        logger.info("create_event: id %s, lang '%s'", event.id, resolve_language(language))
        return event

    def batch_create_events(
        self, language: str | None, records: list[EventCreate | Mapping[str, Any]]
    ) -> list[Event]:
        """Create all records or none of them."""
        validated = [_coerce(EventCreate, data) for data in records]
        events = self._db(language).events.create_many(validated)
        logger.info(
            "batch_create_events: created %d event(s), lang '%s'",
            len(events),
            resolve_language(language),
        )
        return events

    def update_event(
        self, language: str | None, event_id: Param, changes: EventUpdate | Mapping[str, Any]
    ) -> Event:
        """Apply only the fields present in ``changes``; the rest stay as stored."""
        event = self._db(language).events.update(
            parse_event_id(event_id), _coerce(EventUpdate, changes)
        )
        logger.info("update_event: id %s, lang '%s'", event.id, resolve_language(language))
        return event

    def delete_event(self, language: str | None, event_id: Param) -> None:
        parsed = parse_event_id(event_id)
        self._db(language).events.delete(parsed)
        logger.info("delete_event: id %d, lang '%s'", parsed, resolve_language(language))
