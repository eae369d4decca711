"""Event storage: SQLite events table, FTS5 search index and tag aggregation."""

from almanac.database.database import Database
from almanac.database.models import Event, EventCreate, EventFilter, EventUpdate, TagCount

__all__ = [
    "Database",
    "Event",
    "EventCreate",
    "EventFilter",
    "EventUpdate",
    "TagCount",
]
