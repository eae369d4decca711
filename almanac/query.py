"""Query engine: filter parsing, pagination and ranked search for one variant.

Listing endpoints are permissive: a year/month/day value that
does not parse is dropped with a warning and the query runs without it.
Malformed ids, missing tags and empty search text are hard errors.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from almanac.constants import (
    DEFAULT_PAGE,
    DEFAULT_PAGE_SIZE,
    MAX_EVENT_ID,
    MAX_PAGINATION_VALUE,
    Language,
)
from almanac.database.models import (
    Event,
    EventFilter,
    EventPage,
    Pagination,
    SearchPage,
    TagCount,
)
from almanac.errors import ValidationError

if TYPE_CHECKING:
    from almanac.database import Database

logger = logging.getLogger(__name__)

_YEAR_PATTERN = re.compile(r"[0-9]{4}")
_DIGITS_PATTERN = re.compile(r"[0-9]+")

Param = str | int | None


def _is_missing(raw: Param) -> bool:
    return raw is None or raw == ""


def parse_year(raw: Param) -> str | None:
    """Four-digit year, or None (with a warning) when missing or malformed."""
    if _is_missing(raw):
        return None
    text = str(raw)
    if not _YEAR_PATTERN.fullmatch(text):
        logger.warning("Invalid year parameter format '%s'. Ignoring year filter.", raw)
        return None
    return text


def _parse_date_part(raw: Param, name: str, upper: int) -> str | None:
    if _is_missing(raw):
        return None
    text = str(raw)
    if not _DIGITS_PATTERN.fullmatch(text) or not 1 <= int(text) <= upper:
        logger.warning("Invalid %s parameter '%s'. Ignoring %s filter.", name, raw, name)
        return None
    return f"{int(text):02d}"


def parse_month(raw: Param) -> str | None:
    """Month 1-12 as two digits ("5" -> "05"), or None when missing or invalid."""
    return _parse_date_part(raw, "month", 12)


def parse_day(raw: Param) -> str | None:
    """Day 1-31 as two digits, or None when missing or invalid."""
    return _parse_date_part(raw, "day", 31)


def _parse_positive(raw: Param, name: str, default: int) -> int:
    if _is_missing(raw):
        return default
    try:
        value = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        value = 0
    if not 1 <= value <= MAX_PAGINATION_VALUE:
        logger.warning("Invalid %s parameter '%s'. Using default %d.", name, raw, default)
        return default
    return value


def parse_page(raw: Param) -> int:
    """1-based page number, or the default when missing, invalid or out of range."""
    return _parse_positive(raw, "page", DEFAULT_PAGE)


def parse_page_size(raw: Param) -> int:
    """Events per page, or the default when missing, invalid or out of range."""
    return _parse_positive(raw, "limit", DEFAULT_PAGE_SIZE)


def parse_event_id(raw: Param) -> int:
    """Parse a non-negative id within the unsigned 32-bit range.

    Raises ValidationError for an empty or malformed id; this is distinct
    from the NotFoundError raised later when a well-formed id is unknown.
    """
    if _is_missing(raw):
        raise ValidationError("Event ID is required")
    text = str(raw)
    if not _DIGITS_PATTERN.fullmatch(text) or int(text) > MAX_EVENT_ID:
        raise ValidationError("Invalid Event ID format")
    return int(text)


class QueryEngine:
    """Answers filtered, paginated and ranked queries against one variant's database."""

    def __init__(self, db: Database, language: Language = Language.EN):
        self.db = db
        self.language = language

    def _page(self, filters: EventFilter, page: int, page_size: int) -> EventPage:
        total = self.db.events.count_matching(filters)
        events = self.db.events.list_matching(
            filters, limit=page_size, offset=(page - 1) * page_size
        )
        return EventPage(events=events, pagination=Pagination.build(page, page_size, total))

    def list_events(
        self,
        year: Param = None,
        month: Param = None,
        day: Param = None,
        page: Param = None,
        page_size: Param = None,
    ) -> EventPage:
        """List events newest first, optionally narrowed by date components."""
        logger.info(
            "list_events: lang '%s', page '%s', limit '%s', year '%s', month '%s', day '%s'",
            self.language,
            page,
            page_size,
            year,
            month,
            day,
        )
        filters = EventFilter(year=parse_year(year), month=parse_month(month), day=parse_day(day))
        result = self._page(filters, parse_page(page), parse_page_size(page_size))
        logger.info(
            "list_events: retrieved %d event(s), lang '%s', total matching %d",
            len(result.events),
            self.language,
            result.pagination.total,
        )
        return result

    def list_events_by_tag(
        self, tag: str | None, page: Param = None, page_size: Param = None
    ) -> EventPage:
        """List events carrying ``tag`` (case-insensitive), newest first."""
        logger.info(
            "list_events_by_tag: tag '%s', lang '%s', page '%s', limit '%s'",
            tag,
            self.language,
            page,
            page_size,
        )
        if tag is None or not tag.strip():
            raise ValidationError("Tag parameter is required")
        result = self._page(EventFilter(tag=tag), parse_page(page), parse_page_size(page_size))
        logger.info(
            "list_events_by_tag: retrieved %d event(s) for tag '%s', lang '%s', total %d",
            len(result.events),
            tag,
            self.language,
            result.pagination.total,
        )
        return result

    def search_events(
        self, query: str | None, page: Param = None, page_size: Param = None
    ) -> SearchPage:
        """Full-text search ordered by relevance, paginated like listings."""
        logger.info(
            "search_events: query '%s', lang '%s', page '%s', limit '%s'",
            query,
            self.language,
            page,
            page_size,
        )
        if query is None or not query.strip():
            raise ValidationError("Search query is required")
        current_page = parse_page(page)
        limit = parse_page_size(page_size)
        total = self.db.search.count(query)
        offset = (current_page - 1) * limit
        results = self.db.search.search_events(query, limit=limit, offset=offset)
        logger.info(
            "search_events: retrieved %d result(s) for '%s', lang '%s', total matching %d",
            len(results),
            query,
            self.language,
            total,
        )
        return SearchPage(results=results, pagination=Pagination.build(current_page, limit, total))

    def get_event(self, raw_id: Param) -> Event:
        """Fetch a single event by its (string or integer) id."""
        logger.info("get_event: id '%s', lang '%s'", raw_id, self.language)
        event_id = parse_event_id(raw_id)
        return self.db.events.get(event_id)

    def list_tags(self) -> list[TagCount]:
        tags = self.db.tags.list_tags()
        logger.info("list_tags: retrieved %d tag(s), lang '%s'", len(tags), self.language)
        return tags
