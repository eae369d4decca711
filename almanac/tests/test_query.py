"""Tests for filter parsing, pagination and the per-variant query engine."""

import datetime as dt
import logging

import pytest

from almanac.constants import Language
from almanac.database.models import Pagination
from almanac.errors import NotFoundError, ValidationError
from almanac.query import (
    QueryEngine,
    parse_day,
    parse_event_id,
    parse_month,
    parse_page,
    parse_page_size,
    parse_year,
)


class TestFilterParsing:
    @pytest.mark.parametrize(
        "raw, expected",
        [("2021", "2021"), (2021, "2021"), ("0999", "0999"), (None, None), ("", None)],
    )
    def test_year(self, raw, expected):
        assert parse_year(raw) == expected

    @pytest.mark.parametrize("raw", ["21", "20211", "abcd", "-202", "20 1"])
    def test_invalid_year_ignored_with_warning(self, raw, caplog):
        with caplog.at_level(logging.WARNING):
            assert parse_year(raw) is None
        assert "Invalid year" in caplog.text

    @pytest.mark.parametrize(
        "raw, expected", [("5", "05"), ("05", "05"), (12, "12"), ("1", "01"), ("007", "07")]
    )
    def test_month_normalized(self, raw, expected):
        assert parse_month(raw) == expected

    @pytest.mark.parametrize("raw", ["0", "13", "-1", "May", "1.5"])
    def test_invalid_month_ignored(self, raw, caplog):
        with caplog.at_level(logging.WARNING):
            assert parse_month(raw) is None
        assert "Invalid month" in caplog.text

    def test_day_bounds(self):
        assert parse_day("31") == "31"
        assert parse_day("9") == "09"
        assert parse_day("32") is None
        assert parse_day("0") is None


class TestPaginationParsing:
    def test_defaults(self):
        assert parse_page(None) == 1
        assert parse_page_size(None) == 20

    def test_valid_values(self):
        assert parse_page("3") == 3
        assert parse_page_size(50) == 50

    @pytest.mark.parametrize("raw", ["0", "-2", "abc", "1.5"])
    def test_invalid_falls_back_to_default(self, raw, caplog):
        with caplog.at_level(logging.WARNING):
            assert parse_page(raw) == 1
            assert parse_page_size(raw) == 20
        assert "Using default" in caplog.text

    @pytest.mark.parametrize("raw", ["99999999999999999999", str(2**31), 2**62])
    def test_out_of_range_falls_back_to_default(self, raw, caplog):
        with caplog.at_level(logging.WARNING):
            assert parse_page(raw) == 1
            assert parse_page_size(raw) == 20
        assert "Using default" in caplog.text

    def test_largest_accepted_value(self):
        assert parse_page(str(2**31 - 1)) == 2**31 - 1
        assert parse_page_size(2**31 - 1) == 2**31 - 1

    def test_last_page(self):
        assert Pagination.build(1, 20, 0).last_page == 0
        assert Pagination.build(1, 20, 20).last_page == 1
        assert Pagination.build(1, 20, 21).last_page == 2
        assert Pagination.build(1, 0, 21).last_page == 0


class TestEventIdParsing:
    def test_valid(self):
        assert parse_event_id("42") == 42
        assert parse_event_id(7) == 7
        assert parse_event_id("4294967295") == 2**32 - 1

    @pytest.mark.parametrize("raw", [None, ""])
    def test_missing(self, raw):
        with pytest.raises(ValidationError, match="Event ID is required"):
            parse_event_id(raw)

    @pytest.mark.parametrize("raw", ["abc", "-1", "4294967296", "1e3", " 1", "１２"])
    def test_malformed(self, raw):
        with pytest.raises(ValidationError, match="Invalid Event ID format"):
            parse_event_id(raw)


class TestQueryEngine:
    @pytest.fixture
    def engine(self, db):
        return QueryEngine(db, Language.EN)

    @pytest.fixture
    def seeded(self, make_event):
        for n in range(45):
            make_event(date=dt.date(2000, 1, 1) + dt.timedelta(days=n), title=f"Event {n}")

    def test_pagination_law(self, engine, seeded):
        seen = []
        result = engine.list_events(page_size=20)
        assert result.pagination.total == 45
        assert result.pagination.last_page == 3
        for page in range(1, result.pagination.last_page + 1):
            events = engine.list_events(page=page, page_size=20).events
            assert len(events) == min(20, 45 - (page - 1) * 20)
            seen.extend(e.id for e in events)
        assert len(seen) == len(set(seen)) == 45

    def test_page_past_end_is_empty(self, engine, seeded):
        result = engine.list_events(page=10, page_size=20)
        assert result.events == []
        assert result.pagination.current_page == 10
        assert result.pagination.total == 45

    def test_huge_paging_values_do_not_overflow(self, engine, seeded):
        result = engine.list_events(page="99999999999999999999")
        assert result.pagination.current_page == 1
        assert len(result.events) == 20

        result = engine.list_events(page=str(2**62), page_size="20")
        assert result.pagination.current_page == 1

        result = engine.list_events(page=str(2**31 - 1), page_size=str(2**31 - 1))
        assert result.events == []
        assert result.pagination.total == 45

    def test_huge_search_page_size_uses_default(self, engine, make_event):
        make_event(title="Comet")
        result = engine.search_events("comet", page_size="99999999999999999999")
        assert result.pagination.per_page == 20
        assert len(result.results) == 1

        result = engine.search_events("comet", page=str(2**31 - 1), page_size=str(2**31 - 1))
        assert result.results == []
        assert result.pagination.total == 1

    def test_invalid_month_ignored_but_year_applied(self, engine, make_event):
        make_event(date=dt.date(2021, 6, 1), title="In 2021")
        make_event(date=dt.date(2020, 6, 1), title="In 2020")
        result = engine.list_events(year="2021", month="13")
        assert [e.title for e in result.events] == ["In 2021"]

    def test_tag_required(self, engine):
        with pytest.raises(ValidationError, match="Tag parameter is required"):
            engine.list_events_by_tag("  ")

    def test_list_events_by_tag(self, engine, make_event):
        make_event(title="Tagged", tags=["Space"])
        make_event(title="Untagged")
        result = engine.list_events_by_tag("space")
        assert [e.title for e in result.events] == ["Tagged"]
        assert result.pagination.total == 1

    def test_search_required(self, engine):
        with pytest.raises(ValidationError, match="Search query is required"):
            engine.search_events(None)

    def test_search_paginates(self, engine, make_event):
        for n in range(3):
            make_event(title=f"Comet {n}")
        result = engine.search_events("comet", page=2, page_size=2)
        assert len(result.results) == 1
        assert result.pagination.total == 3
        assert result.pagination.last_page == 2

    def test_get_event(self, engine, make_event):
        event = make_event(title="Found")
        assert engine.get_event(str(event.id)).title == "Found"
        with pytest.raises(NotFoundError):
            engine.get_event("999999")

    def test_operations_log_at_info(self, engine, caplog):
        with caplog.at_level(logging.INFO, logger="almanac.query"):
            engine.list_events(year="2021")
            engine.list_tags()
        assert "list_events: lang 'en'" in caplog.text
        assert "list_tags: retrieved 0 tag(s)" in caplog.text
