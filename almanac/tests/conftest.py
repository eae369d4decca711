"""Pytest fixtures for almanac tests."""

import datetime as dt
from collections.abc import Callable, Iterator
from typing import Any, cast

import pytest

from almanac.catalog import EventCatalog
from almanac.config import Config
from almanac.database import Database, Event, EventCreate

# Default config values for tests (fast lock timeout, verbose logs)
DEFAULT_TEST_CONFIG = {
    "log_level": "DEBUG",
    "log_file": None,
    "busy_timeout_ms": 1000,
}


@pytest.fixture
def test_db(tmp_path):
    """Create a temporary test database path."""
    return str(tmp_path / "test.db")


@pytest.fixture
def make_config(tmp_path) -> Callable[..., Config]:
    """
    Factory fixture for creating test configs with custom overrides.

    Usage:
        config = make_config()  # defaults, both variants under tmp_path
        config = make_config(busy_timeout_ms=50)  # with override
    """

    def _make_config(**overrides: Any) -> Config:
        config_kwargs: dict[str, Any] = {
            **DEFAULT_TEST_CONFIG,
            "db_path_en": str(tmp_path / "events.db"),
            "db_path_ru": str(tmp_path / "events_ru.db"),
            **overrides,
        }
        return Config(**cast(Any, config_kwargs))

    return _make_config


@pytest.fixture
def db(test_db) -> Iterator[Database]:
    """A fully opened single-variant database."""
    database = Database.open(test_db)
    yield database
    database.dispose()


@pytest.fixture
def catalog(make_config) -> Iterator[EventCatalog]:
    """An opened catalog with empty EN and RU variants."""
    opened = EventCatalog.open(make_config())
    yield opened
    opened.close()


@pytest.fixture
def make_event(db) -> Callable[..., Event]:
    """
    Factory fixture inserting an event into ``db``.

    Usage:
        event = make_event()  # "Sample event" on 2020-01-01
        event = make_event(title="Pizza", tags=["food"], date="2010-05-22")
    """

    def _make_event(**fields: Any) -> Event:
        data: dict[str, Any] = {"date": dt.date(2020, 1, 1), "title": "Sample event", **fields}
        return db.events.create(EventCreate.model_validate(data))

    return _make_event
