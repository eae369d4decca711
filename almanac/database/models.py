"""SQLModel and pydantic models for the event catalog."""

import datetime as dt
import json
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from almanac.constants import (
    DATE_INDEX,
    EVENTS_TABLE,
    TAGS_INDEX,
    TAGS_MAX_LENGTH,
    TITLE_MAX_LENGTH,
)


def encode_json_list(value: Any) -> Any:
    """Encode a list of strings as the JSON text stored in tags/references.

    Strings pass through untouched, so already-encoded (or malformed) values
    are stored exactly as given.
    """
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value), ensure_ascii=False)
    return value


class Event(SQLModel, table=True):
    """A dated historical event."""

    __tablename__ = EVENTS_TABLE
    __table_args__ = (
        Index(DATE_INDEX, "date"),
        Index(TAGS_INDEX, "tags"),
        {"sqlite_autoincrement": True},
    )

    id: int | None = Field(default=None, primary_key=True)
    date: dt.date = Field(nullable=False)
    title: str = Field(max_length=TITLE_MAX_LENGTH)
    description: str | None = None
    tags: str | None = Field(default=None, max_length=TAGS_MAX_LENGTH)  # JSON array of strings
    media: str | None = None  # Opaque URL (or list of URLs)
    references: str | None = None  # JSON array of URLs
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class EventCreate(BaseModel):
    """Caller-supplied fields for a new event."""

    model_config = ConfigDict(extra="forbid")

    date: dt.date
    title: str
    description: str | None = None
    tags: str | None = None
    media: str | None = None
    references: str | None = None

    @field_validator("tags", "references", mode="before")
    @classmethod
    def _encode_lists(cls, value: Any) -> Any:
        return encode_json_list(value)


class EventUpdate(BaseModel):
    """Field mask for a partial update.

    Only fields explicitly set by the caller are applied; everything else on
    the stored record is left unchanged.
    """

    model_config = ConfigDict(extra="forbid")

    date: dt.date | None = None
    title: str | None = None
    description: str | None = None
    tags: str | None = None
    media: str | None = None
    references: str | None = None

    @field_validator("tags", "references", mode="before")
    @classmethod
    def _encode_lists(cls, value: Any) -> Any:
        return encode_json_list(value)

    def changes(self) -> dict[str, Any]:
        """Return the explicitly set fields and their new values."""
        return self.model_dump(exclude_unset=True)


@dataclass(frozen=True)
class EventFilter:
    """Normalized listing filters. None means the filter is not applied."""

    year: str | None = None  # "YYYY"
    month: str | None = None  # "01".."12"
    day: str | None = None  # "01".."31"
    tag: str | None = None


class SearchHit(NamedTuple):
    """A single full-text match: event id and FTS5 rank (lower is better)."""

    id: int
    rank: float


class TagCount(BaseModel):
    """A case-folded tag and the number of times it is used."""

    tag: str
    count: int


class Pagination(BaseModel):
    """Paging metadata returned alongside every listing."""

    current_page: int
    per_page: int
    total: int
    last_page: int

    @classmethod
    def build(cls, page: int, page_size: int, total: int) -> "Pagination":
        last_page = math.ceil(total / page_size) if page_size > 0 else 0
        return cls(current_page=page, per_page=page_size, total=total, last_page=last_page)


class EventPage(BaseModel):
    """One page of events."""

    events: list[Event]
    pagination: Pagination


class RankedEvent(BaseModel):
    """An event paired with its full-text rank."""

    event: Event
    rank: float


class SearchPage(BaseModel):
    """One page of full-text search results, best match first."""

    results: list[RankedEvent]
    pagination: Pagination
