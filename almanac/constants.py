"""Constants for the event catalog."""

from enum import StrEnum


class Language(StrEnum):
    """Language variant of the event dataset."""

    EN = "en"
    RU = "ru"


# Pagination defaults (also the fallback for unparseable input)
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20

# Largest page number or page size accepted; keeps LIMIT/OFFSET inside SQLite integers
MAX_PAGINATION_VALUE = 2**31 - 1

# Largest id accepted by single-event lookup (unsigned 32-bit)
MAX_EVENT_ID = 2**32 - 1

# Column limits
TITLE_MAX_LENGTH = 255
TAGS_MAX_LENGTH = 500

# Schema object names
EVENTS_TABLE = "events"
EVENTS_FTS_TABLE = "events_fts"
DATE_INDEX = "idx_events_date"
TAGS_INDEX = "idx_events_tags"

DEFAULT_BUSY_TIMEOUT_MS = 5000
