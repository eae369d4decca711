"""Tag store: read-time tag aggregation and the tag membership filter."""

import logging

from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from almanac.database.models import Event, TagCount
from almanac.errors import StorageError

logger = logging.getLogger(__name__)

# Rows whose tags are not a JSON array feed json_each an empty array instead,
# so one malformed row never fails the whole aggregation.
_LIST_TAGS_SQL = text("""
    SELECT unicode_lower(j.value) AS tag, COUNT(*) AS count
    FROM events e,
         json_each(
             CASE
                 WHEN json_valid(e.tags) AND json_type(e.tags) = 'array' THEN e.tags
                 ELSE '[]'
             END
         ) j
    WHERE e.tags IS NOT NULL
      AND e.tags != ''
      AND e.tags != '[]'
      AND j.value IS NOT NULL
      AND TRIM(CAST(j.value AS TEXT), ' ' || char(9, 10, 11, 12, 13)) != ''
    GROUP BY unicode_lower(j.value)
    ORDER BY tag ASC
""")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def tag_clause(tag: str):
    """Case-insensitive match of the quoted tag against the raw tags JSON text.

    ``"bitcoin"`` matches ``["Bitcoin","pizza"]`` but not ``["bitcoins"]``.
    This approximates JSON array membership: a quoted substring inside a
    longer tag (``["say \\"bitcoin\\" twice"]``) also matches.
    """
    pattern = f'%"{_escape_like(tag.lower())}"%'
    return func.unicode_lower(Event.tags).like(pattern, escape="\\")


class TagStore:
    """Aggregates tag usage across all events of one variant."""

    def __init__(self, engine):
        self.engine = engine

    def list_tags(self) -> list[TagCount]:
        """List every tag (lowercased) with its number of occurrences, alphabetically.

        Rows with null, empty, non-JSON or non-array tags are skipped, as are
        blank entries. A tag listed twice on one event counts twice.
        """
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(_LIST_TAGS_SQL).all()
        except SQLAlchemyError as e:
            logger.error("Failed to aggregate tags: %s", e)
            raise StorageError(f"Failed to retrieve tags: {e}") from e
        return [TagCount(tag=str(tag), count=count) for tag, count in rows]
