"""Add date and tags indexes to the events table.

Databases created before the indexes were declared on the Event model only
have the bare table. idx_events_date backs the default date-descending order,
idx_events_tags the tag membership scan.

Type: schema
"""

import sqlite3


def up(conn: sqlite3.Connection) -> None:
    """Apply the migration."""
    # Guard: a database file can exist before create_tables() has run
    has_events = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name='events'"
    ).fetchone()
    if not has_events:
        return

    conn.execute("CREATE INDEX IF NOT EXISTS idx_events_date ON events (date)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_events_tags ON events (tags)")
