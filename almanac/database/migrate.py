"""Database migration runner for the event databases.

Discovers and applies numbered migration files from the migrations/ directory.
Each migration runs once per database and is tracked in the _migrations table.

Usage:
    python -m almanac.database.migrate                  # Migrate ./data/events.db
    python -m almanac.database.migrate /path/db         # Migrate a specific DB
    python -m almanac.database.migrate --test           # Test against copy of the EN DB
    python -m almanac.database.migrate --test /path/db  # Test against copy of specific DB
    python -m almanac.database.migrate --validate       # Check for duplicate migration numbers
"""

from __future__ import annotations

import importlib.util
import logging
import shutil
import sqlite3
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from types import ModuleType

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"
DEFAULT_DB_PATH = "./data/events.db"

_MIGRATIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS _migrations (
    name TEXT PRIMARY KEY,
    applied_at TEXT NOT NULL
)
"""


def _discover_migrations() -> list[tuple[str, Path]]:
    """Find all migration files, sorted by filename."""
    files = sorted(MIGRATIONS_DIR.glob("[0-9]*.py"))
    return [(f.stem, f) for f in files]


def _get_number_prefix(name: str) -> str:
    """Extract the numeric prefix from a migration name (e.g., '0001' from '0001_add_fields')."""
    return name.split("_", 1)[0]


def validate_migrations() -> None:
    """Check for duplicate migration number prefixes.

    Raises ValueError if any two migration files share the same numeric prefix.
    """
    migrations = _discover_migrations()
    seen: dict[str, str] = {}

    for name, _path in migrations:
        prefix = _get_number_prefix(name)
        if prefix in seen:
            msg = (
                f"Migration number conflict: {seen[prefix]} and {name} "
                f"share prefix {prefix}. Rebase and renumber the migration."
            )
            raise ValueError(msg)
        seen[prefix] = name

    logger.debug("Migration validation passed: %d migration(s), no conflicts", len(migrations))


def _get_applied(conn: sqlite3.Connection) -> set[str]:
    """Get set of already-applied migration names."""
    cursor = conn.execute("SELECT name FROM _migrations")
    return {row[0] for row in cursor.fetchall()}


def _load_module(name: str, path: Path) -> ModuleType:
    """Dynamically import a migration module from a file path."""
    spec = importlib.util.spec_from_file_location(name, path)
    assert spec is not None
    assert spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def migrate(db_path: str) -> int:
    """Run all pending migrations against the given SQLite database.

    Fresh databases are skipped: they get the current schema from
    ``Database.create_tables``. Returns the number of migrations applied.
    """
    if not Path(db_path).exists():
        logger.info("Database %s does not exist yet, skipping migrations", db_path)
        return 0

    validate_migrations()

    conn = sqlite3.connect(db_path)
    try:
        conn.execute(_MIGRATIONS_TABLE_SQL)
        conn.commit()

        applied = _get_applied(conn)
        count = 0

        for name, path in _discover_migrations():
            if name in applied:
                logger.debug("Migration already applied: %s", name)
                continue

            module = _load_module(name, path)
            if not hasattr(module, "up"):
                logger.warning("Migration %s has no up() function, skipping", name)
                continue

            try:
                conn.execute("BEGIN IMMEDIATE")
                module.up(conn)
                conn.execute(
                    "INSERT INTO _migrations (name, applied_at) VALUES (?, ?)",
                    (name, datetime.now(UTC).isoformat()),
                )
                conn.commit()
                count += 1
                logger.info("Applied migration %s to %s", name, db_path)
            except Exception:
                conn.rollback()
                logger.exception("Migration failed: %s", name)
                raise
    finally:
        conn.close()
    return count


def migrate_test(db_path: str) -> bool:
    """Test migrations against a copy of the given database.

    Copies the database to a temp directory, runs all pending migrations,
    and reports success or failure. Cleans up the copy afterward.

    Returns True if successful, False otherwise.
    """
    source = Path(db_path)
    temp_dir = tempfile.mkdtemp()
    test_path = Path(temp_dir) / "migrate_test.db"

    try:
        if source.exists():
            shutil.copy2(source, test_path)
            logger.info("Copied %s to %s for testing", source, test_path)
        else:
            # Create a fresh DB with current schema for testing
            from almanac.database.database import Database

            db = Database(str(test_path))
            db.create_tables()
            db.dispose()
            logger.info("Created fresh database at %s for testing", test_path)

        count = migrate(str(test_path))
        logger.info("Migration test passed: %d migration(s) applied", count)
        return True
    except Exception:
        logger.exception("Migration test FAILED")
        return False
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    args = sys.argv[1:]

    if "--validate" in args:
        try:
            validate_migrations()
        except ValueError as e:
            logger.error(str(e))
            sys.exit(1)
        sys.exit(0)

    if "--test" in args:
        args.remove("--test")
        db_path = args[0] if args else DEFAULT_DB_PATH
        success = migrate_test(db_path)
        sys.exit(0 if success else 1)

    db_path = args[0] if args else DEFAULT_DB_PATH
    count = migrate(db_path)
    logger.info("Done. %d migration(s) applied.", count)
