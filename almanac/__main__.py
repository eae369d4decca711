"""Open both event databases, bringing schema and search index up to date."""

import logging
import sys

from almanac.catalog import EventCatalog
from almanac.config import Config, setup_logging
from almanac.errors import StorageError

logger = logging.getLogger(__name__)


def main() -> int:
    """Main entry point."""
    config = Config.load()
    setup_logging(config.log_level, config.log_file, config.log_max_bytes, config.log_backup_count)

    logger.info("Starting almanac with config:")
    logger.info("  db_path_en: %s", config.db_path_en)
    logger.info("  db_path_ru: %s", config.db_path_ru)
    logger.info("  busy_timeout_ms: %d", config.busy_timeout_ms)

    try:
        catalog = EventCatalog.open(config)
    except StorageError as e:
        logger.error("Failed to open event databases: %s", e)
        return 1

    try:
        for language in catalog.databases:
            page = catalog.list_events(language, page_size=1)
            tags = catalog.list_tags(language)
            logger.info(
                "Variant '%s' ready: %d event(s), %d distinct tag(s)",
                language,
                page.pagination.total,
                len(tags),
            )
    finally:
        catalog.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
