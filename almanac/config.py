"""Configuration management for the event catalog."""

from __future__ import annotations

import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from almanac.constants import DEFAULT_BUSY_TIMEOUT_MS, Language


def _load_dotenv() -> None:
    """Load .env file from project root or container path."""
    env_paths = [
        Path.cwd() / ".env",
        Path("/almanac/.env"),
    ]
    for env_path in env_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


def _int_env(name: str, default: int) -> int:
    """Read an integer environment variable, failing loudly on garbage."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _collect_env_vars() -> dict:
    """Read all config environment variables and return as constructor kwargs."""
    return {
        "db_path_en": os.getenv("DB_PATH_EN") or "./data/events.db",
        "db_path_ru": os.getenv("DB_PATH_RU") or "./data/events_ru.db",
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "log_file": os.getenv("LOG_FILE") or None,
        "log_max_bytes": _int_env("LOG_MAX_BYTES", 10 * 1024 * 1024),
        "log_backup_count": _int_env("LOG_BACKUP_COUNT", 5),
        "busy_timeout_ms": _int_env("DB_BUSY_TIMEOUT_MS", DEFAULT_BUSY_TIMEOUT_MS),
    }


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from .env file and environment."""

    # Database files, one per language variant
    db_path_en: str
    db_path_ru: str

    # Logging configuration
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10 * 1024 * 1024  # 10 MB
    log_backup_count: int = 5

    # How long a write waits for another writer's lock before failing (ms)
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS

    @classmethod
    def load(cls) -> Config:
        """Load configuration from .env file."""
        _load_dotenv()
        return cls(**_collect_env_vars())

    def db_paths(self) -> dict[Language, str]:
        """Database path for each language variant."""
        return {Language.EN: self.db_path_en, Language.RU: self.db_path_ru}


def setup_logging(
    log_level: str,
    log_file: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Configure logging for the application.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path to log file. If provided, logs to both file and console.
        max_bytes: Maximum log file size in bytes before rotation (default 10 MB).
        backup_count: Number of rotated backup files to keep (default 5).
    """
    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    # Clear any existing handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        root_logger.info("Logging to file: %s", log_file)

    # SQL echo is never wanted in the application log
    for name in ("sqlalchemy.engine", "sqlalchemy.pool"):
        logging.getLogger(name).setLevel(logging.WARNING)
