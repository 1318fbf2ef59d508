"""
Runtime settings and logging setup for the timeline engine.

Values are read from the environment (optionally populated from a ``.env``
file at the repository root) and collected into a ``TimelineSettings`` model.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ROOT_DIR = Path(__file__).resolve().parents[1]

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class TimelineSettings(BaseModel):
    """Engine-wide defaults."""
    default_framerate: float = Field(
        default=24.0,
        gt=0,
        description="Rate used for empty compositions and default-constructed times",
    )
    error_message_limit: int = Field(
        default=256,
        gt=0,
        description="Maximum length of an ErrorStatus message",
    )
    json_indent: int | None = Field(
        default=4,
        description="Indentation for JSON documents (None = compact)",
    )
    log_level: str = Field(default="INFO", description="Root log level")
    log_file: str = Field(default="", description="Optional log file path")


def _optional_int(raw: str | None, default: int | None) -> int | None:
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        return None
    return int(raw)


@lru_cache(maxsize=1)
def get_settings() -> TimelineSettings:
    load_dotenv(ROOT_DIR / ".env")
    return TimelineSettings(
        default_framerate=float(os.getenv("TIMELINE_DEFAULT_RATE", "24.0")),
        error_message_limit=int(os.getenv("TIMELINE_ERROR_MESSAGE_LIMIT", "256")),
        json_indent=_optional_int(os.getenv("TIMELINE_JSON_INDENT"), 4),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        log_file=os.getenv("TIMELINE_LOG_FILE", "").strip(),
    )


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()


def _attach_file_handler(
    logger_name: str,
    log_file_path: Path,
    level_name: str | None = None,
) -> None:
    logger_level = (level_name or get_settings().log_level).upper()
    logger_level_value = getattr(logging, logger_level, logging.INFO)

    log_file_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
    file_handler.setLevel(logger_level_value)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    target_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler)
        and getattr(handler, "baseFilename", None) == str(log_file_path)
        for handler in target_logger.handlers
    ):
        target_logger.addHandler(file_handler)
    else:
        file_handler.close()
    target_logger.setLevel(logger_level_value)


def configure_logging(settings: TimelineSettings | None = None) -> None:
    """
    Configure logging for applications embedding the engine.

    The library itself never calls this; it only creates module loggers.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    if settings.log_file:
        log_path = Path(settings.log_file)
        if not log_path.is_absolute():
            log_path = ROOT_DIR / log_path
        _attach_file_handler("timeline_engine", log_path, level_name=settings.log_level)
