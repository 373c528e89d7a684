"""
Structured JSON logging for the bounty board.

Every record is one JSON object per line. Fields passed through
``extra={...}`` are collected under an ``extra`` key so settlement logs
keep task ids and amounts machine-readable.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from typing import Any

ROOT_LOGGER_NAME = "bounty_board"

VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Attributes every LogRecord carries; anything else came from `extra`
_STANDARD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", None, None))
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="seconds")

        log_data: dict[str, Any] = {
            "timestamp": timestamp.replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {key: value for key, value in record.__dict__.items() if key not in _STANDARD_ATTRS}
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


def _utc_day() -> str:
    return datetime.now(tz=UTC).strftime("%Y-%m-%d")


class DailyRotatingFileHandler(logging.FileHandler):
    """Append to <directory>/YYYY-MM-DD.log, moving to a new file when the UTC date changes."""

    def __init__(self, directory: str) -> None:
        self._log_directory = directory
        self._current_day = _utc_day()
        super().__init__(self._path_for(self._current_day), encoding="utf-8", delay=True)

    def _path_for(self, day: str) -> str:
        return os.path.join(self._log_directory, f"{day}.log")

    def emit(self, record: logging.LogRecord) -> None:
        # Handler.handle holds the handler lock here
        day = _utc_day()
        if day != self._current_day:
            if self.stream:
                self.stream.close()
                self.stream = None  # type: ignore[assignment]
            self.baseFilename = os.path.abspath(self._path_for(day))
            self._current_day = day
        super().emit(record)


def setup_logging(level: str, service_name: str, log_directory: str | None) -> logging.Logger:
    """
    Configure JSON logging for the package logger.

    Logs go to stdout and, when ``log_directory`` is given, to a daily
    rotating file in that directory.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Service identifier attached to every record
        log_directory: Directory for rotating log files, or None for stdout only

    Returns:
        The configured package logger

    Raises:
        ValueError: If level is not a valid log level
    """
    level_upper = level.upper()
    if level_upper not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of {sorted(VALID_LOG_LEVELS)}")

    numeric_level = getattr(logging, level_upper)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(numeric_level)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    formatter = JSONFormatter()
    service_filter = _ServiceNameFilter(service_name)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(numeric_level)
    stdout_handler.setFormatter(formatter)
    stdout_handler.addFilter(service_filter)
    logger.addHandler(stdout_handler)

    if log_directory:
        os.makedirs(log_directory, exist_ok=True)
        file_handler = DailyRotatingFileHandler(directory=log_directory)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(service_filter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


class _ServiceNameFilter(logging.Filter):
    """Stamp the service name onto every record."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self._service_name
        return True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the package namespace.

    Module names inside the package (``bounty_board.services.settlement``)
    already live under the namespace and are returned as-is.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
