"""JSON logging for the care board: one object per line, to stdout and a daily file."""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import UTC, datetime
from logging.handlers import TimedRotatingFileHandler
from typing import Any

PACKAGE_LOGGER_NAME = "care_board_service"

VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    Renders a record as a single JSON line.

    Lifecycle logs pass ids such as ``task_id`` and ``helper_id`` via
    ``extra=``; they are grouped under the "extra" key so the top level
    stays fixed: timestamp, service, level, logger, message.
    """

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(timespec="seconds").replace("+00:00", "Z"),
            "service": self._service_name,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra
        return json.dumps(entry, default=str)


class DailyRotatingFileHandler(TimedRotatingFileHandler):
    """Writes to ``<directory>/YYYY-MM-DD.log`` and switches file at UTC midnight."""

    def __init__(self, directory: str) -> None:
        self._log_directory = directory
        super().__init__(self._path_for_today(), when="midnight", utc=True)

    def _path_for_today(self) -> str:
        return os.path.join(self._log_directory, datetime.now(tz=UTC).strftime("%Y-%m-%d.log"))

    def doRollover(self) -> None:  # noqa: N802
        if self.stream:
            self.stream.close()
            self.stream = None  # type: ignore[assignment]
        self.baseFilename = os.path.abspath(self._path_for_today())
        if not self.delay:
            self.stream = self._open()
        self.rolloverAt = self.computeRollover(int(time.time()))


def setup_logging(level: str, service_name: str, log_directory: str) -> logging.Logger:
    """
    Attach the JSON handlers to the package logger and return it.

    Safe to call again (each test app does): previous handlers are closed
    and replaced. Raises ValueError for an unknown level name.
    """
    level_name = level.upper()
    if level_name not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of {sorted(VALID_LOG_LEVELS)}")
    numeric_level: int = getattr(logging, level_name)

    logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(numeric_level)
    logger.propagate = False

    os.makedirs(log_directory, exist_ok=True)
    formatter = JSONFormatter(service_name)
    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stdout),
        DailyRotatingFileHandler(directory=log_directory),
    ]
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
