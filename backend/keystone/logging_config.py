"""
Logging setup for Keystone.

Human-readable coloured lines on a terminal, one JSON object per line when
KEYSTONE_LOG_JSON is set. Every module logs through get_logger(__name__) so all
records sit under the "keystone" logger.
"""

import json
import logging
import sys
from typing import Optional

from keystone.config import get_settings

RESET = "\x1b[0m"

LEVEL_COLORS = {
    logging.DEBUG: "\x1b[38;20m",  # grey
    logging.INFO: "\x1b[32;20m",  # green
    logging.WARNING: "\x1b[33;20m",  # yellow
    logging.ERROR: "\x1b[31;20m",  # red
    logging.CRITICAL: "\x1b[31;1m",  # bold red
}

LINE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers and the level they are capped at
QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "asyncpg": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "httpcore": logging.WARNING,
    "httpx": logging.WARNING,
    "arq": logging.INFO,
}


class ColoredFormatter(logging.Formatter):
    """Wraps each line in the colour of its level."""

    def __init__(self):
        super().__init__(LINE_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record):
        line = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}{RESET}" if color else line


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def format(self, record):
        payload = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(
    level: Optional[str] = None,
    json_format: Optional[bool] = None,
) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: DEBUG, INFO, ...; defaults to DEBUG when settings.debug is on
        json_format: Force JSON output on or off (defaults to settings.log_json)
    """
    settings = get_settings()

    name = level or ("DEBUG" if settings.debug else "INFO")
    numeric_level = logging.getLevelName(name.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    if json_format is None:
        json_format = settings.log_json

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(JsonFormatter() if json_format else ColoredFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for logger_name, cap in QUIET_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(cap)
    logging.getLogger("keystone").setLevel(numeric_level)


def get_logger(name: str) -> logging.Logger:
    """
    Logger namespaced under "keystone".

        logger = get_logger(__name__)
        logger.info("Recomputed project ...")
    """
    if name != "keystone" and not name.startswith("keystone."):
        name = f"keystone.{name}"
    return logging.getLogger(name)
