"""
Logging setup for consent-sync.

- Colored console output
- Optional rotating JSON file log (10MB max, keep 5)

Usage:
    from consent_sync.logging_utils import setup_logging

    setup_logging("INFO", log_file="~/.consent_sync/consent_sync.log")
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Union

ROOT_LOGGER = "consent_sync"

# ANSI color codes for console output
COLORS = {
    "DEBUG": "\033[36m",     # Cyan
    "INFO": "\033[32m",      # Green
    "WARNING": "\033[33m",   # Yellow
    "ERROR": "\033[31m",     # Red
    "CRITICAL": "\033[35m",  # Magenta
    "RESET": "\033[0m",
}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def __init__(self, app_name: str):
        super().__init__()
        self.app_name = app_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "app": self.app_name,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


class ColoredFormatter(logging.Formatter):
    """Adds ANSI colors to the level name."""

    FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def __init__(self, use_colors: bool = True):
        super().__init__(self.FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)

        color = COLORS.get(record.levelname, COLORS["RESET"])
        original_levelname = record.levelname
        record.levelname = f"{color}{record.levelname}{COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    json_logs: bool = False,
    app_name: str = "consent-sync",
) -> logging.Logger:
    """
    Configure the package logger. Calling it again replaces the handlers.

    Args:
        level: Logging level name or number
        log_file: Optional path of a rotating log file
        json_logs: Write JSON to the console instead of colored text
        app_name: Name recorded in JSON entries

    Returns:
        The configured package logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.propagate = False
    cleanup_handlers(logger)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    if json_logs:
        console_handler.setFormatter(JSONFormatter(app_name))
    else:
        console_handler.setFormatter(ColoredFormatter(use_colors=sys.stderr.isatty()))
    logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter(app_name))
        logger.addHandler(file_handler)

    return logger


def cleanup_handlers(logger: logging.Logger) -> List[logging.Handler]:
    """Close and detach every handler of `logger`."""
    removed = logger.handlers[:]
    for handler in removed:
        handler.close()
        logger.removeHandler(handler)
    return removed
