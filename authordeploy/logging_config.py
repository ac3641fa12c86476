"""Process-wide logging setup for the API server, the CLI and the reconciliation loop.

Two output formats are supported: a human-readable line (colored level names on
a TTY) and one JSON object per line for log collectors. Both carry the thread
name so sweeps from the background loop can be told apart from request work.
"""
from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import os
import sys

LOG_LEVEL_ENV = "AUTHORDEPLOY_LOG_LEVEL"
LOG_FORMAT_ENV = "AUTHORDEPLOY_LOG_FORMAT"
LOG_FORMATS = ("text", "json")

_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
_TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LEVEL_COLORS = {
    logging.DEBUG: "\x1b[36m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1;31m",
}
_RESET = "\x1b[0m"
# httpx logs every request at INFO; the dispatcher already logs each submission.
_CHATTY_LOGGERS = ("httpx", "httpcore")


class TextFormatter(logging.Formatter):
    def __init__(self, *, use_color: bool = False) -> None:
        super().__init__(fmt=_TEXT_FORMAT, datefmt=_TEXT_DATE_FORMAT)
        self.use_color = use_color

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        color = _LEVEL_COLORS.get(record.levelno) if self.use_color else None
        if not color:
            return line
        return line.replace(record.levelname, f"{color}{record.levelname}{_RESET}", 1)


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def resolve_level(level: str | int | None = None) -> int:
    if isinstance(level, int):
        return level
    name = (level or os.getenv(LOG_LEVEL_ENV) or "INFO").strip().upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def resolve_format(fmt: str | None = None) -> str:
    name = (fmt or os.getenv(LOG_FORMAT_ENV) or "text").strip().lower()
    return name if name in LOG_FORMATS else "text"


def build_formatter(fmt: str) -> logging.Formatter:
    if fmt == "json":
        return JsonFormatter()
    return TextFormatter(use_color=not os.getenv("NO_COLOR") and sys.stderr.isatty())


def configure_logging(*, level: str | int | None = None, fmt: str | None = None, force: bool = False) -> None:
    """Install a single stderr handler on the root logger.

    Calling this again without ``force`` only adjusts levels, so importing the
    CLI inside a server process does not stack handlers.
    """
    resolved_level = resolve_level(level)
    root = logging.getLogger()
    root.setLevel(resolved_level)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved_level, logging.WARNING))

    if root.handlers and not force:
        for handler in root.handlers:
            handler.setLevel(resolved_level)
        return

    handler = logging.StreamHandler()
    handler.setLevel(resolved_level)
    handler.setFormatter(build_formatter(resolve_format(fmt)))
    root.handlers.clear()
    root.addHandler(handler)
