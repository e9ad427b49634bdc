"""Structured logging configuration.

Provides:
  - JSON-formatted log output for batch runs collected by log shippers
  - Human-readable colored output for development
  - Per-target correlation so concurrent recompilations can be told apart
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator

_EXTRA_FIELDS = ("target", "version", "platform", "path", "duration_ms", "code")

_current_target: ContextVar[str | None] = ContextVar("recompiler_target", default=None)


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.pathname:
            log_entry["module"] = record.module
            log_entry["function"] = record.funcName
            log_entry["line"] = record.lineno

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else "Unknown",
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        for key in _EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class DevFormatter(logging.Formatter):
    """Colored human-readable formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now(timezone.utc).strftime("%H:%M:%S")
        prefix = f"{color}{ts} [{record.levelname:>8s}]{self.RESET}"
        msg = record.getMessage()

        target = getattr(record, "target", None)
        if target:
            msg = f"[{target}] {msg}"

        base = f"{prefix} {record.name}: {msg}"
        if record.exc_info and record.exc_info[1]:
            base += "\n" + self.formatException(record.exc_info)
        return base


class TargetLogFilter(logging.Filter):
    """Filter that stamps records with the target directory being processed.

    The target is read from a context variable, so each asyncio task in a
    batch run logs under its own directory name.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "target", None):
            record.target = _current_target.get()  # type: ignore[attr-defined]
        return True


@contextmanager
def bind_target(target: str) -> Iterator[None]:
    """Attach *target* to every log record emitted inside the block."""
    token = _current_target.set(target)
    try:
        yield
    finally:
        _current_target.reset(token)


def setup_logging(env: str = "development", log_level: str = "INFO") -> None:
    """Configure logging for the process.

    Args:
        env: Application environment (development/staging/production)
        log_level: Minimum log level
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if env in ("staging", "production"):
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(DevFormatter())

    handler.addFilter(TargetLogFilter())
    root.addHandler(handler)

    # Quiet noisy libraries
    for noisy in ("httpcore", "httpx", "asyncio", "solcx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
