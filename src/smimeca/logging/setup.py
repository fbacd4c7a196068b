"""Logging configuration for SMIMECA.

Provides JSON and text formatters, a filter that stamps the store path
onto every record, and a one-call ``configure_logging`` function driven
by config settings.  The operator log file is created owner-only before
any handler opens it.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from smimeca.config.settings import LoggingSettings

_LOG_FILE_MODE = 0o600

# Attributes that are part of the standard LogRecord -- everything
# else is considered "extra" and gets included in structured output.
_STANDARD_ATTRS = frozenset(
    {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
        "store",
    }
)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructuredFormatter(logging.Formatter):
    """JSON-lines formatter.

    Every record becomes a single JSON object on one line containing
    the standard fields plus any *extra* attributes passed by the
    caller or injected by filters.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        data: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created,
                tz=UTC,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
        }

        store = getattr(record, "store", None)
        if store is not None:
            data["store"] = store

        # Caller-supplied extra fields
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                data.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Operator-facing ``2024-01-31 12:00:00 [INFO] message`` lines."""

    _FMT = "%(asctime)s [%(levelname)s] %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class StoreContextFilter(logging.Filter):
    """Inject the configured store path into every log record."""

    def __init__(self, store: str | None = None) -> None:
        super().__init__()
        self._store = store

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "store"):
            record.store = self._store  # type: ignore[attr-defined]
        return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def ensure_log_file(path: Path) -> None:
    """Create *path* (and its directory) with owner-only permissions."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, _LOG_FILE_MODE)
    os.close(fd)
    os.chmod(path, _LOG_FILE_MODE)


def configure_logging(
    settings: LoggingSettings,
    log_file: Path | None = None,
    store: str | None = None,
) -> logging.Logger:
    """Configure the ``smimeca`` logger hierarchy from settings.

    Replaces any bootstrap handlers with properly formatted output on
    stderr and, when *log_file* is given, a rotating file handler.

    Returns the root ``smimeca`` logger.
    """
    level = getattr(logging, settings.level.upper(), logging.INFO)

    # ── Root smimeca logger ─────────────────────────────────────────
    root = logging.getLogger("smimeca")
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.propagate = False

    formatter: logging.Formatter
    formatter = StructuredFormatter() if settings.format == "json" else TextFormatter()

    ctx_filter = StoreContextFilter(store)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(ctx_filter)
    root.addHandler(console)

    if log_file is not None:
        try:
            ensure_log_file(log_file)
            fh = RotatingFileHandler(
                log_file,
                maxBytes=settings.max_file_size_bytes,
                backupCount=settings.backup_count,
            )
            fh.setFormatter(formatter)
            fh.addFilter(ctx_filter)
            root.addHandler(fh)
        except OSError as exc:
            root.warning("Could not open log file %s: %s", log_file, exc)

    # ── Audit logger (inherits handlers from root) ──────────────────
    audit = logging.getLogger("smimeca.audit")
    audit.disabled = not settings.audit
    audit.setLevel(logging.INFO)

    return root
