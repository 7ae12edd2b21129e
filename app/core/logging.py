"""Logging configuration for quiz-service.

Both processes (the API and the worker) log to stdout through the same
root handler.  Two output shapes are supported:

  _ContainerFormatter — human-readable, single-line, for local dev.

  _JsonFormatter — one JSON object per line, for log aggregation.
    Set LOG_JSON=true in production.  Context fields attached by the
    request middleware (request_id, path, ...) and by the worker
    (job_id, queue, ledger_id, ...) become top-level keys, so a failed
    AI generation can be traced with a single filter:

      {"level": "WARNING", "ledger_id": "...", "message": "Generation failed ..."}
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar

# Per-task correlation ids.  "-" means "not inside a request/job"; the
# JSON formatter drops it.  Each asyncio task sees its own value, so
# concurrent requests never leak ids into each other's log lines.
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
job_id_var: ContextVar[str] = ContextVar("job_id", default="-")


class ContextFilter(logging.Filter):
    """Copy the current request/job ids onto every LogRecord.

    Installed on the handler: filters on the root logger itself are not
    consulted for records propagated up from child loggers.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()  # type: ignore[attr-defined]
        if getattr(record, "job_id", None) is None:
            record.job_id = job_id_var.get()  # type: ignore[attr-defined]
        return True


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    - Always: ISO-8601 timestamp, level, logger name, message
    - WARNING+: appends [filename:lineno]
    - ERROR/CRITICAL: stack trace included when exc_info is present
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter for machine-parseable log output."""

    # Fields the request middleware or the worker may attach to LogRecords.
    _CONTEXT_FIELDS = (
        "request_id",
        "job_id",
        "queue",
        "ledger_id",
        "assignment_id",
        "method",
        "path",
        "user_id",
        "status_code",
        "duration_ms",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            # "-" is the ContextVar default outside a request/job
            if value is not None and value != "-":
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger for container environments.

    Args:
        level_name: Log level string (debug/info/warning/error)
        json_format: If True, emit JSON lines. If False, human-readable.
                     Controlled by LOG_JSON in Settings.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # Keep third-party loggers from flooding at DEBUG
    for name in (
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "httpcore",
        "httpx",
        "sqlalchemy.engine",
    ):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
