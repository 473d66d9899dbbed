"""Root logger setup for enrollment-service.

Plain single-line output by default; JSON lines (LOG_JSON=true) for the
log pipeline.  Both formats pick up the request id that
RequestContextMiddleware attaches to every record, so a state transition
logged deep inside a service can be tied back to the HTTP call that
caused it.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar

SERVICE_NAME = "enrollment-service"

# Set per request by RequestContextMiddleware; None outside a request.
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_TIMESTAMP_FMT = "%Y-%m-%dT%H:%M:%S%z"

# Libraries that are chatty at INFO; never let them below WARNING.
_QUIET_LOGGERS = (
    "uvicorn",
    "uvicorn.access",
    "uvicorn.error",
    "httpcore",
    "httpx",
    "sqlalchemy.engine",
)


class _RequestIdFilter(logging.Filter):
    """Stamp the in-flight request id onto records that lack one."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = request_id_var.get()
        if request_id is not None and getattr(record, "request_id", None) is None:
            record.request_id = request_id  # type: ignore[attr-defined]
        return True


def _millis_timestamp(formatter: logging.Formatter, record: logging.LogRecord) -> str:
    stamp = logging.Formatter.formatTime(formatter, record, _TIMESTAMP_FMT)
    # strftime has no milliseconds; splice them in ahead of the +HHMM offset
    return f"{stamp[:-5]}.{int(record.msecs):03d}{stamp[-5:]}"


class _ContainerFormatter(logging.Formatter):
    """Human-readable line for container stdout.

    WARNING and above also carry the source location, and any record
    tagged with a request id gets a trailing ``rid=...`` marker.
    """

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        return _millis_timestamp(self, record)

    def format(self, record: logging.LogRecord) -> str:
        line = (
            f"{self.formatTime(record)} {record.levelname:<8} {record.name}  "
            f"{record.getMessage()}"
        )
        if record.levelno >= logging.WARNING:
            line += f"  [{record.filename}:{record.lineno}]"
        request_id = getattr(record, "request_id", None)
        if request_id:
            line += f"  rid={request_id}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


class _JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Request fields and enrollment fields are lifted to top-level keys
    when present on the record (via ``extra=`` or the request filter).
    """

    _LIFTED = (
        "request_id",
        "method",
        "path",
        "user_id",
        "status_code",
        "duration_ms",
        "enrollment_id",
        "course_id",
        "transition",
    )

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        return _millis_timestamp(self, record)

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value)
            for key in self._LIFTED
            if (value := getattr(record, key, None)) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Replace the root handlers with a single stdout handler.

    Unknown level names fall back to INFO.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())
    # On the handler, not the root logger: logger filters skip propagated records.
    handler.addFilter(_RequestIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
