"""
Structured logging configuration.

Two output shapes, picked per environment and overridable with LOG_FORMAT:

    readable  one coloured line per record with the clarity scope appended,
              e.g. ``12:01:07 INFO  roleclarity.services.session_service:
              Session 4 extracted 'Writer' [ws=2 session=4]``
    json      one JSON object per record for log aggregation

Records logged during a request carry its request id automatically.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# ``extra={...}`` keys copied into JSON records
CONTEXT_KEYS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "workspace_id",
    "session_id",
    "proposal_id",
    "role_id",
    "purpose",
)

# Short labels used in the readable scope suffix
SCOPE_LABELS = (
    ("workspace_id", "ws"),
    ("session_id", "session"),
    ("proposal_id", "proposal"),
    ("role_id", "role"),
    ("purpose", "purpose"),
)

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
RESET = "\033[0m"


class RequestIdFilter(logging.Filter):
    """Stamp ``request_id`` from ``flask.g`` onto records that lack one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        for key in CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<7}"
        if self.color:
            level = f"{LEVEL_COLORS.get(record.levelname, '')}{level}{RESET}"

        scope = " ".join(
            f"{label}={getattr(record, key)}"
            for key, label in SCOPE_LABELS
            if getattr(record, key, None) not in (None, "")
        )
        line = f"{stamp} {level} {record.name}: {record.getMessage()}"
        if scope:
            line += f" [{scope}]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install one stderr handler on the root logger.

    LOG_LEVEL defaults to DEBUG in development and INFO otherwise.
    LOG_FORMAT (json | readable) defaults to json outside development and tests.
    """
    testing = app.config.get("TESTING", False)
    development = app.config.get("DEBUG", False)

    level_name = os.getenv("LOG_LEVEL", "DEBUG" if development else "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    fmt = os.getenv("LOG_FORMAT", "readable" if (development or testing) else "json").lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter(color=sys.stderr.isatty()))
    handler.addFilter(RequestIdFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine", "httpcore", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
