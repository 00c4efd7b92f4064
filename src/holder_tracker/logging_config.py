"""
Logging configuration for the Holder Tracker.

Supports two formats:
- ``text`` (default): human-readable log lines
- ``json``: structured JSON for log aggregation (ELK, Datadog, etc.)

Every record carries two correlation fields:
- ``request_id``: set per HTTP request by the API middleware
- ``stage``: the pipeline stage (``snapshot`` / ``backfill`` / ``realtime``)
  that emitted the line, so interleaved async work stays readable

Settings via env vars:
- ``LOG_LEVEL``: DEBUG / INFO / WARNING / ERROR (default: INFO)
- ``LOG_FORMAT``: text / json (default: text)
"""

from __future__ import annotations

import json as json_mod
import logging
import sys
import uuid
from contextvars import ContextVar

from config import LOG_FORMAT, LOG_LEVEL

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
stage_ctx: ContextVar[str] = ContextVar("stage", default="-")


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "stage": stage_ctx.get("-"),
            "msg": record.getMessage(),
            "request_id": request_id_ctx.get("-"),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json_mod.dumps(entry, default=str)


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get("-")  # type: ignore[attr-defined]
        record.stage = stage_ctx.get("-")  # type: ignore[attr-defined]
        return True


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure the root logger based on env settings."""
    level = (level or LOG_LEVEL).upper()
    fmt = fmt or LOG_FORMAT

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s [%(stage)s] (%(request_id)s) %(message)s",
                defaults={"request_id": "-", "stage": "-"},
            )
        )
    handler.addFilter(_ContextFilter())
    root.addHandler(handler)


def generate_request_id() -> str:
    """Create a short unique request ID."""
    return uuid.uuid4().hex[:12]
