"""Structured JSON logging for release runs.

Every record carries the ``run_id`` of the goal run it belongs to (set with
:func:`run_context`) and any of the well-known ``extra`` fields below, so a
run's build, push and deploy lines can be filtered out of a shared stream.
"""
from __future__ import annotations

import contextlib
import contextvars
import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterator

run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "run_id", default=""
)

# ``extra=`` keys copied into the JSON entry when present
EXTRA_FIELDS = ("stage", "registry", "container", "port")


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, service_name: str = "unknown") -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service_name": self.service_name,
            "run_id": run_id_var.get(""),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry, default=str)


def setup_logging(service_name: str, level: str = "INFO") -> logging.Logger:
    """Install a single JSON stderr handler on the ``src`` logger tree.

    Calling it again replaces the handler, so the CLI can reconfigure the
    level per invocation.

    Args:
        service_name: Value of the ``service_name`` field.
        level: Level name, case-insensitive; unknown names mean INFO.
    """
    logger = logging.getLogger("src")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter(service_name=service_name))
    logger.addHandler(handler)
    return logger


@contextlib.contextmanager
def run_context(run_id: str) -> Iterator[str]:
    """Tag every log record emitted inside the block with *run_id*."""
    token = run_id_var.set(run_id)
    try:
        yield run_id
    finally:
        run_id_var.reset(token)
