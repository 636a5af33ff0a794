"""Logging setup for edudesk clients.

Records go to stderr so command output on stdout stays machine-readable. Each
record carries the bound context fields (method, path, resource, entity id)
and has bearer credentials scrubbed from its rendered message.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

from . import fields
from .context import REDACTED, bind_context, get_context

_BEARER = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]+")


def scrub(text: str) -> str:
    """Mask bearer credentials embedded in ``text``."""
    return _BEARER.sub(f"Bearer {REDACTED}", text)


class ContextFilter(logging.Filter):
    """Attach the current context to records and scrub their messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.context = get_context()
        message = record.getMessage()
        cleaned = scrub(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line: core fields first, then context."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            fields.TIMESTAMP: datetime.fromtimestamp(record.created, UTC).isoformat(),
            fields.LEVEL: record.levelname,
            fields.LOGGER: record.name,
            fields.MESSAGE: record.getMessage(),
        }
        payload.update(getattr(record, "context", None) or {})
        if record.exc_info:
            payload["exception"] = scrub(self.formatException(record.exc_info))
        return json.dumps(payload, default=str, separators=(",", ":"))


class PlainFormatter(logging.Formatter):
    """Terminal format with ``key=value`` context appended in key order."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "context", None) or {}
        pairs = [f"{key}={context[key]}" for key in sorted(context)]
        return " ".join([line, *pairs])


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = True,
    service: str | None = None,
    environment: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Install one handler on the root logger, replacing any existing ones.

    ``service`` and ``environment`` are bound into the logging context so
    every subsequent record carries them.
    """
    handler = logging.StreamHandler(sys.stderr if stream is None else stream)
    handler.setLevel(level.upper())
    handler.addFilter(ContextFilter())
    handler.setFormatter(JsonFormatter() if json_output else PlainFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    bind_context(
        **{fields.SERVICE: service or None, fields.ENVIRONMENT: environment or None}
    )


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a standard library logger for ``name``."""
    return logging.getLogger(name)
