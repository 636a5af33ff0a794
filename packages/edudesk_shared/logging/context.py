"""Structured logging context carried across awaits.

Fields live in a ``contextvars`` variable, so each asyncio task sees its own
copy and fields bound for one in-flight request never appear on the log lines
of another. Credential-bearing keys are masked at bind time and never reach a
formatter.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Mapping

REDACTED = "[redacted]"

_SECRET_KEYS = frozenset(
    {"authorization", "access", "access_token", "refresh", "refresh_token", "password"}
)

_FIELDS: ContextVar[Mapping[str, str]] = ContextVar("edudesk_log_fields", default={})


def is_secret_key(key: str) -> bool:
    """Return True when values under ``key`` must never be logged."""
    return key.lower() in _SECRET_KEYS


def _render(key: str, value: object) -> str:
    return REDACTED if is_secret_key(key) else str(value)


def get_context() -> dict[str, str]:
    """Return a copy of the fields bound in the current task."""
    return dict(_FIELDS.get())


def bind_context(**values: object) -> None:
    """Add ``values`` to the current context as strings; ``None`` is skipped."""
    merged = dict(_FIELDS.get())
    merged.update(
        {key: _render(key, value) for key, value in values.items() if value is not None}
    )
    _FIELDS.set(merged)


def clear_context(*keys: str) -> None:
    """Drop ``keys`` from the context, or every field when none are named."""
    if keys:
        _FIELDS.set({k: v for k, v in _FIELDS.get().items() if k not in keys})
    else:
        _FIELDS.set({})


@contextmanager
def log_context(values: Mapping[str, object]) -> Iterator[None]:
    """Bind ``values`` for the duration of the block, then restore the prior context."""
    token = _FIELDS.set(dict(_FIELDS.get()))
    try:
        bind_context(**{str(key): value for key, value in values.items()})
        yield
    finally:
        _FIELDS.reset(token)
