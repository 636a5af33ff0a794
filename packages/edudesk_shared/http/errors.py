"""Typed errors for the shared outbound HTTP client."""

from __future__ import annotations

from dataclasses import dataclass

import httpx


@dataclass(eq=False)
class HttpClientError(Exception):
    """Base error for outbound HTTP client call failures."""

    message: str
    method: str
    url: str
    retryable: bool = False

    def __str__(self) -> str:
        """Return the human-readable error message."""
        return self.message


@dataclass(eq=False)
class HttpRequestError(HttpClientError):
    """Transport-level failure before any response was received."""

    cause: Exception | None = None

    @property
    def timed_out(self) -> bool:
        """Return True when the underlying failure was an httpx timeout."""
        return isinstance(self.cause, httpx.TimeoutException)


@dataclass(eq=False)
class HttpJsonDecodeError(HttpClientError):
    """JSON decode failure for an otherwise successful response."""

    status_code: int = 0
    response_body: str = ""
    cause: Exception | None = None
