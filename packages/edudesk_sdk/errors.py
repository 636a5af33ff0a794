"""Error taxonomy for edudesk SDK calls and optimistic mutations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

GENERIC_FAILURE_NOTICE = "The change could not be saved. Please try again."
SESSION_EXPIRED_NOTICE = "Your session has expired. Please sign in again."
NETWORK_FAILURE_NOTICE = "The server could not be reached. Please try again."


@dataclass(eq=False)
class EdudeskSdkError(Exception):
    """Base error type for edudesk SDK failures."""

    message: str

    def __str__(self) -> str:
        """Return human-readable error message."""
        return self.message


@dataclass(eq=False)
class NetworkError(EdudeskSdkError):
    """Transport failure or timeout; never retried automatically."""

    method: str = ""
    path: str = ""
    timed_out: bool = False
    cause: Exception | None = None


@dataclass(eq=False)
class AuthExpiredError(EdudeskSdkError):
    """Session could not be renewed; terminal until the user signs in again."""

    reason: str = ""


@dataclass(eq=False)
class HttpError(EdudeskSdkError):
    """Non-2xx response other than a renewable 401.

    ``body`` is the server payload passed through unmodified: decoded JSON
    when the response was JSON, raw text otherwise.
    """

    status: int = 0
    body: Any = None
    method: str = ""
    path: str = ""

    @property
    def detail(self) -> str | None:
        """Return the server-provided ``detail`` message, if any."""
        if isinstance(self.body, dict):
            detail = self.body.get("detail")
            if isinstance(detail, str) and detail.strip() != "":
                return detail
        return None

    @property
    def field_errors(self) -> dict[str, list[str]]:
        """Return per-field validation messages from the response body."""
        if not isinstance(self.body, dict):
            return {}
        errors: dict[str, list[str]] = {}
        for key, value in self.body.items():
            if key == "detail":
                continue
            if isinstance(value, list):
                messages = [str(item) for item in value if str(item).strip() != ""]
            elif isinstance(value, str):
                messages = [value]
            else:
                continue
            if messages:
                errors[str(key)] = messages
        return errors


@dataclass(eq=False)
class ReconciliationError(EdudeskSdkError):
    """Internal invariant violation while reconciling local state.

    Indicates a logic bug (for example replacing an id that is not present),
    never a user-facing condition.
    """

    entity_id: str = ""
    operation: str = ""


def describe_failure(error: BaseException) -> str:
    """Return the message a UI should show for one failed operation."""
    if isinstance(error, AuthExpiredError):
        return SESSION_EXPIRED_NOTICE
    if isinstance(error, NetworkError):
        return NETWORK_FAILURE_NOTICE
    if isinstance(error, HttpError):
        if error.detail is not None:
            return error.detail
        field_errors = error.field_errors
        if field_errors:
            return "\n".join(
                f"{name}: {'; '.join(messages)}"
                for name, messages in field_errors.items()
            )
    return GENERIC_FAILURE_NOTICE
