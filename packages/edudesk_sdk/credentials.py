"""Session credential model and its persistent, observable store."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, ValidationError

from packages.edudesk_sdk.storage import KeyValueStorage, MemoryStorage
from packages.edudesk_shared.logging import get_logger, log_context
from packages.edudesk_shared.logging import fields

_LOGGER = get_logger(__name__)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
USER_KEY = "user"
CREDENTIAL_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY)


class Profile(BaseModel):
    """Authenticated user descriptor; opaque beyond a few display fields."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: int | str
    username: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    role: str = ""

    @property
    def display_name(self) -> str:
        """Return full name when known, falling back to the username."""
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.username or str(self.id)


@dataclass(frozen=True, slots=True)
class Credential:
    """Access/refresh token pair for one authenticated user."""

    access_token: str
    refresh_token: str
    user: Profile
    expires_at_hint: datetime | None = None

    @classmethod
    def issue(cls, *, access_token: str, refresh_token: str, user: Profile) -> Credential:
        """Build a credential, deriving the expiry hint from the access token."""
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            user=user,
            expires_at_hint=token_expiry_hint(access_token),
        )

    def with_access_token(
        self, access_token: str, *, refresh_token: str | None = None
    ) -> Credential:
        """Return a renewed credential; the refresh token rotates when given."""
        return replace(
            self,
            access_token=access_token,
            refresh_token=refresh_token or self.refresh_token,
            expires_at_hint=token_expiry_hint(access_token),
        )

    def __repr__(self) -> str:
        return f"Credential(user={self.user.username!r}, expires_at_hint={self.expires_at_hint!r})"


class SessionEndReason(StrEnum):
    """Why a session ended."""

    LOGOUT = "logout"
    RENEWAL_FAILED = "renewal_failed"


SessionEndedListener = Callable[[SessionEndReason], None]


def token_expiry_hint(token: str) -> datetime | None:
    """Return the ``exp`` claim of a JWT access token, without verification.

    Non-JWT tokens and tokens without a numeric ``exp`` yield ``None``.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return None
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError):
        return None
    exp = claims.get("exp") if isinstance(claims, dict) else None
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return datetime.fromtimestamp(exp, tz=UTC)


class CredentialStore:
    """Holds the current credential and persists it across restarts.

    ``get`` is served from memory once the persisted state has been read;
    ``set`` and ``clear`` update memory and storage in one synchronous step.
    """

    def __init__(self, storage: KeyValueStorage | None = None) -> None:
        self._storage = MemoryStorage() if storage is None else storage
        self._current: Credential | None = None
        self._loaded = False
        self._listeners: list[SessionEndedListener] = []

    def get(self) -> Credential | None:
        """Return the current credential, if a session is active."""
        if not self._loaded:
            self._current = self._load()
            self._loaded = True
        return self._current

    def set(self, credential: Credential) -> None:
        """Persist ``credential`` and make it visible to subsequent reads."""
        self._storage.write(
            {
                ACCESS_TOKEN_KEY: credential.access_token,
                REFRESH_TOKEN_KEY: credential.refresh_token,
                USER_KEY: credential.user.model_dump_json(),
            }
        )
        self._current = credential
        self._loaded = True

    def clear(self, reason: SessionEndReason = SessionEndReason.LOGOUT) -> None:
        """Remove all credential state and notify session-ended listeners.

        Listeners are notified only when a session was actually active.
        """
        had_session = self.get() is not None
        self._storage.delete(CREDENTIAL_KEYS)
        self._current = None
        self._loaded = True
        if had_session:
            self._notify(reason)

    def subscribe(self, listener: SessionEndedListener) -> Callable[[], None]:
        """Register a session-ended listener; returns its unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, reason: SessionEndReason) -> None:
        with log_context({fields.SESSION_END_REASON: reason.value}):
            _LOGGER.info("Session ended")
            for listener in tuple(self._listeners):
                try:
                    listener(reason)
                except Exception:
                    _LOGGER.exception("Session-ended listener failed")

    def _load(self) -> Credential | None:
        """Rebuild the credential from storage; partial state counts as none."""
        try:
            access = self._storage.read(ACCESS_TOKEN_KEY)
            refresh = self._storage.read(REFRESH_TOKEN_KEY)
            raw_user = self._storage.read(USER_KEY)
            if not access or not refresh or not raw_user:
                return None
            user = Profile.model_validate(_parse_json_object(raw_user))
        except (ValueError, ValidationError):
            _LOGGER.warning("Discarding unreadable persisted session", exc_info=True)
            self._storage.delete(CREDENTIAL_KEYS)
            return None
        return Credential.issue(access_token=access, refresh_token=refresh, user=user)


def _parse_json_object(raw: str) -> dict[str, Any]:
    """Decode one JSON object, rejecting other JSON shapes."""
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise ValueError("expected a JSON object")
    return value
