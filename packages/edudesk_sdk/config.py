"""Runtime configuration primitives for edudesk SDK clients."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from packages.edudesk_shared.config import (
    DEFAULT_CREDENTIALS_PATH,
    ApiSettings,
    EdudeskSettings,
)

_API_DEFAULTS = ApiSettings()

DEFAULT_BASE_URL = _API_DEFAULTS.base_url
DEFAULT_TIMEOUT_SECONDS = _API_DEFAULTS.timeout_seconds


@dataclass(frozen=True, slots=True)
class SdkConfig:
    """Endpoint locations and bounds for one SDK client."""

    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    login_path: str = _API_DEFAULTS.login_path
    register_path: str = _API_DEFAULTS.register_path
    refresh_path: str = _API_DEFAULTS.refresh_path
    credentials_path: Path = DEFAULT_CREDENTIALS_PATH

    @classmethod
    def from_settings(cls, settings: EdudeskSettings) -> SdkConfig:
        """Project typed root settings onto the SDK runtime view."""
        return cls(
            base_url=settings.api.base_url,
            timeout_seconds=settings.api.timeout_seconds,
            login_path=settings.api.login_path,
            register_path=settings.api.register_path,
            refresh_path=settings.api.refresh_path,
            credentials_path=settings.storage.credentials_path,
        )
