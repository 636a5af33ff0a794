"""Public API for shared edudesk configuration utilities."""

from .loader import load_settings
from .models import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_CREDENTIALS_PATH,
    ApiSettings,
    EdudeskSettings,
    LoggingSettings,
    StorageSettings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_CREDENTIALS_PATH",
    "ApiSettings",
    "EdudeskSettings",
    "LoggingSettings",
    "StorageSettings",
    "load_settings",
]
