"""Configuration loading with deterministic precedence.

The cascade is always:
1) CLI params
2) Environment variables
3) ~/.config/edudesk/edudesk.yaml (or an explicit ``config_path``)
4) Built-in model defaults

Environment variable format:
- Prefix: ``EDUDESK_``
- Nested keys: ``__`` separator
- Example: ``EDUDESK_API__BASE_URL=https://school.example/api``
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Mapping

from .models import DEFAULT_CONFIG_PATH, EdudeskSettings


def load_settings(
    *,
    cli_params: Mapping[str, Any] | None = None,
    config_path: str | Path | None = None,
) -> EdudeskSettings:
    """Resolve one settings snapshot using the edudesk precedence cascade."""
    settings_cls = _settings_for_path(
        Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    )
    return settings_cls(**_drop_unset(cli_params or {}))


def _settings_for_path(path: Path) -> type[EdudeskSettings]:
    """Return a settings class reading its YAML layer from ``path``."""
    if path == EdudeskSettings._config_path:
        return EdudeskSettings

    class _PathScopedSettings(EdudeskSettings):
        _config_path: ClassVar[Path] = path

    return _PathScopedSettings


def _drop_unset(values: Mapping[str, Any]) -> dict[str, Any]:
    """Remove ``None`` leaves so unset CLI flags never mask lower layers."""
    output: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, Mapping):
            nested = _drop_unset(value)
            if nested:
                output[str(key)] = nested
            continue
        if value is not None:
            output[str(key)] = value
    return output
