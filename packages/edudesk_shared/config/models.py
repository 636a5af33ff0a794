"""Typed configuration models for edudesk runtime settings."""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "edudesk"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "edudesk.yaml"
DEFAULT_CREDENTIALS_PATH = DEFAULT_CONFIG_DIR / "credentials.json"


class LoggingSettings(BaseModel):
    """Structured logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    json_output: bool = False
    service: str = "edudesk"
    environment: str = "dev"


class ApiSettings(BaseModel):
    """Remote REST endpoint locations and request bounds."""

    base_url: str = "http://localhost:8000/api"
    timeout_seconds: float = Field(default=10.0, gt=0)
    login_path: str = "/auth/login"
    register_path: str = "/auth/register"
    refresh_path: str = "/auth/token/refresh"

    @field_validator("base_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: object) -> object:
        """Normalize base URLs so joined paths never double their slashes."""
        if isinstance(value, str):
            normalized = value.strip().rstrip("/")
            if normalized == "":
                raise ValueError("base_url must be non-empty")
            return normalized
        return value

    @field_validator("login_path", "register_path", "refresh_path", mode="before")
    @classmethod
    def _require_leading_slash(cls, value: object) -> object:
        """Reject endpoint paths that would resolve relative to the base path."""
        if isinstance(value, str) and not value.startswith("/"):
            raise ValueError("endpoint paths must start with '/'")
        return value


class StorageSettings(BaseModel):
    """Durable credential storage location."""

    credentials_path: Path = DEFAULT_CREDENTIALS_PATH


class EdudeskSettings(BaseSettings):
    """Root runtime settings resolved from init/env/yaml/defaults sources."""

    model_config = SettingsConfigDict(
        env_prefix="EDUDESK_",
        env_nested_delimiter="__",
        extra="ignore",
        nested_model_default_partial_update=True,
    )

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    _config_path: ClassVar[Path] = DEFAULT_CONFIG_PATH

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Apply edudesk precedence: init > env > yaml > model defaults."""
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(
                settings_cls,
                yaml_file=cls._config_path,
                yaml_file_encoding="utf-8",
            ),
        )
