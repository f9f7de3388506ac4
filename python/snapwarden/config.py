"""
Configuration management for the snapshot lifecycle engine.

Settings come from a YAML file with ``SNAPWARDEN_`` environment variable
overrides (nested keys use ``__``, e.g. ``SNAPWARDEN_PROVIDER__NAME=aws``).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from snapwarden.exceptions import ConfigurationError

CONFIG_ENV_VAR = "SNAPWARDEN_CONFIG"
CONFIG_SEARCH_PATHS = (
    "snapwarden.yaml",
    "snapwarden.yml",
    "config/snapwarden.yaml",
    ".snapwarden.yaml",
)

_BACKUP_TYPE_WORDS = frozenset({"inc", "incr", "incremental", "i", "full", "f"})


class ProviderConfig(BaseModel):
    """Cloud provider backend and its credentials scope."""

    name: str = Field(default="azure", description="Provider backend (azure, aws, memory)")
    region: str | None = Field(default=None, description="Default region (AWS)")
    profile: str | None = Field(default=None, description="Named credentials profile (AWS)")
    subscription_id: str | None = Field(default=None, description="Subscription id (Azure)")

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return value.strip().lower()


class CreationConfig(BaseModel):
    """Snapshot creation defaults."""

    default_backup_type: str = Field(
        default="incremental",
        description="Backup type used when an entry omits or misspells it",
    )
    name_suffix: str = Field(
        default="automated-backup",
        min_length=1,
        description="Fixed fragment inserted into every generated snapshot name",
    )

    @field_validator("default_backup_type")
    @classmethod
    def _check_backup_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in _BACKUP_TYPE_WORDS:
            raise ValueError(f"unknown backup type '{value}' (expected incremental or full)")
        return normalized


class CleanupConfig(BaseModel):
    """Retention cleanup defaults."""

    default_retention_days: int = Field(
        default=14,
        ge=0,
        description="Retention applied when a snapshot's RetentionDays tag is missing or invalid",
    )
    filter_tag_key: str = Field(default="AutomatedBackup", description="Tag key used to scan")
    filter_tag_value: str = Field(default="true", description="Tag value used to scan")

    @property
    def filter_tag(self) -> dict[str, str]:
        return {self.filter_tag_key: self.filter_tag_value}


class LoggingConfig(BaseModel):
    """Log level, console format and log file location."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="plain", description="Console log format (json, plain)")
    log_dir: str = Field(default="snapshot_logs", description="Directory for JSONL log files")
    file: str | None = Field(default=None, description="Log file name (None for one per run)")

    @field_validator("level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level '{value}'")
        return level

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        fmt = value.strip().lower()
        if fmt not in ("plain", "json"):
            raise ValueError(f"unknown log format '{value}' (expected plain or json)")
        return fmt


class Config(BaseSettings):
    """Main configuration for snapwarden."""

    model_config = SettingsConfigDict(
        env_prefix="SNAPWARDEN_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    creation: CreationConfig = Field(default_factory=CreationConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; environment variables override them
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, path: str | Path) -> Config:
        """
        Load configuration from a YAML file.

        A missing file yields the defaults.

        Raises:
            ConfigurationError: If the file is not a YAML mapping.
        """
        path = Path(path)
        if not path.exists():
            return cls()

        try:
            with path.open() as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError.validation_failed(str(path), None, f"invalid YAML: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError.validation_failed(
                str(path), type(data).__name__, "top level must be a mapping"
            )
        return cls(**data)

    @classmethod
    def load(cls, config_path: str | None = None) -> Config:
        """
        Load configuration with precedence:
        1. Environment variables (highest)
        2. Config file (explicit path, $SNAPWARDEN_CONFIG, or the first
           of CONFIG_SEARCH_PATHS that exists)
        3. Defaults (lowest)

        Raises:
            ConfigurationError: If an explicitly named file does not exist.
        """
        explicit = config_path or os.getenv(CONFIG_ENV_VAR)
        if explicit:
            if not Path(explicit).exists():
                raise ConfigurationError.missing_file(explicit)
            return cls.from_yaml(explicit)

        found = next((p for p in CONFIG_SEARCH_PATHS if Path(p).exists()), None)
        return cls.from_yaml(found) if found else cls()

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with path.open("w") as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)


_config: Config | None = None


def get_config() -> Config:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config | None) -> None:
    """Replace the process-wide configuration; ``None`` forces a reload."""
    global _config
    _config = config
