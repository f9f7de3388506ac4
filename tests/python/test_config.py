"""Tests for configuration module."""

import pytest

from snapwarden.config import (
    CleanupConfig,
    Config,
    CreationConfig,
    LoggingConfig,
    ProviderConfig,
    get_config,
    set_config,
)
from snapwarden.exceptions import ConfigurationError, ErrorCode


class TestProviderConfig:
    """Test ProviderConfig model."""

    def test_default_values(self):
        """Test default provider config values."""
        config = ProviderConfig()

        assert config.name == "azure"
        assert config.region is None
        assert config.profile is None
        assert config.subscription_id is None

    def test_custom_values(self):
        config = ProviderConfig(name="aws", region="eu-west-1", profile="ops")

        assert config.name == "aws"
        assert config.region == "eu-west-1"
        assert config.profile == "ops"


class TestCreationConfig:
    """Test CreationConfig model."""

    def test_default_values(self):
        config = CreationConfig()

        assert config.default_backup_type == "incremental"
        assert config.name_suffix == "automated-backup"


class TestCleanupConfig:
    """Test CleanupConfig model."""

    def test_default_values(self):
        """Default retention is 14 days and scans AutomatedBackup=true."""
        config = CleanupConfig()

        assert config.default_retention_days == 14
        assert config.filter_tag_key == "AutomatedBackup"
        assert config.filter_tag_value == "true"

    def test_negative_retention_rejected(self):
        with pytest.raises(ValueError):
            CleanupConfig(default_retention_days=-1)


class TestLoggingConfig:
    """Test LoggingConfig model."""

    def test_default_values(self):
        config = LoggingConfig()

        assert config.level == "INFO"
        assert config.format == "plain"
        assert config.log_dir == "snapshot_logs"
        assert config.file is None


class TestConfig:
    """Test main Config class."""

    def test_default_config(self):
        config = Config()

        assert isinstance(config.provider, ProviderConfig)
        assert isinstance(config.creation, CreationConfig)
        assert isinstance(config.cleanup, CleanupConfig)
        assert isinstance(config.logging, LoggingConfig)

    def test_from_yaml(self, tmp_path):
        """Test loading config from a YAML file."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "provider:\n"
            "  name: aws\n"
            "  region: us-east-2\n"
            "cleanup:\n"
            "  default_retention_days: 30\n"
        )

        config = Config.from_yaml(path)

        assert config.provider.name == "aws"
        assert config.provider.region == "us-east-2"
        assert config.cleanup.default_retention_days == 30
        assert config.creation.name_suffix == "automated-backup"

    def test_from_yaml_missing_file(self, tmp_path):
        """A missing file yields defaults."""
        config = Config.from_yaml(tmp_path / "missing.yaml")
        assert config.provider.name == "azure"

    def test_from_yaml_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = Config.from_yaml(path)

        assert config.cleanup.default_retention_days == 14

    def test_to_yaml_round_trip(self, tmp_path):
        """Test saving and reloading config."""
        config = Config()
        config.provider.name = "memory"
        path = tmp_path / "nested" / "out.yaml"

        config.to_yaml(path)
        loaded = Config.from_yaml(path)

        assert path.exists()
        assert loaded.provider.name == "memory"

    def test_load_discovers_default_file(self):
        """Config.load picks up snapwarden.yaml in the working directory."""
        with open("snapwarden.yaml", "w") as f:
            f.write("creation:\n  name_suffix: nightly\n")

        config = Config.load()

        assert config.creation.name_suffix == "nightly"

    def test_load_uses_env_path(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("logging:\n  level: DEBUG\n")
        monkeypatch.setenv("SNAPWARDEN_CONFIG", str(path))

        config = Config.load()

        assert config.logging.level == "DEBUG"

    def test_env_override(self, monkeypatch):
        """Nested values can be set through SNAPWARDEN_ env variables."""
        monkeypatch.setenv("SNAPWARDEN_PROVIDER__NAME", "aws")
        monkeypatch.setenv("SNAPWARDEN_CLEANUP__DEFAULT_RETENTION_DAYS", "7")

        config = Config()

        assert config.provider.name == "aws"
        assert config.cleanup.default_retention_days == 7

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        """Environment variables win over values from the file."""
        path = tmp_path / "config.yaml"
        path.write_text("provider:\n  name: aws\n  region: us-east-1\n")
        monkeypatch.setenv("SNAPWARDEN_PROVIDER__REGION", "eu-west-1")

        config = Config.load(str(path))

        assert config.provider.region == "eu-west-1"
        assert config.provider.name == "aws"


class TestGlobalConfig:
    """Test get_config / set_config."""

    def test_get_config_returns_singleton(self):
        assert get_config() is get_config()

    def test_set_config(self):
        custom = Config()
        custom.creation.name_suffix = "custom"

        set_config(custom)

        assert get_config().creation.name_suffix == "custom"

    def test_set_config_none_resets(self):
        first = get_config()
        set_config(None)
        assert get_config() is not first


class TestValidation:
    """Test field normalization and load errors."""

    def test_provider_name_normalized(self):
        assert ProviderConfig(name=" AWS ").name == "aws"

    def test_backup_type_checked(self):
        assert CreationConfig(default_backup_type="Full").default_backup_type == "full"
        with pytest.raises(ValueError):
            CreationConfig(default_backup_type="weekly")

    def test_log_level_and_format_checked(self):
        config = LoggingConfig(level="debug", format="JSON")

        assert config.level == "DEBUG"
        assert config.format == "json"
        with pytest.raises(ValueError):
            LoggingConfig(level="chatty")
        with pytest.raises(ValueError):
            LoggingConfig(format="xml")

    def test_filter_tag(self):
        config = CleanupConfig(filter_tag_key="Backup", filter_tag_value="auto")
        assert config.filter_tag == {"Backup": "auto"}

    def test_explicit_missing_path(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            Config.load(str(tmp_path / "missing.yaml"))

        assert exc_info.value.error_code == ErrorCode.CONFIG_MISSING

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("provider: [aws\n")

        with pytest.raises(ConfigurationError) as exc_info:
            Config.from_yaml(path)

        assert exc_info.value.error_code == ErrorCode.CONFIG_VALIDATION

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- aws\n- azure\n")

        with pytest.raises(ConfigurationError):
            Config.from_yaml(path)
