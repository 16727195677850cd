"""
Unit tests for environment-driven configuration.
"""

import pytest

from compat.schemacompat.config import CompatConfig, EngineConfig, ObservabilityConfig
from compat.schemacompat.schema.types import Mode
from compat.schemacompat.schema.versioning import Strategy

ENV_VARS = [
    "SCHEMA_COMPAT_MODE",
    "SCHEMA_COMPAT_STRATEGY",
    "SCHEMA_COMPAT_FAIL_ON_BREAK",
    "SCHEMA_COMPAT_MAX_WORKERS",
    "LOG_LEVEL",
    "LOG_FORMAT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestCompatConfig:
    """Tests for CompatConfig."""

    def test_defaults(self):
        """Defaults: full mode, latestMinor, fail on break."""
        config = CompatConfig.from_env()
        assert config == CompatConfig(Mode.FULL, Strategy.LATEST_MINOR, True, None)

    def test_from_env(self, monkeypatch):
        """All settings are read from the environment."""
        monkeypatch.setenv("SCHEMA_COMPAT_MODE", "Backward")
        monkeypatch.setenv("SCHEMA_COMPAT_STRATEGY", "previous_major")
        monkeypatch.setenv("SCHEMA_COMPAT_FAIL_ON_BREAK", "false")
        monkeypatch.setenv("SCHEMA_COMPAT_MAX_WORKERS", "4")
        config = CompatConfig.from_env()
        assert config.mode is Mode.BACKWARD
        assert config.strategy is Strategy.PREVIOUS_MAJOR
        assert config.fail_on_break is False
        assert config.max_workers == 4

    def test_invalid_mode(self, monkeypatch):
        """Unknown modes fail at load time."""
        monkeypatch.setenv("SCHEMA_COMPAT_MODE", "sideways")
        with pytest.raises(ValueError, match="Invalid compatibility mode"):
            CompatConfig.from_env()

    def test_invalid_workers(self, monkeypatch):
        """Worker counts must be integers."""
        monkeypatch.setenv("SCHEMA_COMPAT_MAX_WORKERS", "many")
        with pytest.raises(ValueError, match="SCHEMA_COMPAT_MAX_WORKERS"):
            CompatConfig.from_env()


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_from_env_validates(self, monkeypatch):
        """Worker counts below one are rejected."""
        monkeypatch.setenv("SCHEMA_COMPAT_MAX_WORKERS", "0")
        with pytest.raises(ValueError, match="must be >= 1"):
            EngineConfig.from_env()

    def test_log_settings(self, monkeypatch):
        """Log level and format are normalised."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_FORMAT", "JSON")
        config = EngineConfig.from_env()
        assert config.observability == ObservabilityConfig("DEBUG", "json")

    def test_invalid_log_format(self, monkeypatch):
        """Unknown log formats are rejected."""
        monkeypatch.setenv("LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="Invalid LOG_FORMAT"):
            EngineConfig.from_env()

    def test_log_config(self, caplog):
        """log_config emits one info record."""
        caplog.set_level("INFO")
        EngineConfig().log_config()
        assert "Schema compatibility configuration loaded" in caplog.text
