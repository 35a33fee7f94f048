"""Unit tests for the process settings module."""

import pytest
from pydantic import ValidationError

from tada.config import Settings, get_settings


def _make_settings(**overrides) -> Settings:
    """Create a Settings instance isolated from any real .env file."""
    return Settings(_env_file=None, **overrides)


class TestDefaults:
    """Tests for default settings values."""

    def test_defaults(self, monkeypatch):
        for var in ("TADA_CONFIG_PATH", "TADA_HOST", "TADA_PORT", "TADA_ENVIRONMENT"):
            monkeypatch.delenv(var, raising=False)
        settings = _make_settings()
        assert settings.config_path == "./config.toml"
        assert settings.host == "0.0.0.0"
        assert settings.port == 3000
        assert settings.environment == "production"
        assert settings.is_development is False


class TestEnvironmentOverrides:
    """Tests for TADA_* environment variables."""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("TADA_PORT", "4100")
        monkeypatch.setenv("TADA_CONFIG_PATH", "/etc/tada/config.json")
        settings = _make_settings()
        assert settings.port == 4100
        assert settings.config_path == "/etc/tada/config.json"

    def test_development_flag(self, monkeypatch):
        monkeypatch.setenv("TADA_ENVIRONMENT", "Development")
        assert _make_settings().is_development is True

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestValidation:
    """Tests for field constraints."""

    @pytest.mark.parametrize("port", [0, 70000])
    def test_port_out_of_range(self, port):
        with pytest.raises(ValidationError):
            _make_settings(port=port)

    def test_poll_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            _make_settings(poll_interval=0)

    def test_zero_debounce_allowed(self):
        assert _make_settings(debounce_seconds=0).debounce_seconds == 0

    def test_docker_ping_timeout(self, monkeypatch):
        monkeypatch.delenv("TADA_DOCKER_PING_TIMEOUT", raising=False)
        assert _make_settings().docker_ping_timeout == 5.0
        with pytest.raises(ValidationError):
            _make_settings(docker_ping_timeout=0)
