"""Tests for settings loading."""

import pytest

from secrets_mcp.config import Settings
from secrets_mcp.config.loader import DEFAULT_SERVICE_NAME


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "PORT",
        "HOST",
        "SECRET_BACKEND",
        "SERVICE_NAME",
        "MCP_AUTH_TOKEN",
        "SESSION_TTL_SECONDS",
        "JSON_RESPONSE",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_defaults(self, clean_env):
        settings = Settings(_env_file=None)
        assert settings.port == 3000
        assert settings.host == "localhost"
        assert settings.secret_backend == "keyring"
        assert settings.service_name == DEFAULT_SERVICE_NAME
        assert settings.json_response is True
        assert settings.auth_enabled is False
        assert settings.session_expiry_enabled is False

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("PORT", "8123")
        clean_env.setenv("HOST", "0.0.0.0")
        clean_env.setenv("SECRET_BACKEND", "memory")
        clean_env.setenv("SESSION_TTL_SECONDS", "600")

        settings = Settings(_env_file=None)
        assert settings.port == 8123
        assert settings.host == "0.0.0.0"
        assert settings.secret_backend == "memory"
        assert settings.session_expiry_enabled is True

    def test_auth_enabled_with_token(self, clean_env):
        clean_env.setenv("MCP_AUTH_TOKEN", "abc")
        assert Settings(_env_file=None).auth_enabled is True

    def test_invalid_port_is_rejected(self, clean_env):
        clean_env.setenv("PORT", "not-a-port")
        with pytest.raises(ValueError):
            Settings(_env_file=None)

    def test_unknown_backend_is_rejected(self, clean_env):
        clean_env.setenv("SECRET_BACKEND", "vault")
        with pytest.raises(ValueError):
            Settings(_env_file=None)
