"""Configuration loading from environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from secrets_mcp import __version__

# Service scope under which every secret is stored in the OS keychain
DEFAULT_SERVICE_NAME = "secrets-mcp-server"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Authentication (HTTP transport only)
    mcp_auth_token: str = ""

    # Secret storage
    secret_backend: Literal["keyring", "memory"] = "keyring"
    service_name: str = DEFAULT_SERVICE_NAME

    # HTTP transport behaviour
    json_response: bool = True
    session_ttl_seconds: int = 0  # 0 = sessions never expire

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Server info
    server_name: str = "secrets-mcp-server"
    server_version: str = __version__

    # Host and port
    host: str = "localhost"
    port: int = 3000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def auth_enabled(self) -> bool:
        """Check if authentication is enabled."""
        return bool(self.mcp_auth_token)

    @property
    def session_expiry_enabled(self) -> bool:
        """Check if idle HTTP sessions should be evicted."""
        return self.session_ttl_seconds > 0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
