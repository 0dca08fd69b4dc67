"""Configuration loading and management."""

from secrets_mcp.config.loader import DEFAULT_SERVICE_NAME, Settings, get_settings

__all__ = ["DEFAULT_SERVICE_NAME", "Settings", "get_settings"]
