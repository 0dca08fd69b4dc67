"""Secret storage backends."""

from secrets_mcp.config.loader import Settings, get_settings
from secrets_mcp.stores.base import SecretStore
from secrets_mcp.stores.keyring_store import KeyringSecretStore
from secrets_mcp.stores.memory import MemorySecretStore


def create_secret_store(settings: Settings | None = None) -> SecretStore:
    """Build the store selected by ``SECRET_BACKEND``."""
    settings = settings or get_settings()
    if settings.secret_backend == "memory":
        return MemorySecretStore()
    return KeyringSecretStore()


__all__ = [
    "SecretStore",
    "KeyringSecretStore",
    "MemorySecretStore",
    "create_secret_store",
]
