"""Secret management tools: store, retrieve, delete and list."""

import asyncio
import logging
import threading
from typing import Any, Callable, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from secrets_mcp.mcp.models import ToolCallResult
from secrets_mcp.mcp.registry import ToolRegistry
from secrets_mcp.stores.base import SecretStore
from secrets_mcp.tools.base import guarded

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings of store errors that mean enumeration is blocked by the platform
LISTING_RESTRICTED_MARKERS = ("Permission denied", "DBus", "D-Bus")

LISTING_UNAVAILABLE_TEXT = (
    "Listing secrets is not available in this environment due to system "
    "permissions. This is a known limitation on some Linux systems with "
    "restrictive DBus/Secret Service configurations. Secrets can still be "
    "stored, retrieved and deleted individually by key."
)


# =============================================================================
# Argument models
# =============================================================================


class StoreSecretArguments(BaseModel):
    model_config = ConfigDict(strict=True)

    key: str = Field(..., min_length=1)
    value: str


class KeyArguments(BaseModel):
    """Arguments for tools addressing a single secret by key."""

    model_config = ConfigDict(strict=True)

    key: str = Field(..., min_length=1)


class NoArguments(BaseModel):
    pass


def _key_schema(description: str) -> dict[str, Any]:
    return {"type": "string", "minLength": 1, "description": description}


STORE_SECRET_SCHEMA = {
    "type": "object",
    "properties": {
        "key": _key_schema("The unique identifier for the secret"),
        "value": {
            "type": "string",
            "description": "The secret value to store",
        },
    },
    "required": ["key", "value"],
}

RETRIEVE_SECRET_SCHEMA = {
    "type": "object",
    "properties": {
        "key": _key_schema("The unique identifier for the secret to retrieve"),
    },
    "required": ["key"],
}

DELETE_SECRET_SCHEMA = {
    "type": "object",
    "properties": {
        "key": _key_schema("The unique identifier for the secret to delete"),
    },
    "required": ["key"],
}

LIST_SECRETS_SCHEMA = {
    "type": "object",
    "properties": {},
}


# =============================================================================
# Handlers
# =============================================================================

_scope_locks: dict[str, threading.Lock] = {}
_scope_locks_guard = threading.Lock()


def scope_lock(scope: str) -> threading.Lock:
    """Return the lock serializing store calls for one service scope."""
    with _scope_locks_guard:
        return _scope_locks.setdefault(scope, threading.Lock())


def listing_restricted(message: str) -> ToolCallResult | None:
    """Degrade permission/IPC failures during listing to an informative result."""
    if any(marker in message for marker in LISTING_RESTRICTED_MARKERS):
        return ToolCallResult.text(LISTING_UNAVAILABLE_TEXT)
    return None


class SecretTools:
    """Tool handlers bound to one secret store and service scope."""

    def __init__(self, store: SecretStore, scope: str):
        self.store = store
        self.scope = scope
        self._lock = scope_lock(scope)

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        # Native keychain APIs block and are not guaranteed thread-safe
        def locked() -> T:
            with self._lock:
                return func(self.scope, *args)

        return await asyncio.to_thread(locked)

    @guarded("Failed to store secret")
    async def store_secret(self, args: StoreSecretArguments) -> ToolCallResult:
        await self._call(self.store.set, args.key, args.value)
        logger.info(f"Stored secret with key: {args.key}")
        return ToolCallResult.text(f"Successfully stored secret with key: {args.key}")

    @guarded("Failed to retrieve secret")
    async def retrieve_secret(self, args: KeyArguments) -> ToolCallResult:
        secret = await self._call(self.store.get, args.key)
        if secret is None:
            return ToolCallResult.text(f"No secret found with key: {args.key}")
        return ToolCallResult.text(secret)

    @guarded("Failed to delete secret")
    async def delete_secret(self, args: KeyArguments) -> ToolCallResult:
        deleted = await self._call(self.store.delete, args.key)
        if not deleted:
            return ToolCallResult.text(f"No secret found with key: {args.key}")
        logger.info(f"Deleted secret with key: {args.key}")
        return ToolCallResult.text(f"Successfully deleted secret with key: {args.key}")

    @guarded("Failed to list secrets", recover=listing_restricted)
    async def list_secrets(self, args: NoArguments) -> ToolCallResult:
        keys = await self._call(self.store.enumerate)
        if not keys:
            return ToolCallResult.text("No secrets stored yet.")
        lines = "\n".join(f"- {key}" for key in keys)
        return ToolCallResult.text(f"Stored secret keys:\n{lines}")


def register_tools(registry: ToolRegistry, store: SecretStore, scope: str) -> None:
    """Register the four secret tools, in their fixed order."""
    tools = SecretTools(store, scope)

    registry.register(
        name="store_secret",
        description=(
            "Securely store a secret using the operating system's native secret "
            "storage (Windows Credential Vault/DPAPI, macOS Keychain, or Linux "
            "Secret Service). The secret is encrypted and can only be accessed "
            "by the current user. Storing to an existing key overwrites it."
        ),
        input_schema=STORE_SECRET_SCHEMA,
        arguments_model=StoreSecretArguments,
        handler=tools.store_secret,
    )

    registry.register(
        name="retrieve_secret",
        description=(
            "Retrieve a previously stored secret from the operating system's "
            "native secret storage. Returns the decrypted secret value if it exists."
        ),
        input_schema=RETRIEVE_SECRET_SCHEMA,
        arguments_model=KeyArguments,
        handler=tools.retrieve_secret,
    )

    registry.register(
        name="delete_secret",
        description=(
            "Delete a secret from the operating system's native secret storage. "
            "This permanently removes the secret."
        ),
        input_schema=DELETE_SECRET_SCHEMA,
        arguments_model=KeyArguments,
        handler=tools.delete_secret,
    )

    registry.register(
        name="list_secrets",
        description=(
            "List all secret keys stored by this MCP server. Note: This returns "
            "only the keys (identifiers), not the actual secret values. Use "
            "retrieve_secret to get the values."
        ),
        input_schema=LIST_SECRETS_SCHEMA,
        arguments_model=NoArguments,
        handler=tools.list_secrets,
    )


def build_registry(store: SecretStore, scope: str) -> ToolRegistry:
    """Create a registry holding the secret tools for ``scope``."""
    registry = ToolRegistry()
    register_tools(registry, store, scope)
    return registry
