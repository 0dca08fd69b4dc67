"""Capability interface for secret storage backends."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class SecretStore(Protocol):
    """
    Minimal capability set a secret backend must provide.

    Every method is blocking and may raise. ``scope`` is the service name that
    namespaces this server's entries; ``key`` is unique within a scope.
    """

    def set(self, scope: str, key: str, value: str) -> None:
        """Store ``value`` under ``key``, overwriting any existing value."""
        ...

    def get(self, scope: str, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""
        ...

    def delete(self, scope: str, key: str) -> bool:
        """Remove the entry. Returns False if nothing was stored."""
        ...

    def enumerate(self, scope: str) -> list[str]:
        """Return every key stored in ``scope`` (order is backend-defined)."""
        ...
