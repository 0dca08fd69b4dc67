"""OS keychain secret store built on the ``keyring`` library.

``keyring`` selects the native backend for the platform: Windows Credential
Manager, macOS Keychain, or the freedesktop Secret Service on Linux.

``keyring`` has no portable way to enumerate entries. On the Secret Service
backend the collection is searched by its ``service`` attribute. Every other
backend gets a JSON key index kept in the keychain itself, under a separate
service name so it can never collide with a caller's key.
"""

import json
import logging
import threading

import keyring
from keyring.backend import KeyringBackend
from keyring.backends import SecretService
from keyring.errors import PasswordDeleteError

logger = logging.getLogger(__name__)

INDEX_SERVICE_SUFFIX = "::index"
INDEX_ACCOUNT = "keys"


class KeyringSecretStore:
    """Secret store backed by the platform keychain."""

    def __init__(self, backend: KeyringBackend | None = None) -> None:
        self.backend = backend or keyring.get_keyring()
        self._secret_service = _find_secret_service(self.backend)
        self._index_lock = threading.Lock()
        logger.info(
            f"Using keyring backend: {type(self.backend).__module__}."
            f"{type(self.backend).__name__}"
        )

    @property
    def native_listing(self) -> bool:
        """True when keys are enumerated straight from the Secret Service."""
        return self._secret_service is not None

    def set(self, scope: str, key: str, value: str) -> None:
        self.backend.set_password(scope, key, value)
        if not self.native_listing:
            self._update_index(scope, add=key)

    def get(self, scope: str, key: str) -> str | None:
        return self.backend.get_password(scope, key)

    def delete(self, scope: str, key: str) -> bool:
        if self.backend.get_password(scope, key) is None:
            return False
        try:
            self.backend.delete_password(scope, key)
        except PasswordDeleteError:
            return False
        if not self.native_listing:
            self._update_index(scope, remove=key)
        return True

    def enumerate(self, scope: str) -> list[str]:
        if self._secret_service is not None:
            collection = self._secret_service.get_preferred_collection()
            items = collection.search_items({"service": scope})
            return [item.get_attributes()["username"] for item in items]
        with self._index_lock:
            return self._read_index(scope)

    def _read_index(self, scope: str) -> list[str]:
        raw = self.backend.get_password(scope + INDEX_SERVICE_SUFFIX, INDEX_ACCOUNT)
        if not raw:
            return []
        keys = json.loads(raw)
        if not isinstance(keys, list):
            raise ValueError(f"Corrupt key index for service '{scope}'")
        return [str(k) for k in keys]

    def _update_index(
        self, scope: str, add: str | None = None, remove: str | None = None
    ) -> None:
        with self._index_lock:
            keys = self._read_index(scope)
            if add is not None and add not in keys:
                keys.append(add)
            elif remove is not None and remove in keys:
                keys.remove(remove)
            else:
                return
            self.backend.set_password(
                scope + INDEX_SERVICE_SUFFIX, INDEX_ACCOUNT, json.dumps(keys)
            )


def _find_secret_service(backend: KeyringBackend) -> SecretService.Keyring | None:
    """Return the Secret Service backend when it is the one receiving writes.

    A chainer writes to its first backend, so a Secret Service further down
    the chain never sees our entries and cannot list them.
    """
    chained = getattr(backend, "backends", None)
    candidate = chained[0] if chained else backend
    if isinstance(candidate, SecretService.Keyring):
        return candidate
    return None
