"""In-process secret store for tests and keychain-less environments."""

import threading


class MemorySecretStore:
    """Dict-backed store. Nothing survives a restart."""

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def set(self, scope: str, key: str, value: str) -> None:
        with self._lock:
            self._entries.setdefault(scope, {})[key] = value

    def get(self, scope: str, key: str) -> str | None:
        with self._lock:
            return self._entries.get(scope, {}).get(key)

    def delete(self, scope: str, key: str) -> bool:
        with self._lock:
            return self._entries.get(scope, {}).pop(key, None) is not None

    def enumerate(self, scope: str) -> list[str]:
        with self._lock:
            return list(self._entries.get(scope, {}))

    def clear(self) -> None:
        """Drop every entry in every scope."""
        with self._lock:
            self._entries.clear()
