"""MCP session tracking for the HTTP transport."""

import asyncio
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone

from secrets_mcp.mcp.models import ClientInfo

logger = logging.getLogger(__name__)

# How often the optional expiry sweep runs
CLEANUP_INTERVAL_SECONDS = 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session:
    """One logical MCP client conversation."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.created_at = _utcnow()
        self.last_activity = self.created_at
        self.protocol_version: str | None = None
        self.client_info: ClientInfo | None = None

    def touch(self) -> None:
        """Update last activity timestamp."""
        self.last_activity = _utcnow()

    def is_expired(self, ttl: timedelta | None) -> bool:
        """Check if the session has been idle longer than ``ttl``."""
        if ttl is None:
            return False
        return _utcnow() - self.last_activity > ttl

    def mark_initialized(
        self, protocol_version: str, client_info: ClientInfo | None
    ) -> None:
        """Record what was negotiated during ``initialize``."""
        self.protocol_version = protocol_version
        self.client_info = client_info

    @property
    def initialized(self) -> bool:
        return self.protocol_version is not None


class SessionManager:
    """
    Thread-safe map of session id to Session.

    Sessions never expire unless ``ttl_seconds`` is positive. Without a TTL
    the map grows with every new client until the server stops.
    """

    def __init__(self, ttl_seconds: int = 0):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds > 0 else None
        self._cleanup_task: asyncio.Task | None = None

    def create_session(self) -> Session:
        """Create a new session."""
        session_id = str(uuid.uuid4())
        session = Session(session_id)
        with self._lock:
            self._sessions[session_id] = session
        logger.info(f"Created session: {session_id}")
        return session

    def get_session(self, session_id: str) -> Session | None:
        """Get a session by ID."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.is_expired(self._ttl):
                del self._sessions[session_id]
                logger.info(f"Session expired: {session_id}")
                return None
        if session is not None:
            session.touch()
        return session

    def remove_session(self, session_id: str) -> bool:
        """Remove a session. Returns False if it did not exist."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.info(f"Removed session: {session_id}")
            return True
        return False

    def cleanup_expired(self) -> int:
        """Remove expired sessions, returning how many were dropped."""
        with self._lock:
            expired = [
                sid for sid, session in self._sessions.items()
                if session.is_expired(self._ttl)
            ]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired sessions")
        return len(expired)

    async def start_cleanup_task(self) -> None:
        """Start background task to clean up expired sessions (TTL only)."""
        if self._ttl is None:
            return

        async def cleanup_loop():
            while True:
                await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
                self.cleanup_expired()

        self._cleanup_task = asyncio.create_task(cleanup_loop())

    def stop_cleanup_task(self) -> None:
        """Stop the cleanup background task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    def clear(self) -> None:
        """Forget every session (server shutdown)."""
        with self._lock:
            self._sessions.clear()

    @property
    def session_count(self) -> int:
        """Return the number of active sessions."""
        with self._lock:
            return len(self._sessions)
