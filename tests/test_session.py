"""Tests for HTTP session tracking."""

from datetime import timedelta

import pytest

from secrets_mcp.mcp.models import ClientInfo
from secrets_mcp.mcp.session import Session, SessionManager


def age(session: Session, seconds: int) -> None:
    session.last_activity -= timedelta(seconds=seconds)


class TestSession:
    """Tests for a single session."""

    def test_new_session_is_not_initialized(self):
        session = Session("abc")
        assert session.initialized is False
        assert session.client_info is None

    def test_mark_initialized(self):
        session = Session("abc")
        session.mark_initialized("2025-03-26", ClientInfo(name="cli", version="2"))
        assert session.initialized is True
        assert session.protocol_version == "2025-03-26"
        assert session.client_info.name == "cli"

    def test_never_expires_without_ttl(self):
        session = Session("abc")
        age(session, 10**6)
        assert session.is_expired(None) is False

    def test_expires_after_ttl(self):
        session = Session("abc")
        assert session.is_expired(timedelta(seconds=30)) is False
        age(session, 31)
        assert session.is_expired(timedelta(seconds=30)) is True


class TestSessionManager:
    """Tests for the session map."""

    def test_create_and_get(self):
        manager = SessionManager()
        session = manager.create_session()
        assert manager.get_session(session.session_id) is session
        assert manager.session_count == 1

    def test_ids_are_unique(self):
        manager = SessionManager()
        ids = {manager.create_session().session_id for _ in range(50)}
        assert len(ids) == 50

    def test_get_unknown(self):
        assert SessionManager().get_session("nope") is None

    def test_remove(self):
        manager = SessionManager()
        session = manager.create_session()
        assert manager.remove_session(session.session_id) is True
        assert manager.remove_session(session.session_id) is False
        assert manager.get_session(session.session_id) is None

    def test_sessions_persist_without_ttl(self):
        manager = SessionManager()
        session = manager.create_session()
        age(session, 10**6)
        assert manager.cleanup_expired() == 0
        assert manager.get_session(session.session_id) is session

    def test_cleanup_expired_with_ttl(self):
        manager = SessionManager(ttl_seconds=60)
        stale = manager.create_session()
        fresh = manager.create_session()
        age(stale, 120)

        assert manager.cleanup_expired() == 1
        assert manager.get_session(stale.session_id) is None
        assert manager.get_session(fresh.session_id) is fresh

    def test_expired_session_is_dropped_on_lookup(self):
        manager = SessionManager(ttl_seconds=60)
        session = manager.create_session()
        age(session, 120)

        assert manager.get_session(session.session_id) is None
        assert manager.session_count == 0

    def test_lookup_refreshes_activity(self):
        manager = SessionManager(ttl_seconds=60)
        session = manager.create_session()
        age(session, 50)
        manager.get_session(session.session_id)
        age(session, 50)
        assert manager.get_session(session.session_id) is session

    def test_clear(self):
        manager = SessionManager()
        manager.create_session()
        manager.create_session()
        manager.clear()
        assert manager.session_count == 0

    @pytest.mark.asyncio
    async def test_cleanup_task_only_runs_with_ttl(self):
        manager = SessionManager()
        await manager.start_cleanup_task()
        assert manager._cleanup_task is None

        expiring = SessionManager(ttl_seconds=60)
        await expiring.start_cleanup_task()
        assert expiring._cleanup_task is not None
        expiring.stop_cleanup_task()
        assert expiring._cleanup_task is None
