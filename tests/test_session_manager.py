"""Tests for in-memory session management."""

from datetime import UTC, datetime, timedelta

from design_agent.models.session import SANDBOX_DIR_NAME, ensure_sandbox_root
from design_agent.services.cancellation import CancellationToken
from design_agent.services.session_manager import InMemorySessionManager


class TestSandboxRoot:
    """Tests for sandbox root creation."""

    def test_created_inside_workspace(self, tmp_path):
        """Test that the sandbox directory is created on first use."""
        root = ensure_sandbox_root(tmp_path)

        assert root == tmp_path / SANDBOX_DIR_NAME
        assert root.is_dir()

    def test_existing_root_is_reused(self, tmp_path):
        """Test that an existing sandbox keeps its contents."""
        root = ensure_sandbox_root(tmp_path)
        (root / "design.html").write_text("<html></html>")

        assert ensure_sandbox_root(tmp_path) == root
        assert (root / "design.html").exists()


class TestInMemorySessionManager:
    """Tests for InMemorySessionManager."""

    def test_create_session(self, tmp_path):
        """Test creating a session with a generated id."""
        manager = InMemorySessionManager(workspace=tmp_path)

        session = manager.get_or_create_session()

        assert session.session_id
        assert session.root == tmp_path / SANDBOX_DIR_NAME
        assert len(session.conversation) == 0
        assert manager.get_session_count() == 1

    def test_generated_ids_are_unique(self, tmp_path):
        """Test that generated ids differ."""
        manager = InMemorySessionManager(workspace=tmp_path)

        ids = {manager.get_or_create_session().session_id for _ in range(5)}

        assert len(ids) == 5

    def test_existing_session_returned(self, tmp_path):
        """Test that a known id returns the same session."""
        manager = InMemorySessionManager(workspace=tmp_path)
        session = manager.get_or_create_session("design-1")

        assert manager.get_or_create_session("design-1") is session
        assert manager.get_session("design-1") is session

    def test_unknown_session(self, tmp_path):
        """Test that get_session does not create sessions."""
        manager = InMemorySessionManager(workspace=tmp_path)

        assert manager.get_session("missing") is None
        assert manager.get_session_count() == 0

    def test_delete_session_cancels_query(self, tmp_path):
        """Test that deleting a busy session fires its token."""
        manager = InMemorySessionManager(workspace=tmp_path)
        session = manager.get_or_create_session("design-1")
        token = CancellationToken()
        session.active_token = token

        assert manager.delete_session("design-1") is True
        assert token.cancelled
        assert manager.delete_session("design-1") is False

    def test_expired_sessions_removed(self, tmp_path):
        """Test that idle sessions expire."""
        manager = InMemorySessionManager(workspace=tmp_path, session_timeout_minutes=1)
        session = manager.get_or_create_session("old")
        session.last_activity = datetime.now(UTC) - timedelta(minutes=5)

        assert manager.get_session("old") is None

    def test_busy_sessions_do_not_expire(self, tmp_path):
        """Test that a session with a query in flight is kept."""
        manager = InMemorySessionManager(workspace=tmp_path, session_timeout_minutes=1)
        session = manager.get_or_create_session("running")
        session.active_token = CancellationToken()
        session.last_activity = datetime.now(UTC) - timedelta(minutes=5)

        assert manager.get_session("running") is session

    def test_as_dict(self, tmp_path):
        """Test the session summary."""
        session = InMemorySessionManager(workspace=tmp_path).get_or_create_session("design-1")

        data = session.as_dict()

        assert data["session_id"] == "design-1"
        assert data["turn_count"] == 0
        assert data["busy"] is False
