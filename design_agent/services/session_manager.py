"""In-memory session storage."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

from cuid2 import cuid_wrapper

from design_agent.models.session import Session, ensure_sandbox_root
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class InMemorySessionManager:
    """Keeps one conversation per session id for the lifetime of the process.

    Every session shares the workspace sandbox; sessions idle for longer than
    the timeout are dropped unless a query is still running.

    Args:
        workspace: Host working directory the sandbox root is created in
        session_timeout_minutes: Minutes of inactivity before a session expires
    """

    def __init__(self, workspace: str | Path | None = None, session_timeout_minutes: int = 60):
        self.workspace = workspace
        self.sessions: dict[str, Session] = {}
        self.session_timeout = timedelta(minutes=session_timeout_minutes)

    def get_or_create_session(self, session_id: str | None = None) -> Session:
        """Return the session for ``session_id``, creating it when unknown.

        A caller-supplied id is kept so hosts can name their sessions.
        """
        session = self.get_session(session_id) if session_id else None
        if session is not None:
            return session

        session_id = session_id or cuid()
        session = Session(session_id=session_id, root=ensure_sandbox_root(self.workspace))
        self.sessions[session_id] = session
        logger.info(f"Created session {session_id} with sandbox {session.root}")
        return session

    def get_session(self, session_id: str) -> Session | None:
        self._expire_idle_sessions()
        session = self.sessions.get(session_id)
        if session is not None:
            session.update_activity()
        return session

    def delete_session(self, session_id: str) -> bool:
        """Drop a session and stop its running query, if any.

        Returns:
            False if the session did not exist
        """
        session = self.sessions.pop(session_id, None)
        if session is None:
            return False
        if session.active_token is not None:
            session.active_token.cancel("session deleted")
        logger.info(f"Deleted session {session_id}")
        return True

    def get_session_count(self) -> int:
        self._expire_idle_sessions()
        return len(self.sessions)

    def _expire_idle_sessions(self) -> None:
        cutoff = datetime.now(UTC) - self.session_timeout
        for session_id, session in list(self.sessions.items()):
            if session.busy or session.last_activity >= cutoff:
                continue
            logger.debug(f"Expiring idle session {session_id}")
            del self.sessions[session_id]
