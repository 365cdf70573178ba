"""Session and sandbox state."""

import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from design_agent.models.messages import Conversation
from design_agent.services.cancellation import CancellationToken
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

SANDBOX_DIR_NAME = ".superdesign"


@dataclass
class SandboxContext:
    """Per-query execution context handed to every tool.

    Owned by the orchestrator for the duration of one query and never persisted.
    """

    root: Path
    session_id: str
    cancellation: CancellationToken = field(default_factory=CancellationToken)

    def __post_init__(self) -> None:
        self.root = Path(self.root).absolute()


def ensure_sandbox_root(workspace: str | Path | None = None) -> Path:
    """Return the sandbox directory for a workspace, creating it if missing.

    Without a workspace the sandbox lives under the system temp directory.

    Args:
        workspace: Host-provided working directory

    Returns:
        Absolute path of the sandbox root
    """
    base = Path(workspace) if workspace else Path(tempfile.gettempdir()) / "design-agent"
    root = (base / SANDBOX_DIR_NAME).absolute()
    if not root.exists():
        logger.info(f"Creating sandbox root at {root}")
        root.mkdir(parents=True, exist_ok=True)
    return root


@dataclass
class Session:
    """Conversation state for one chat session."""

    session_id: str
    root: Path
    conversation: Conversation = field(default_factory=Conversation)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = field(default_factory=lambda: datetime.now(UTC))
    active_token: CancellationToken | None = None

    @property
    def busy(self) -> bool:
        """Whether a query is currently in flight."""
        return self.active_token is not None and not self.active_token.cancelled

    def as_dict(self) -> dict[str, Any]:
        """Return the session as a dictionary."""
        return {
            "session_id": self.session_id,
            "root": str(self.root),
            "turn_count": len(self.conversation),
            "busy": self.busy,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }

    def update_activity(self) -> None:
        """Update the last activity timestamp."""
        self.last_activity = datetime.now(UTC)

    def new_context(self) -> SandboxContext:
        """Create the sandbox context for a new query."""
        return SandboxContext(root=self.root, session_id=self.session_id)
