"""Sandbox path resolution.

Every path a tool receives goes through ``resolve_workspace_path`` before it
touches the filesystem. Resolution is purely lexical: it never stats, opens
or follows anything, so a rejected path is rejected without side effects.
"""

import os
import re
from pathlib import Path, PurePosixPath

from design_agent.errors import SecurityError, ToolError
from design_agent.models.results import ErrorKind
from design_agent.models.session import SandboxContext

_SEGMENT_SPLIT = re.compile(r"[\\/]")


def has_traversal_segment(path: str) -> bool:
    """Return True if any segment of ``path`` is ``..`` (either separator)."""
    return any(segment == ".." for segment in _SEGMENT_SPLIT.split(path))


def is_within(path: str | Path, root: str | Path) -> bool:
    """Component-wise containment check: ``/ws/app`` is not inside ``/ws/a``."""
    path_parts = Path(os.path.normpath(path)).parts
    root_parts = Path(os.path.normpath(root)).parts
    return path_parts[: len(root_parts)] == root_parts


def resolve_workspace_path(path: str, context: SandboxContext) -> Path:
    """Resolve a tool-supplied path against the sandbox root.

    Args:
        path: Root-relative path, or absolute path inside the root
        context: Sandbox context of the current query

    Returns:
        Normalized absolute path inside the root

    Raises:
        ToolError: If the path is empty or contains a NUL byte (validation)
        SecurityError: If the path contains a traversal segment or escapes the root
    """
    if not path or not path.strip():
        raise ToolError("Path must be a non-empty string", ErrorKind.VALIDATION)
    if "\x00" in path:
        raise ToolError("Path must not contain NUL bytes", ErrorKind.VALIDATION)

    # Rejected outright, even if the normalized result would stay inside the root
    if has_traversal_segment(path):
        raise SecurityError(f'Path cannot contain ".." for security reasons: {path}')

    root = os.path.normpath(context.root)
    if os.path.isabs(path):
        resolved = os.path.normpath(path)
    else:
        resolved = os.path.normpath(os.path.join(root, path))

    if not is_within(resolved, root):
        raise SecurityError(f"Path must be within workspace directory: {path}", details={"root": root})

    return Path(resolved)


def to_display_path(path: str | Path, context: SandboxContext) -> str:
    """Render ``path`` relative to the sandbox root with forward slashes."""
    try:
        relative = Path(os.path.normpath(path)).relative_to(os.path.normpath(context.root))
    except ValueError:
        return str(path)
    return PurePosixPath(*relative.parts).as_posix() if relative.parts else "."
