"""Shared helpers that build tool results and validate filesystem targets."""

import traceback
from pathlib import Path
from typing import Any

from design_agent.errors import ToolError
from design_agent.models.results import ErrorKind, ToolFailure, ToolSuccess
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

STACK_LINES = 3


def tool_success(**fields: Any) -> ToolSuccess:
    """Create a success result carrying ``fields`` as its payload."""
    return ToolSuccess(**fields)


def tool_error(
    error: str,
    context: str | None = None,
    kind: ErrorKind = ErrorKind.UNKNOWN,
    details: Any = None,
) -> ToolFailure:
    """Create a failure result.

    Args:
        error: Human readable message
        context: Optional prefix naming the step that failed
        kind: Error classification
        details: Optional structured details

    Returns:
        Failure result with the message prefixed by ``context``
    """
    message = f"{context}: {error}" if context else error
    logger.error(f"Tool error ({kind}): {message}")
    return ToolFailure(error=message, error_kind=kind, details=details)


def handle_tool_error(
    error: BaseException | str,
    context: str | None = None,
    kind: ErrorKind | None = None,
) -> ToolFailure:
    """Convert an exception into a failure result.

    ``ToolError`` keeps its own kind and details. Other exceptions are
    classified by type unless ``kind`` is given, and carry a truncated
    traceback in ``details``.
    """
    if isinstance(error, str):
        return tool_error(error, context, kind or ErrorKind.UNKNOWN)

    if isinstance(error, ToolError):
        return tool_error(error.message, context, kind or error.kind, error.details)

    details = {
        "name": type(error).__name__,
        "stack": traceback.format_exception(error)[-STACK_LINES:],
    }
    return tool_error(str(error) or type(error).__name__, context, kind or classify_exception(error), details)


def classify_exception(error: BaseException) -> ErrorKind:
    """Map a Python exception to an error kind."""
    match error:
        case ToolError():
            return error.kind
        case PermissionError():
            return ErrorKind.PERMISSION
        case FileNotFoundError():
            return ErrorKind.FILE_NOT_FOUND
        case _:
            return ErrorKind.EXECUTION


def validate_file_exists(path: Path, display_path: str) -> None:
    """Raise unless ``path`` exists.

    Raises:
        ToolError: ``file_not_found`` if missing, ``permission`` if it cannot be inspected
    """
    try:
        exists = path.exists()
    except OSError as e:
        raise ToolError(f"Cannot access {display_path}: {e}", ErrorKind.PERMISSION) from e
    if not exists:
        raise ToolError(f"File not found: {display_path}", ErrorKind.FILE_NOT_FOUND)


def validate_directory_exists(path: Path, display_path: str) -> None:
    """Raise unless ``path`` is an existing directory.

    Raises:
        ToolError: ``file_not_found`` if missing, ``validation`` if not a directory
    """
    try:
        exists = path.exists()
        is_dir = path.is_dir()
    except OSError as e:
        raise ToolError(f"Cannot access {display_path}: {e}", ErrorKind.PERMISSION) from e
    if not exists:
        raise ToolError(f"Directory not found: {display_path}", ErrorKind.FILE_NOT_FOUND)
    if not is_dir:
        raise ToolError(f"Path is not a directory: {display_path}", ErrorKind.VALIDATION)


def count_lines(content: str) -> int:
    """Count lines the way editors do: ``"a\\nb"`` and ``"a\\nb\\n"`` differ."""
    return content.count("\n") + 1
