"""File write tool."""

import asyncio
from pathlib import Path

from pydantic import BaseModel, Field

from design_agent.errors import ToolError
from design_agent.models.results import ErrorKind, ToolResult
from design_agent.models.session import SandboxContext
from design_agent.tools.base import ToolDefinition
from design_agent.tools.paths import resolve_workspace_path, to_display_path
from design_agent.tools.utils import count_lines, handle_tool_error, tool_success
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)


class WriteInput(BaseModel):
    """Input schema for the write tool."""

    file_path: str = Field(
        ...,
        description="Path to the file to write to (relative to workspace root, or absolute path within workspace)",
    )
    content: str = Field(..., description="Content to write to the file")
    create_dirs: bool = Field(default=True, description="Whether to create parent directories if they don't exist")


def write_text_file(path: Path, content: str, create_dirs: bool = True) -> bool:
    """Write ``content`` to ``path`` as UTF-8.

    Returns:
        True if the file did not exist before
    """
    if path.is_dir():
        raise ToolError(f"Target path is a directory, not a file: {path.name}", ErrorKind.VALIDATION)
    if create_dirs and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug(f"[write] Created parent directories for {path}")

    is_new_file = not path.exists()
    path.write_text(content, encoding="utf-8")
    return is_new_file


async def write_handler(params: WriteInput, context: SandboxContext) -> ToolResult:
    """Write a file inside the sandbox."""
    try:
        absolute_path = resolve_workspace_path(params.file_path, context)
        if absolute_path.is_dir():
            raise ToolError(f"Target path is a directory, not a file: {params.file_path}", ErrorKind.VALIDATION)

        is_new_file = await asyncio.to_thread(write_text_file, absolute_path, params.content, params.create_dirs)
        display_path = to_display_path(absolute_path, context)

        lines = count_lines(params.content)
        size = len(params.content.encode("utf-8"))
        logger.info(
            f"[write] {'Created' if is_new_file else 'Updated'} file: {display_path} ({lines} lines, {size} bytes)"
        )

        return tool_success(
            file_path=display_path,
            absolute_path=str(absolute_path),
            is_new_file=is_new_file,
            lines_written=lines,
            bytes_written=size,
        )
    except ToolError as e:
        return handle_tool_error(e)
    except Exception as e:
        return handle_tool_error(e, "Write tool execution")


def create_write_tool() -> ToolDefinition:
    return ToolDefinition(
        name="write",
        description="Write content to a file in the design workspace. Creates parent directories if needed.",
        input_model=WriteInput,
        handler=write_handler,
    )
