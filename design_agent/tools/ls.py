"""Directory listing tool."""

import asyncio
import fnmatch
import math
import os
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from design_agent.errors import ToolError
from design_agent.models.results import ToolResult
from design_agent.models.session import SandboxContext
from design_agent.tools.base import ToolDefinition
from design_agent.tools.paths import resolve_workspace_path
from design_agent.tools.utils import handle_tool_error, tool_success, validate_directory_exists
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


class LsInput(BaseModel):
    """Input schema for the ls tool."""

    path: str = Field(default=".", description="Directory to list, relative to the workspace root")
    show_hidden: bool = Field(default=False, description="Whether to show hidden files and directories")
    ignore: list[str] = Field(default_factory=list, description='Glob patterns to ignore (e.g., ["*.log", "temp*"])')
    detailed: bool = Field(default=False, description="Whether to show size and modification time")


def format_file_size(size: int) -> str:
    """Human readable size, e.g. ``1.5 KB``."""
    if size == 0:
        return "0 B"
    exponent = min(int(math.log(size, 1024)), len(SIZE_UNITS) - 1)
    value = round(size / 1024**exponent, 1)
    return f"{value:g} {SIZE_UNITS[exponent]}"


def format_modified_time(modified: float, now: float | None = None) -> str:
    """Relative age for recent entries, a date for older ones."""
    elapsed = (now or time.time()) - modified
    minutes = int(elapsed // 60)
    hours = int(elapsed // 3600)
    days = int(elapsed // 86400)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return datetime.fromtimestamp(modified, UTC).date().isoformat()


def list_directory(directory: Path, show_hidden: bool, ignore: list[str]) -> tuple[list[dict[str, Any]], int, int]:
    """List entries of ``directory``.

    Returns:
        Entries sorted directories first then by name, the hidden count and the ignored count
    """
    entries: list[dict[str, Any]] = []
    hidden = 0
    ignored = 0

    for name in os.listdir(directory):
        if not show_hidden and name.startswith("."):
            hidden += 1
            continue
        if any(fnmatch.fnmatchcase(name, pattern) for pattern in ignore):
            ignored += 1
            continue

        try:
            stat = (directory / name).stat()
        except OSError as e:
            logger.warning(f"[ls] Error accessing {name}: {e}")
            continue

        is_directory = (directory / name).is_dir()
        entries.append(
            {
                "name": name,
                "is_directory": is_directory,
                "size": 0 if is_directory else stat.st_size,
                "modified_time": stat.st_mtime,
                "extension": None if is_directory else Path(name).suffix.lstrip(".") or None,
            }
        )

    entries.sort(key=lambda e: (not e["is_directory"], e["name"].lower()))
    return entries, hidden, ignored


def render_detailed_listing(entries: list[dict[str, Any]]) -> str:
    lines = []
    for entry in entries:
        kind = "[DIR]" if entry["is_directory"] else "[FILE]"
        size = "" if entry["is_directory"] else f" {format_file_size(entry['size'])}"
        extension = f" .{entry['extension']}" if entry["extension"] else ""
        lines.append(f"{kind} {entry['name']}{size} {format_modified_time(entry['modified_time'])}{extension}")
    return "\n\nDetailed listing:\n" + "\n".join(lines)


async def ls_handler(params: LsInput, context: SandboxContext) -> ToolResult:
    """List a directory inside the sandbox."""
    try:
        directory = resolve_workspace_path(params.path, context)
        validate_directory_exists(directory, params.path)
        logger.info(f"[ls] Listing directory: {params.path}")

        entries, hidden, ignored = await asyncio.to_thread(list_directory, directory, params.show_hidden, params.ignore)

        summary = f"Listed {len(entries)} item(s) in {params.path}"
        if hidden:
            summary += f" ({hidden} hidden)"
        if ignored:
            summary += f" ({ignored} ignored)"

        detailed_listing = render_detailed_listing(entries) if params.detailed and entries else ""
        logger.debug(f"[ls] {summary}{detailed_listing}")

        for entry in entries:
            entry["modified_time"] = datetime.fromtimestamp(entry["modified_time"], UTC).isoformat()

        payload: dict[str, Any] = {
            "path": params.path,
            "absolute_path": str(directory),
            "entries": entries,
            "total_count": len(entries),
            "hidden_count": hidden,
            "ignored_count": ignored,
            "directories": sum(1 for e in entries if e["is_directory"]),
            "files": sum(1 for e in entries if not e["is_directory"]),
            "summary": summary,
        }
        if params.detailed:
            payload["detailed_listing"] = detailed_listing
        return tool_success(**payload)
    except ToolError as e:
        return handle_tool_error(e)
    except Exception as e:
        return handle_tool_error(e, "Ls tool execution")


def create_ls_tool() -> ToolDefinition:
    return ToolDefinition(
        name="ls",
        description=(
            "List the contents of a directory in the design workspace. "
            "Shows files and subdirectories with optional filtering."
        ),
        input_model=LsInput,
        handler=ls_handler,
    )
