"""Exact-match edit tools: ``edit`` for a single replacement, ``multiedit`` for a sequence."""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from design_agent.errors import ToolError
from design_agent.models.results import ErrorKind, ToolResult
from design_agent.models.session import SandboxContext
from design_agent.tools.base import ToolDefinition
from design_agent.tools.paths import resolve_workspace_path, to_display_path
from design_agent.tools.utils import count_lines, handle_tool_error, tool_success, validate_file_exists
from design_agent.tools.write import write_text_file
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)


class EditInput(BaseModel):
    """Input schema for the edit tool."""

    file_path: str = Field(
        ...,
        description="Path to the file to edit (relative to workspace root, or absolute path within workspace)",
    )
    old_string: str = Field(
        ...,
        description=(
            "The exact text to find and replace. Must match exactly including whitespace and indentation. "
            "Use an empty string to create a new file."
        ),
    )
    new_string: str = Field(..., description="The text to replace old_string with")
    expected_replacements: int = Field(default=1, ge=1, description="Number of replacements expected")


class SingleEdit(BaseModel):
    """One find-and-replace step of a multiedit."""

    old_string: str = Field(..., description="The exact text to find and replace")
    new_string: str = Field(..., description="The text to replace old_string with")
    expected_replacements: int = Field(default=1, ge=1, description="Number of replacements expected")


class MultiEditInput(BaseModel):
    """Input schema for the multiedit tool."""

    file_path: str = Field(
        ...,
        description="Path to the file to edit (relative to workspace root, or absolute path within workspace)",
    )
    edits: list[SingleEdit] = Field(..., min_length=1, description="Edit operations to perform in sequence")
    fail_fast: bool = Field(default=True, description="Stop on the first failing edit without writing anything")


@dataclass
class EditOutcome:
    """Result of applying one edit to in-memory content."""

    content: str
    occurrences: int
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


def read_normalized(path: Path) -> str:
    """Read a UTF-8 file with CRLF line endings normalized to LF."""
    return path.read_text(encoding="utf-8").replace("\r\n", "\n")


def apply_edit(content: str, old_string: str, new_string: str, expected_replacements: int = 1) -> EditOutcome:
    """Replace every occurrence of ``old_string`` if the count matches ``expected_replacements``."""
    occurrences = content.count(old_string) if old_string else 0

    if occurrences == 0:
        preview = old_string[:50] + ("..." if len(old_string) > 50 else "")
        return EditOutcome(
            content,
            0,
            f'Text not found: "{preview}". Ensure exact text match including whitespace and indentation.',
        )
    if occurrences != expected_replacements:
        return EditOutcome(
            content,
            occurrences,
            f"Expected {expected_replacements} replacement(s) but found {occurrences} occurrence(s).",
        )

    return EditOutcome(content.replace(old_string, new_string), occurrences)


def _edit_file(path: Path, params: EditInput) -> tuple[bool, EditOutcome]:
    if not path.exists():
        if params.old_string:
            raise ToolError(
                f"File not found: {params.file_path}. Cannot apply edit. Use empty old_string to create a new file.",
                ErrorKind.FILE_NOT_FOUND,
            )
        write_text_file(path, params.new_string)
        return True, EditOutcome(params.new_string, 1)

    if path.is_dir():
        raise ToolError(f"Path is a directory, not a file: {params.file_path}", ErrorKind.VALIDATION)
    if not params.old_string:
        raise ToolError(f"File already exists, cannot create: {params.file_path}", ErrorKind.EXECUTION)

    outcome = apply_edit(read_normalized(path), params.old_string, params.new_string, params.expected_replacements)
    if not outcome.success:
        raise ToolError(outcome.error, ErrorKind.EXECUTION, {"occurrences": outcome.occurrences})

    write_text_file(path, outcome.content, create_dirs=False)
    return False, outcome


async def edit_handler(params: EditInput, context: SandboxContext) -> ToolResult:
    """Apply a single exact-match replacement."""
    try:
        absolute_path = resolve_workspace_path(params.file_path, context)
        is_new_file, outcome = await asyncio.to_thread(_edit_file, absolute_path, params)
        display_path = to_display_path(absolute_path, context)

        if is_new_file:
            logger.info(f"[edit] Created new file: {display_path}")
        else:
            logger.info(f"[edit] Applied {outcome.occurrences} replacement(s) to: {display_path}")

        return tool_success(
            file_path=display_path,
            absolute_path=str(absolute_path),
            is_new_file=is_new_file,
            replacements_made=outcome.occurrences,
            lines_total=count_lines(outcome.content),
            bytes_total=len(outcome.content.encode("utf-8")),
            old_string_length=len(params.old_string),
            new_string_length=len(params.new_string),
        )
    except ToolError as e:
        return handle_tool_error(e, "Edit operation")
    except Exception as e:
        return handle_tool_error(e, "Edit tool execution")


def _multiedit_file(path: Path, params: MultiEditInput) -> dict[str, Any]:
    validate_file_exists(path, params.file_path)
    try:
        original = read_normalized(path)
    except PermissionError as e:
        raise ToolError(f"Failed to read file: {e}", ErrorKind.PERMISSION) from e

    content = original
    edit_results: list[dict[str, Any]] = []
    successful = 0
    total_replacements = 0

    for step, edit in enumerate(params.edits, start=1):
        outcome = apply_edit(content, edit.old_string, edit.new_string, edit.expected_replacements)
        edit_results.append(
            {
                "edit": edit.model_dump(),
                "success": outcome.success,
                "occurrences": outcome.occurrences,
                **({"error": outcome.error} if outcome.error else {}),
            }
        )

        if outcome.success:
            content = outcome.content
            successful += 1
            total_replacements += outcome.occurrences
            logger.debug(f"[multiedit] Edit {step} successful: {outcome.occurrences} replacement(s)")
            continue

        logger.debug(f"[multiedit] Edit {step} failed: {outcome.error}")
        if params.fail_fast:
            raise ToolError(f"Edit operation failed at step {step}: {outcome.error}", ErrorKind.EXECUTION)

    if successful:
        write_text_file(path, content, create_dirs=False)

    return {
        "edits_total": len(params.edits),
        "edits_successful": successful,
        "edits_failed": len(params.edits) - successful,
        "total_replacements": total_replacements,
        "lines_total": count_lines(content),
        "bytes_total": len(content.encode("utf-8")),
        "content_changed": content != original,
        "edit_results": edit_results,
    }


async def multiedit_handler(params: MultiEditInput, context: SandboxContext) -> ToolResult:
    """Apply a sequence of replacements, each on the result of the previous one."""
    try:
        absolute_path = resolve_workspace_path(params.file_path, context)
        display_path = to_display_path(absolute_path, context)
        logger.info(f"[multiedit] Performing {len(params.edits)} edit(s) on: {display_path}")

        summary = await asyncio.to_thread(_multiedit_file, absolute_path, params)
        logger.info(
            f"[multiedit] Completed: {summary['edits_successful']}/{summary['edits_total']} edits successful, "
            f"{summary['total_replacements']} total replacements"
        )

        return tool_success(file_path=display_path, absolute_path=str(absolute_path), **summary)
    except ToolError as e:
        return handle_tool_error(e, "Edit sequence")
    except Exception as e:
        return handle_tool_error(e, "Multiedit tool execution")


def create_edit_tool() -> ToolDefinition:
    return ToolDefinition(
        name="edit",
        description=(
            "Replace text within a file using exact string matching. "
            "Accepts both relative and absolute file paths within the workspace."
        ),
        input_model=EditInput,
        handler=edit_handler,
    )


def create_multiedit_tool() -> ToolDefinition:
    return ToolDefinition(
        name="multiedit",
        description=(
            "Perform multiple find-and-replace operations on a single file in sequence. "
            "Each edit is applied to the result of the previous edit."
        ),
        input_model=MultiEditInput,
        handler=multiedit_handler,
    )
