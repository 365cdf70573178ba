"""File read tool."""

import asyncio
import mimetypes
import time
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from design_agent.errors import ToolError
from design_agent.models.results import ErrorKind, ToolResult
from design_agent.models.session import SandboxContext
from design_agent.tools.base import ToolDefinition
from design_agent.tools.paths import resolve_workspace_path
from design_agent.tools.utils import handle_tool_error, tool_success, validate_file_exists
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_LINES = 1000
MAX_LINE_LENGTH = 2000
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024
BINARY_SAMPLE_BYTES = 4096
NON_PRINTABLE_RATIO = 0.3

BINARY_EXTENSIONS = frozenset(
    {
        ".exe", ".dll", ".so", ".dylib", ".zip", ".tar", ".gz", ".7z",
        ".bin", ".dat", ".class", ".jar", ".war", ".pyc", ".pyo",
        ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        ".odt", ".ods", ".odp", ".wasm", ".obj", ".o", ".a", ".lib",
    }
)  # fmt: skip

FileType = Literal["text", "image", "pdf", "binary"]


class ReadInput(BaseModel):
    """Input schema for the read tool."""

    file_path: str = Field(
        ...,
        description="Path to the file to read, relative to the workspace root or absolute path within workspace",
    )
    start_line: int | None = Field(
        default=None,
        ge=1,
        description="Starting line number to read from (1-based). Use with line_count for large files.",
    )
    line_count: int | None = Field(
        default=None,
        ge=1,
        description="Number of lines to read. Use with start_line to read specific sections.",
    )
    encoding: str = Field(default="utf-8", description="File encoding (utf-8, ascii, etc.)")


def is_binary_content(sample: bytes) -> bool:
    """Guess whether a byte sample comes from a binary file.

    A NUL byte is conclusive; otherwise more than 30% control characters
    (excluding tab through carriage return) marks the sample as binary.
    """
    if not sample:
        return False
    if b"\x00" in sample:
        return True
    non_printable = sum(1 for byte in sample if byte < 9 or 13 < byte < 32)
    return non_printable / len(sample) > NON_PRINTABLE_RATIO


def detect_file_type(path: Path) -> FileType:
    """Detect file type from extension, MIME type and content."""
    mime_type, _ = mimetypes.guess_type(path.name)
    if mime_type and mime_type.startswith("image/"):
        return "image"
    if mime_type == "application/pdf":
        return "pdf"
    if path.suffix.lower() in BINARY_EXTENSIONS:
        return "binary"

    try:
        with path.open("rb") as f:
            sample = f.read(BINARY_SAMPLE_BYTES)
    except OSError:
        return "text"
    return "binary" if is_binary_content(sample) else "text"


def render_text(
    text: str, start_line: int | None = None, line_count: int | None = None
) -> tuple[str, dict[str, object]]:
    """Select a line window from ``text`` and truncate overlong lines.

    Returns:
        The rendered content and the line metadata for the payload
    """
    lines = text.split("\n")
    total = len(lines)

    start = max((start_line or 1) - 1, 0)
    count = line_count or min(DEFAULT_MAX_LINES, total)
    end = min(start + count, total)

    lines_were_truncated = False
    selected = []
    for line in lines[start:end]:
        if len(line) > MAX_LINE_LENGTH:
            lines_were_truncated = True
            line = line[:MAX_LINE_LENGTH] + "... [line truncated]"
        selected.append(line)

    window_truncated = end < total
    content = "\n".join(selected)
    if window_truncated:
        content = f"[Content truncated: showing lines {start + 1}-{end} of {total} total lines]\n\n{content}"
    elif lines_were_truncated:
        content = f"[Some lines truncated due to length (max {MAX_LINE_LENGTH} chars)]\n\n{content}"

    return content, {
        "line_count": total,
        "is_truncated": window_truncated or lines_were_truncated,
        "lines_shown": [start + 1, end],
    }


def _read_file(path: Path, params: ReadInput) -> tuple[FileType, str, dict[str, object]]:
    file_type = detect_file_type(path)
    size_kb = path.stat().st_size / 1024

    match file_type:
        case "text":
            try:
                text = path.read_text(encoding=params.encoding)
            except LookupError as e:
                raise ToolError(f"Unknown encoding: {params.encoding}", ErrorKind.VALIDATION) from e
            content, metadata = render_text(text, params.start_line, params.line_count)
            return file_type, content, metadata
        case "image" | "pdf":
            mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            content = (
                f"[{file_type.upper()} FILE: {path.name}]\n"
                f"File size: {size_kb:.1f} KB\n"
                f"MIME type: {mime_type}\n"
                "Binary data available for display."
            )
            return file_type, content, {}
        case "binary":
            content = f"[BINARY FILE: {path.name}]\nFile size: {size_kb:.1f} KB\nCannot display binary content as text."
            return file_type, content, {}


async def read_handler(params: ReadInput, context: SandboxContext) -> ToolResult:
    """Read a file inside the sandbox."""
    started = time.monotonic()
    try:
        absolute_path = resolve_workspace_path(params.file_path, context)
        validate_file_exists(absolute_path, params.file_path)

        if absolute_path.is_dir():
            raise ToolError(f"Path is a directory, not a file: {params.file_path}", ErrorKind.VALIDATION)

        size = absolute_path.stat().st_size
        if size > MAX_FILE_SIZE_BYTES:
            raise ToolError(
                f"File too large ({size / 1024 / 1024:.1f}MB). "
                f"Maximum size: {MAX_FILE_SIZE_BYTES // 1024 // 1024}MB",
                ErrorKind.VALIDATION,
            )

        file_type, content, metadata = await asyncio.to_thread(_read_file, absolute_path, params)
        logger.info(f"[read] Read {file_type} file: {params.file_path} ({size / 1024:.1f} KB)")

        result = tool_success(
            content=content,
            file_path=params.file_path,
            file_type=file_type,
            mime_type=mimetypes.guess_type(absolute_path.name)[0],
            size=size,
            **metadata,
        )
        logger.debug(f"[read] File read completed in {(time.monotonic() - started) * 1000:.0f}ms")
        return result
    except ToolError as e:
        return handle_tool_error(e)
    except UnicodeDecodeError as e:
        return handle_tool_error(e, "Read tool execution", ErrorKind.VALIDATION)
    except Exception as e:
        return handle_tool_error(e, "Read tool execution")


def create_read_tool() -> ToolDefinition:
    return ToolDefinition(
        name="read",
        description=(
            "Read the contents of a file within the design workspace. Supports text files, "
            "images (PNG, JPG, SVG, etc.), and handles large files with line-range reading."
        ),
        input_model=ReadInput,
        handler=read_handler,
    )
