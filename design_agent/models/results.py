"""Tool result envelope and process execution records."""

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(StrEnum):
    """Classification of a tool failure."""

    VALIDATION = "validation"
    SECURITY = "security"
    FILE_NOT_FOUND = "file_not_found"
    PERMISSION = "permission"
    EXECUTION = "execution"
    UNKNOWN = "unknown"


class ToolSuccess(BaseModel):
    """Successful tool result; the payload fields are tool specific."""

    model_config = ConfigDict(extra="allow")

    success: Literal[True] = True

    @property
    def payload(self) -> dict[str, Any]:
        """Return the tool-specific fields."""
        return dict(self.model_extra or {})


class ToolFailure(BaseModel):
    """Failed tool result."""

    model_config = ConfigDict(populate_by_name=True)

    success: Literal[False] = False
    error: str
    error_kind: ErrorKind = Field(default=ErrorKind.UNKNOWN, alias="errorKind")
    details: Any = None


ToolResult = ToolSuccess | ToolFailure


def result_to_wire(result: ToolResult) -> dict[str, Any]:
    """Serialize a tool result into the stable wire shape shared by every tool."""
    data = result.model_dump(mode="json", by_alias=True)
    if isinstance(result, ToolFailure) and result.details is None:
        data.pop("details", None)
    return data


class ProcessState(StrEnum):
    """Final state of a shell invocation."""

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    KILLED = "killed"


class ProcessResult(BaseModel):
    """Outcome of a shell command."""

    exit_code: int | None
    signal: str | None = None
    stdout: str = ""
    stderr: str = ""
    duration_ms: int
    timed_out: bool = False
    state: ProcessState = ProcessState.COMPLETED
    pid: int | None = None
