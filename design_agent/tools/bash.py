"""Shell command tool."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from design_agent.errors import SecurityError, ToolError
from design_agent.models.results import ErrorKind, ProcessResult, ToolResult
from design_agent.models.session import SandboxContext
from design_agent.services.shell import DEFAULT_TIMEOUT_MS, ShellExecutor, is_unsafe_command, shell_executor
from design_agent.tools.base import ToolDefinition
from design_agent.tools.paths import resolve_workspace_path
from design_agent.tools.utils import handle_tool_error, tool_error, tool_success, validate_directory_exists
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)


class BashInput(BaseModel):
    """Input schema for the bash tool."""

    model_config = ConfigDict(populate_by_name=True)

    command: str = Field(
        ..., min_length=1, description='Shell command to execute (e.g., "npm install", "ls -la", "git status")'
    )
    description: str | None = Field(default=None, description="Brief description of what the command does")
    directory: str = Field(default=".", description="Directory to run command in, relative to the workspace root")
    timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        gt=0,
        validation_alias=AliasChoices("timeout_ms", "timeoutMs", "timeout"),
        description="Timeout in milliseconds",
    )
    capture_output: bool = Field(
        default=True,
        validation_alias=AliasChoices("capture_output", "captureOutput"),
        description="Whether to capture and return command output",
    )
    env: dict[str, str] | None = Field(default=None, description="Environment variables to set for the command")


def summarize(params: BashInput, result: ProcessResult) -> str:
    """Human readable report of a finished command."""
    lines = [
        f"Command: {params.command}",
        f"Directory: {params.directory}",
        f"Exit Code: {result.exit_code}",
        f"Duration: {result.duration_ms}ms",
    ]
    if result.timed_out:
        lines.append(f"Status: TIMED OUT ({params.timeout_ms}ms)")
    elif result.signal:
        lines.append(f"Signal: {result.signal}")
    if params.capture_output:
        if result.stdout:
            lines.append(f"\nStdout:\n{result.stdout}")
        if result.stderr:
            lines.append(f"\nStderr:\n{result.stderr}")
    return "\n".join(lines)


def create_bash_handler(executor: ShellExecutor):
    async def bash_handler(params: BashInput, context: SandboxContext) -> ToolResult:
        """Run a shell command inside the sandbox."""
        try:
            if is_unsafe_command(params.command):
                raise SecurityError("Command contains potentially unsafe operations", {"command": params.command})

            cwd = resolve_workspace_path(params.directory, context)
            validate_directory_exists(cwd, params.directory)

            suffix = f" ({params.description})" if params.description else ""
            logger.info(f"[bash] Executing command: {params.command}{suffix} in {params.directory}")

            result = await executor.run(
                params.command,
                cwd,
                timeout_ms=params.timeout_ms,
                capture_output=params.capture_output,
                env=params.env,
                cancellation=context.cancellation,
            )
        except ToolError as e:
            return handle_tool_error(e, "Security check" if e.kind == ErrorKind.SECURITY else None)
        except Exception as e:
            return handle_tool_error(e, "Bash tool execution")

        details = result.model_dump(mode="json")
        if result.timed_out:
            logger.warning(f"[bash] Command timed out after {params.timeout_ms}ms")
            return tool_error(
                f"Command timed out after {params.timeout_ms}ms", "Command execution", ErrorKind.EXECUTION, details
            )
        if result.exit_code != 0:
            stderr = f"\nStderr: {result.stderr}" if result.stderr else ""
            reason = f"exit code {result.exit_code}" if result.exit_code is not None else f"signal {result.signal}"
            message = f"Command failed with {reason}{stderr}"
            return tool_error(message, "Command execution", ErrorKind.EXECUTION, details)

        logger.info(f"[bash] Command completed successfully in {result.duration_ms}ms")
        return tool_success(
            command=params.command,
            directory=params.directory,
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
            stdout=result.stdout,
            stderr=result.stderr,
            summary=summarize(params, result),
        )

    return bash_handler


def create_bash_tool(executor: ShellExecutor = shell_executor) -> ToolDefinition:
    return ToolDefinition(
        name="bash",
        description=(
            "Execute shell/bash commands within the design workspace. "
            "Supports timeouts, output capture, and secure execution."
        ),
        input_model=BashInput,
        handler=create_bash_handler(executor),
    )
