"""Tools registry for managing the agent's tools."""

from typing import Any

from pydantic import ValidationError

from design_agent.models.results import ErrorKind, ToolResult
from design_agent.models.session import SandboxContext
from design_agent.services.shell import ShellExecutor, shell_executor
from design_agent.tools.base import ToolDefinition
from design_agent.tools.bash import create_bash_tool
from design_agent.tools.edit import create_edit_tool, create_multiedit_tool
from design_agent.tools.ls import create_ls_tool
from design_agent.tools.read import create_read_tool
from design_agent.tools.search import create_glob_tool, create_grep_tool
from design_agent.tools.theme import create_theme_tool
from design_agent.tools.utils import handle_tool_error, tool_error
from design_agent.tools.write import create_write_tool
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)


class ToolsRegistry:
    """Registry for managing the agent's tools."""

    def __init__(self, executor: ShellExecutor = shell_executor, register_defaults: bool = True):
        """Initialize tools registry.

        Args:
            executor: Shell engine used by the bash tool
            register_defaults: Register the built-in tool set
        """
        self.executor = executor
        self._tools: dict[str, ToolDefinition] = {}
        if register_defaults:
            self._register_default_tools()

    def _register_default_tools(self) -> None:
        """Register the default set of design workspace tools."""
        tools = [
            create_read_tool(),
            create_write_tool(),
            create_edit_tool(),
            create_multiedit_tool(),
            create_glob_tool(),
            create_grep_tool(),
            create_ls_tool(),
            create_bash_tool(self.executor),
            create_theme_tool(),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_tool_schemas(self) -> list[dict[str, Any]]:
        """Get name, description and JSON input schema for every tool."""
        return [tool.as_schema() for tool in self._tools.values()]

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    async def dispatch(self, name: str, arguments: dict[str, Any], context: SandboxContext) -> ToolResult:
        """Validate arguments and run a tool, always returning a result.

        ``asyncio.CancelledError`` is not converted so cancellation can
        propagate to the caller.

        Args:
            name: Tool name as requested by the model
            arguments: Raw decoded arguments
            context: Sandbox context of the current query

        Returns:
            The tool's result, or a failure describing why it could not run
        """
        tool = self._tools.get(name)
        if tool is None:
            return tool_error(f"Unknown tool: {name}", "Tool dispatch", ErrorKind.VALIDATION)

        try:
            params = tool.validate_arguments(arguments)
        except ValidationError as e:
            return tool_error(
                f"Invalid arguments for {name}: {e.error_count()} validation error(s)",
                "Parameter validation",
                ErrorKind.VALIDATION,
                e.errors(include_url=False, include_context=False),
            )

        logger.debug(f"Dispatching tool {name} for session {context.session_id}")
        try:
            return await tool.handler(params, context)
        except Exception as e:
            return handle_tool_error(e, f"{name} tool execution")
