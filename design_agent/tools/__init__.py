"""Tools the design agent can call inside its sandbox."""

from design_agent.tools.registry import ToolsRegistry

__all__ = ["ToolsRegistry"]
