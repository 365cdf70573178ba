"""Tool definitions shared by every sandbox tool."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from design_agent.models.results import ToolResult
from design_agent.models.session import SandboxContext

# Handlers receive validated input and the query's sandbox; they never raise
ToolHandler = Callable[[Any, SandboxContext], Awaitable[ToolResult]]


@dataclass
class ToolDefinition:
    """A tool the model can call: a name, an input model and an async handler."""

    name: str
    description: str
    input_model: type[BaseModel]
    handler: ToolHandler

    def input_schema(self) -> dict[str, Any]:
        return self.input_model.model_json_schema(by_alias=True)

    def validate_arguments(self, arguments: dict[str, Any]) -> BaseModel:
        """Build the handler input.

        Raises:
            pydantic.ValidationError: If the arguments do not match the input model
        """
        return self.input_model.model_validate(arguments)

    def as_schema(self) -> dict[str, Any]:
        """Describe the tool the way model requests expect."""
        return {"name": self.name, "description": self.description, "input_schema": self.input_schema()}
