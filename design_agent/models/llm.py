"""LLM request data models and conversion from conversation turns."""

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from design_agent.models.messages import TextPart, ToolCallPart, ToolResultPart, Turn


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class LLMMessage(BaseModel):
    """A message for LLM conversation."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]

    @property
    def blocks(self) -> list[ContentBlock]:
        if isinstance(self.content, str):
            return [TextBlock(text=self.content)] if self.content else []
        return list(self.content)


@dataclass
class LLMUsage:
    """Token usage reported by the provider for one step."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def _part_to_block(part: TextPart | ToolCallPart | ToolResultPart) -> ContentBlock:
    match part:
        case TextPart(text=text):
            return TextBlock(text=text)
        case ToolCallPart(id=call_id, name=name, arguments=arguments):
            return ToolUseBlock(id=call_id, name=name, input=arguments)
        case ToolResultPart(call_id=call_id, result=result, is_error=is_error):
            return ToolResultBlock(tool_use_id=call_id, content=json.dumps(result), is_error=is_error)


def turns_to_llm_messages(turns: Sequence[Turn]) -> list[LLMMessage]:
    """Convert conversation turns to alternating user/assistant messages.

    Tool turns become user messages carrying ``tool_result`` blocks, and
    consecutive messages of the same role are merged. Callers prune
    dangling tool calls and error turns first.
    """
    messages: list[LLMMessage] = []
    for turn in turns:
        role: Literal["user", "assistant"] = "assistant" if turn.role == "assistant" else "user"
        blocks = [_part_to_block(part) for part in turn.parts if not (isinstance(part, TextPart) and not part.text)]
        if not blocks:
            continue

        if messages and messages[-1].role == role:
            messages[-1] = LLMMessage(role=role, content=[*messages[-1].blocks, *blocks])
        elif isinstance(turn.content, str):
            messages.append(LLMMessage(role=role, content=turn.content))
        else:
            messages.append(LLMMessage(role=role, content=blocks))
    return messages
