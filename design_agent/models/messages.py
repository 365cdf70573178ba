"""Conversation turns and their content parts."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class TextPart(BaseModel):
    """Plain text fragment of a turn."""

    type: Literal["text"] = "text"
    text: str


class ToolCallPart(BaseModel):
    """A tool invocation requested by the assistant."""

    type: Literal["tool-call"] = "tool-call"
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(BaseModel):
    """The result of a tool invocation, correlated to its call by ``call_id``."""

    type: Literal["tool-result"] = "tool-result"
    call_id: str
    name: str
    result: dict[str, Any]
    is_error: bool = False


ContentPart = Annotated[TextPart | ToolCallPart | ToolResultPart, Field(discriminator="type")]

content_part_adapter: TypeAdapter[ContentPart] = TypeAdapter(ContentPart)


class Turn(BaseModel):
    """One entry in the conversation, owned by a single role."""

    model_config = ConfigDict(validate_assignment=True)

    role: Literal["user", "assistant", "tool"]
    content: str | list[ContentPart]
    is_error: bool = False

    @property
    def parts(self) -> list[ContentPart]:
        """Content as a list of parts, wrapping plain text."""
        if isinstance(self.content, str):
            return [TextPart(text=self.content)] if self.content else []
        return list(self.content)

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        return [part for part in self.parts if isinstance(part, ToolCallPart)]

    @property
    def tool_results(self) -> list[ToolResultPart]:
        return [part for part in self.parts if isinstance(part, ToolResultPart)]

    @property
    def text(self) -> str:
        """Concatenated text of the turn."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))


@dataclass
class Conversation:
    """Ordered, append-only sequence of turns.

    Turn order is the only source of truth for display and for re-sending
    history to the model. The single exception to append-only is that the
    user may dismiss error turns.
    """

    turns: list[Turn] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self.turns)

    def __getitem__(self, index: int) -> Turn:
        return self.turns[index]

    def append(self, turn: Turn) -> int:
        """Append a turn and return its index."""
        self.turns.append(turn)
        return len(self.turns) - 1

    @property
    def last(self) -> Turn | None:
        return self.turns[-1] if self.turns else None

    def dismiss_error(self, index: int) -> Turn:
        """Remove an error turn at ``index``.

        Raises:
            IndexError: If there is no turn at ``index``
            ValueError: If the turn is not an error turn
        """
        turn = self.turns[index]
        if not turn.is_error:
            raise ValueError(f"Turn {index} is not an error turn and cannot be dismissed")
        return self.turns.pop(index)
