"""Model stream events consumed by the reducer and UI events produced for the presentation layer."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from design_agent.errors import StreamDecodeError


class TextDelta(BaseModel):
    """A chunk of assistant text."""

    type: Literal["text-delta"] = "text-delta"
    text: str


class ToolCallStart(BaseModel):
    """The model began emitting a tool call."""

    type: Literal["tool-call-start"] = "tool-call-start"
    id: str
    name: str


class ToolCallArgumentDelta(BaseModel):
    """A raw fragment of a tool call's JSON arguments."""

    type: Literal["tool-call-argument-delta"] = "tool-call-argument-delta"
    id: str
    fragment: str


class ToolCallComplete(BaseModel):
    """The authoritative, fully decoded tool call."""

    type: Literal["tool-call-complete"] = "tool-call-complete"
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class StepStart(BaseModel):
    type: Literal["step-start"] = "step-start"
    step: int = 0


class StepFinish(BaseModel):
    type: Literal["step-finish"] = "step-finish"
    step: int = 0
    finish_reason: str | None = None


class ErrorEvent(BaseModel):
    """The model stream reported an error."""

    type: Literal["error"] = "error"
    message: str


class FinishEvent(BaseModel):
    """Terminal event of a session."""

    type: Literal["finish"] = "finish"
    finish_reason: str | None = None


StreamEvent = Annotated[
    TextDelta
    | ToolCallStart
    | ToolCallArgumentDelta
    | ToolCallComplete
    | StepStart
    | StepFinish
    | ErrorEvent
    | FinishEvent,
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_stream_event(raw: dict[str, Any]) -> StreamEvent:
    """Decode a raw event into its typed variant.

    Raises:
        StreamDecodeError: If the event type is unknown or its fields are malformed
    """
    try:
        return stream_event_adapter.validate_python(raw)
    except ValidationError as e:
        raise StreamDecodeError(f"Invalid stream event {raw.get('type')!r}: {e}") from e


# UI events


class UIEvent(BaseModel):
    """Base for events sent to the presentation layer."""

    model_config = ConfigDict(populate_by_name=True)

    command: str

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ChatStreamStart(UIEvent):
    command: Literal["chatStreamStart"] = "chatStreamStart"
    session_id: str | None = Field(default=None, alias="sessionId")


class ChatResponseChunk(UIEvent):
    command: Literal["chatResponseChunk"] = "chatResponseChunk"
    message_type: Literal["assistant", "user", "tool-call", "tool-result"] = Field(alias="messageType")
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChatToolUpdate(UIEvent):
    command: Literal["chatToolUpdate"] = "chatToolUpdate"
    call_id: str = Field(alias="callId")
    partial_arguments: dict[str, Any] = Field(alias="partialArguments")


class ChatToolResult(UIEvent):
    command: Literal["chatToolResult"] = "chatToolResult"
    call_id: str = Field(alias="callId")
    content: str
    is_error: bool = Field(default=False, alias="isError")


class ChatStreamEnd(UIEvent):
    command: Literal["chatStreamEnd"] = "chatStreamEnd"


class ChatStopped(UIEvent):
    command: Literal["chatStopped"] = "chatStopped"


class ChatError(UIEvent):
    command: Literal["chatError"] = "chatError"
    error: str


class ErrorAction(BaseModel):
    """A remediation offered next to a session-level error."""

    text: str
    command: str
    args: str | None = None


class ChatErrorWithActions(UIEvent):
    command: Literal["chatErrorWithActions"] = "chatErrorWithActions"
    error: str
    actions: list[ErrorAction] = Field(default_factory=list)
