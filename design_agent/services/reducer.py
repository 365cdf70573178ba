"""Stream reducer that folds model events and tool results into a conversation."""

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from design_agent.errors import OperationCancelled, StreamProtocolError
from design_agent.models.events import (
    ChatResponseChunk,
    ChatToolResult,
    ChatToolUpdate,
    ErrorEvent,
    FinishEvent,
    StepFinish,
    StepStart,
    StreamEvent,
    TextDelta,
    ToolCallArgumentDelta,
    ToolCallComplete,
    ToolCallStart,
    UIEvent,
)
from design_agent.models.messages import Conversation, ToolCallPart, ToolResultPart, Turn
from design_agent.models.results import ToolFailure, ToolResult, result_to_wire
from design_agent.models.session import SandboxContext
from design_agent.services.partial_json import PartialDecoder
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

ToolDispatcher = Callable[[str, dict[str, Any], SandboxContext], Awaitable[ToolResult]]
EventSink = Callable[[UIEvent], None]

_END = object()


class SessionState(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"
    TOOL_PENDING = "tool_pending"
    FINISHED = "finished"
    ERRORED = "errored"
    ABORTED = "aborted"


class SessionOutcome(StrEnum):
    """How a query ended. An abort is not an error."""

    FINISHED = "finished"
    ERRORED = "errored"
    ABORTED = "aborted"


TERMINAL_STATES = {
    SessionState.FINISHED: SessionOutcome.FINISHED,
    SessionState.ERRORED: SessionOutcome.ERRORED,
    SessionState.ABORTED: SessionOutcome.ABORTED,
}


@dataclass
class PendingToolCall:
    """Arguments of a tool call that is still streaming."""

    id: str
    name: str
    decoder: PartialDecoder = field(default_factory=PartialDecoder)

    @property
    def argument_buffer(self) -> str:
        return self.decoder.buffer

    @property
    def last_decoded_arguments(self) -> dict[str, Any]:
        return self.decoder.last_decoded or {}


class ConversationBuilder:
    """State machine for one user query.

    ``Idle -> Streaming -> (ToolPending)* -> Finished | Errored | Aborted``

    Args:
        conversation: Conversation to append to; the user turn is already in it
        context: Sandbox context shared by every tool call of the query
        dispatch: Runs a completed tool call and returns its result
        emit: Receives UI events as the conversation changes
        allow_partial: Decode incomplete argument buffers for progressive display
    """

    def __init__(
        self,
        conversation: Conversation,
        context: SandboxContext,
        dispatch: ToolDispatcher,
        emit: EventSink | None = None,
        allow_partial: bool = False,
    ):
        self.conversation = conversation
        self.context = context
        self._dispatch = dispatch
        self._emit = emit or (lambda event: None)
        self.allow_partial = allow_partial

        self.state = SessionState.IDLE
        self.pending: dict[str, PendingToolCall] = {}
        self.in_flight: set[str] = set()
        self.completed: set[str] = set()
        self.error: str | None = None
        self.finish_reason: str | None = None
        self._open_turn: Turn | None = None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def outcome(self) -> SessionOutcome | None:
        return TERMINAL_STATES.get(self.state)

    def start(self) -> None:
        if self.state is not SessionState.IDLE:
            raise StreamProtocolError(f"Session already started (state {self.state})")
        self.state = SessionState.STREAMING

    async def run(self, events: AsyncIterator[StreamEvent]) -> SessionOutcome:
        """Consume ``events`` until a terminal state.

        Transport exceptions end the session as errored; a fired cancellation
        token ends it as aborted.
        """
        token = self.context.cancellation
        if self.state is SessionState.IDLE:
            self.start()

        try:
            while not self.terminal:
                event = await token.race(anext(events, _END))
                if event is _END:
                    logger.warning("Model stream ended without a finish event")
                    self._finish(None)
                    break
                await self.apply(event)
        except OperationCancelled:
            self.abort()
        except asyncio.CancelledError:
            self.abort()
            raise
        except Exception as e:
            logger.error(f"Model stream failed: {e}", exc_info=True)
            self.fail(str(e) or type(e).__name__)
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as e:
                    logger.debug(f"Error closing model stream: {e}")

        return self.outcome

    async def apply(self, event: StreamEvent) -> None:
        """Fold one event into the conversation.

        Raises:
            StreamProtocolError: If the session already reached a terminal state
        """
        if self.terminal:
            raise StreamProtocolError(f"Received {event.type} after session ended ({self.state})")
        if self.state is SessionState.IDLE:
            self.start()

        match event:
            case TextDelta(text=text):
                self._append_text(text)
            case ToolCallStart(id=call_id, name=name):
                self._start_tool_call(call_id, name)
            case ToolCallArgumentDelta(id=call_id, fragment=fragment):
                self._append_arguments(call_id, fragment)
            case ToolCallComplete():
                await self._complete_tool_call(event)
            case StepStart(step=step):
                logger.debug(f"Step {step} started")
            case StepFinish(step=step, finish_reason=reason):
                logger.debug(f"Step {step} finished: {reason}")
            case ErrorEvent(message=message):
                self.fail(message)
            case FinishEvent(finish_reason=reason):
                self._finish(reason)

    def fail(self, message: str) -> None:
        """Append a dismissable error turn and end the session as errored."""
        if self.terminal:
            return
        self.error = message
        self.conversation.append(Turn(role="assistant", content=message, is_error=True))
        self._close(SessionState.ERRORED)
        logger.warning(f"Session {self.context.session_id} errored: {message}")

    def abort(self) -> None:
        """End the session as aborted. Dispatched calls keep no result."""
        if self.terminal:
            return
        if self.in_flight:
            logger.info(f"Aborted with tool calls in flight: {', '.join(sorted(self.in_flight))}")
        self._close(SessionState.ABORTED)

    def _finish(self, reason: str | None) -> None:
        self.finish_reason = reason
        self._close(SessionState.FINISHED)

    def _close(self, state: SessionState) -> None:
        self.state = state
        self.pending.clear()
        self._open_turn = None

    # Turn helpers

    def _open_assistant_turn(self) -> Turn | None:
        """The trailing assistant turn, if this session created it."""
        if self._open_turn is not None and self.conversation.last is self._open_turn:
            return self._open_turn
        return None

    def _new_assistant_turn(self, content: str | list) -> Turn:
        turn = Turn(role="assistant", content=content)
        self.conversation.append(turn)
        self._open_turn = turn
        return turn

    def _find_call_part(self, call_id: str) -> ToolCallPart | None:
        for turn in reversed(self.conversation.turns):
            if turn.role != "assistant":
                continue
            for part in turn.tool_calls:
                if part.id == call_id:
                    return part
        return None

    def _attach_call_part(self, part: ToolCallPart) -> None:
        turn = self._open_assistant_turn()
        if turn is None:
            self._new_assistant_turn([part])
        else:
            turn.content = [*turn.parts, part]
        self._emit(
            ChatResponseChunk(
                message_type="tool-call",
                metadata={"tool_name": part.name, "tool_id": part.id, "args": part.arguments},
            )
        )

    # Event handlers

    def _append_text(self, text: str) -> None:
        if not text:
            return
        turn = self._open_assistant_turn()
        if turn is not None and isinstance(turn.content, str):
            turn.content += text
        else:
            self._new_assistant_turn(text)
        self._emit(ChatResponseChunk(message_type="assistant", content=text))

    def _start_tool_call(self, call_id: str, name: str) -> None:
        if call_id in self.pending or call_id in self.completed:
            logger.warning(f"Duplicate tool-call-start for {call_id}, ignoring")
            return
        self.pending[call_id] = PendingToolCall(call_id, name, PartialDecoder(self.allow_partial))
        self._attach_call_part(ToolCallPart(id=call_id, name=name))
        self.state = SessionState.TOOL_PENDING

    def _append_arguments(self, call_id: str, fragment: str) -> None:
        pending = self.pending.get(call_id)
        if pending is None:
            logger.warning(f"Argument fragment for unknown tool call {call_id}, ignoring")
            return

        decoded = pending.decoder.feed(fragment)
        if decoded is None:
            return
        part = self._find_call_part(call_id)
        if part is not None:
            part.arguments = decoded
        self._emit(ChatToolUpdate(call_id=call_id, partial_arguments=decoded))

    async def _complete_tool_call(self, event: ToolCallComplete) -> None:
        if event.id in self.completed:
            logger.warning(f"Duplicate tool-call-complete for {event.id}, ignoring")
            return

        self.pending.pop(event.id, None)
        part = self._find_call_part(event.id)
        if part is None:
            # No start event was seen for this call
            part = ToolCallPart(id=event.id, name=event.name, arguments=event.arguments)
            self._attach_call_part(part)
        else:
            part.arguments = dict(event.arguments)

        self.completed.add(event.id)
        self.in_flight.add(event.id)
        self.state = SessionState.TOOL_PENDING
        logger.info(f"Dispatching tool {event.name} ({event.id})")

        result = await self.context.cancellation.race(self._dispatch(event.name, dict(event.arguments), self.context))

        self.in_flight.discard(event.id)
        wire = result_to_wire(result)
        is_error = isinstance(result, ToolFailure)
        self.conversation.append(
            Turn(
                role="tool",
                content=[ToolResultPart(call_id=event.id, name=event.name, result=wire, is_error=is_error)],
            )
        )
        self._emit(ChatToolResult(call_id=event.id, content=json.dumps(wire), is_error=is_error))
        self.state = SessionState.TOOL_PENDING if self.pending else SessionState.STREAMING

