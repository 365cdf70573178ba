"""Chat orchestration: runs the agent loop for a query and streams UI events."""

import asyncio
from collections.abc import AsyncIterator

from design_agent.clients.anthropic import AnthropicConfig
from design_agent.clients.openai import OpenAIConfig
from design_agent.config import AgentConfig
from design_agent.errors import SessionBusyError
from design_agent.models.events import (
    ChatError,
    ChatErrorWithActions,
    ChatStopped,
    ChatStreamEnd,
    ChatStreamStart,
    ErrorAction,
    ErrorEvent,
    FinishEvent,
    StepFinish,
    StreamEvent,
    ToolCallComplete,
    UIEvent,
)
from design_agent.models.llm import turns_to_llm_messages
from design_agent.models.messages import Turn
from design_agent.models.session import SandboxContext, Session
from design_agent.services.history import prune_dangling_tool_calls
from design_agent.services.providers import ProviderRegistry, create_default_registry
from design_agent.services.reducer import ConversationBuilder, SessionOutcome
from design_agent.services.session_manager import InMemorySessionManager
from design_agent.tools.registry import ToolsRegistry
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

AUTH_ERROR_KEYWORDS = (
    "api key",
    "authentication",
    "unauthorized",
    "invalid_api_key",
    "permission_denied",
    "api_key_invalid",
    "unauthenticated",
)

AUTH_ERROR_ACTIONS = [
    ErrorAction(text="Configure Anthropic API Key", command="designAgent.configureApiKey"),
    ErrorAction(text="Open Settings", command="workbench.action.openSettings", args="designAgent"),
]

SYSTEM_PROMPT = """# Role
You are a senior frontend designer working as a design agent.
Your goal is to help the user generate amazing designs using code.

# Current Context
- AI Model: {model}
- Working directory: {root}

# Instructions
- Use the available tools when needed to help with file operations and code analysis
- When creating a design file:
  - Build one single html page of just one screen based on the user's feedback or task
  - Save design files under the design_iterations folder
  - Generate a theme with generateTheme before writing pages that use it
- Keep shell commands inside the working directory"""


def is_auth_error(message: str | None) -> bool:
    """Whether an error message looks like a credentials problem."""
    if not message:
        return False
    lowered = message.lower()
    return any(keyword in lowered for keyword in AUTH_ERROR_KEYWORDS)


class ChatService:
    """Runs queries against a session's conversation.

    Args:
        providers: Registry used to build the model provider for each query
        sessions: Session storage
        config: Agent configuration
        tools: Tool registry used for dispatch and tool schemas
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        sessions: InMemorySessionManager,
        config: AgentConfig | None = None,
        tools: ToolsRegistry | None = None,
    ):
        self.providers = providers
        self.sessions = sessions
        self.config = config or AgentConfig()
        self.tools = tools or ToolsRegistry()

    def system_prompt(self, context: SandboxContext) -> str:
        return SYSTEM_PROMPT.format(model=self.config.model, root=context.root)

    def start(self, message: str, session_id: str | None = None) -> tuple[Session, AsyncIterator[UIEvent]]:
        """Append the user turn and return the stream of UI events for the query.

        Raises:
            ValueError: If the message is empty or too long
            SessionBusyError: If the session already has a query in flight
        """
        if not message.strip():
            raise ValueError("Message cannot be empty")
        if len(message) > self.config.max_message_chars:
            raise ValueError(
                f"Message exceeds length limit: {len(message)} characters > {self.config.max_message_chars} limit"
            )

        session = self.sessions.get_or_create_session(session_id)
        if session.busy:
            raise SessionBusyError(f"Session {session.session_id} already has a query in progress")

        context = session.new_context()
        session.active_token = context.cancellation
        session.conversation.append(Turn(role="user", content=message))
        logger.info(f"Processing message for session {session.session_id}: {message[:50]}...")

        return session, self._stream(session, context)

    def stop(self, session_id: str) -> bool:
        """Cancel the session's in-flight query.

        Returns:
            True if a query was running
        """
        session = self.sessions.get_session(session_id)
        if session is None or session.active_token is None:
            return False
        session.active_token.cancel("stopped by user")
        return True

    async def agent_stream(self, session: Session, context: SandboxContext) -> AsyncIterator[StreamEvent]:
        """Chain model steps into one event stream ending in a single ``finish``.

        Another step runs only if the previous one dispatched tool calls and
        stopped for ``tool_use``. Each step re-sends the pruned history, which
        already holds the previous step's tool results because the reducer
        consumes every event before the next one is pulled.
        """
        provider = self.providers.resolve(self.config.model, self.config.provider)
        tools = self.tools.get_tool_schemas()
        system_prompt = self.system_prompt(context)

        for step in range(self.config.max_steps):
            history = turns_to_llm_messages(prune_dangling_tool_calls(session.conversation.turns))
            calls = 0
            reason: str | None = None

            async for event in provider.stream(history, system_prompt, tools, step=step):
                yield event
                match event:
                    case ToolCallComplete():
                        calls += 1
                    case StepFinish(finish_reason=finish_reason):
                        reason = finish_reason
                    case ErrorEvent():
                        return

            if not calls or reason != "tool_use":
                yield FinishEvent(finish_reason=reason)
                return
            logger.debug(f"Step {step} requested {calls} tool call(s), continuing")

        logger.warning(f"Agent loop reached max steps ({self.config.max_steps})")
        yield FinishEvent(finish_reason="max_steps")

    async def _stream(self, session: Session, context: SandboxContext) -> AsyncIterator[UIEvent]:
        queue: asyncio.Queue[UIEvent | None] = asyncio.Queue()
        builder = ConversationBuilder(
            session.conversation,
            context,
            self.tools.dispatch,
            emit=queue.put_nowait,
            allow_partial=self.config.allow_partial_arguments,
        )

        task = asyncio.create_task(builder.run(self.agent_stream(session, context)))
        task.add_done_callback(lambda _: queue.put_nowait(None))

        try:
            yield ChatStreamStart(session_id=session.session_id)
            while (event := await queue.get()) is not None:
                yield event

            outcome = await task
            logger.info(f"Query for session {session.session_id} ended: {outcome}")
            match outcome:
                case SessionOutcome.FINISHED:
                    yield ChatStreamEnd()
                case SessionOutcome.ABORTED:
                    yield ChatStopped()
                case SessionOutcome.ERRORED if is_auth_error(builder.error):
                    yield ChatErrorWithActions(error=builder.error, actions=AUTH_ERROR_ACTIONS)
                case SessionOutcome.ERRORED:
                    yield ChatError(error=builder.error or "Unknown error")
        finally:
            if not task.done():
                context.cancellation.cancel("client disconnected")
                await asyncio.wait({task})
            session.active_token = None
            session.update_activity()


_chat_service: ChatService | None = None


def get_chat_service() -> ChatService:
    """Get or create the chat service for the running application."""
    global _chat_service
    if _chat_service is None:
        config = AgentConfig.from_env()
        _chat_service = ChatService(
            providers=create_default_registry(
                AnthropicConfig(model=config.model, max_tokens=config.max_tokens),
                openai_config=OpenAIConfig(base_url=config.openai_base_url),
            ),
            sessions=InMemorySessionManager(workspace=config.workspace),
            config=config,
        )
    return _chat_service
