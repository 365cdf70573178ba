"""Model providers and the registry that selects one per model id."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from typing import Any

import openai
from anthropic import APIError

from design_agent.clients.anthropic import AnthropicClient, AnthropicConfig, AnthropicTool, CacheControl
from design_agent.clients.openai import OpenAIClient, OpenAIConfig
from design_agent.errors import ProviderNotConfiguredError
from design_agent.models.events import (
    ErrorEvent,
    StepFinish,
    StepStart,
    StreamEvent,
    TextDelta,
    ToolCallArgumentDelta,
    ToolCallComplete,
    ToolCallStart,
)
from design_agent.models.llm import LLMMessage, LLMUsage
from design_agent.services.partial_json import PartialDecoder
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)


class ModelProvider(ABC):
    """A source of typed stream events for one model request."""

    name: str

    @abstractmethod
    def stream(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[dict[str, Any]],
        step: int = 0,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one step: ``step-start``, content events, ``step-finish``.

        Args:
            messages: History to send
            system_prompt: System prompt
            tools: Tool schemas with name, description and input_schema
            step: Index of this step within the query
        """


class AnthropicProvider(ModelProvider):
    """Maps the Anthropic raw streaming protocol to stream events."""

    name = "anthropic"

    def __init__(self, client: AnthropicClient, model: str | None = None):
        self.client = client
        self.model = model or client.config.model
        self.usage = LLMUsage()

    def _tools(self, tools: list[dict[str, Any]]) -> list[AnthropicTool]:
        anthropic_tools = [AnthropicTool(**tool) for tool in tools]
        if anthropic_tools:
            # Cache control on the last tool caches every tool definition
            anthropic_tools[-1].cache_control = CacheControl()
        return anthropic_tools

    async def stream(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[dict[str, Any]],
        step: int = 0,
    ) -> AsyncIterator[StreamEvent]:
        # Open tool_use blocks by content block index: (id, name, decoder)
        open_calls: dict[int, tuple[str, str, PartialDecoder]] = {}
        stop_reason: str | None = None

        try:
            async for raw in self.client.stream_message(
                messages, system_prompt, self._tools(tools), model=self.model
            ):
                match raw.type:
                    case "message_start":
                        usage = getattr(raw.message, "usage", None)
                        if usage is not None:
                            self.usage.input_tokens += usage.input_tokens or 0
                        yield StepStart(step=step)
                    case "content_block_start":
                        block = raw.content_block
                        if block.type == "tool_use":
                            open_calls[raw.index] = (block.id, block.name, PartialDecoder())
                            yield ToolCallStart(id=block.id, name=block.name)
                    case "content_block_delta":
                        delta = raw.delta
                        if delta.type == "text_delta":
                            yield TextDelta(text=delta.text)
                        elif delta.type == "input_json_delta" and raw.index in open_calls:
                            call_id, _, decoder = open_calls[raw.index]
                            decoder.feed(delta.partial_json)
                            yield ToolCallArgumentDelta(id=call_id, fragment=delta.partial_json)
                    case "content_block_stop":
                        if raw.index in open_calls:
                            call_id, name, decoder = open_calls.pop(raw.index)
                            yield ToolCallComplete(id=call_id, name=name, arguments=_final_arguments(decoder))
                    case "message_delta":
                        stop_reason = raw.delta.stop_reason or stop_reason
                        usage = getattr(raw, "usage", None)
                        if usage is not None:
                            self.usage.output_tokens += usage.output_tokens or 0
                    case "message_stop":
                        yield StepFinish(step=step, finish_reason=stop_reason)
                    case other:
                        logger.debug(f"Ignoring Anthropic stream event {other}")
        except APIError as e:
            logger.error(f"Anthropic API error: {e}")
            yield ErrorEvent(message=str(e))


def _final_arguments(decoder: PartialDecoder) -> dict[str, Any]:
    try:
        return decoder.final()
    except ValueError as e:
        logger.warning(f"Discarding undecodable tool arguments: {e}")
        return {}


# Chat completion finish reasons in the Messages API vocabulary the agent loop checks
OPENAI_FINISH_REASONS = {
    "tool_calls": "tool_use",
    "function_call": "tool_use",
    "stop": "end_turn",
    "length": "max_tokens",
}


class OpenAIProvider(ModelProvider):
    """Maps streamed chat completion chunks to stream events.

    Tool calls arrive as fragments keyed by their index in the choice; the
    first fragment carries the id and name. Every open call is completed
    when the choice reports its finish reason.
    """

    def __init__(self, client: OpenAIClient, model: str | None = None, name: str = "openai"):
        self.client = client
        self.model = model or client.config.model
        self.name = name
        self.usage = LLMUsage()

    async def stream(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[dict[str, Any]],
        step: int = 0,
    ) -> AsyncIterator[StreamEvent]:
        open_calls: dict[int, tuple[str, str, PartialDecoder]] = {}
        finish_reason: str | None = None
        started = False

        try:
            async for chunk in self.client.stream_chat(messages, system_prompt, tools, model=self.model):
                if not started:
                    started = True
                    yield StepStart(step=step)

                usage = getattr(chunk, "usage", None)
                if usage is not None:
                    self.usage.input_tokens += usage.prompt_tokens or 0
                    self.usage.output_tokens += usage.completion_tokens or 0
                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta = choice.delta
                if delta is not None:
                    if delta.content:
                        yield TextDelta(text=delta.content)
                    for call in delta.tool_calls or []:
                        function = call.function
                        if call.index not in open_calls:
                            call_id = call.id or f"call_{step}_{call.index}"
                            name = (function.name if function else None) or ""
                            open_calls[call.index] = (call_id, name, PartialDecoder())
                            yield ToolCallStart(id=call_id, name=name)
                        fragment = function.arguments if function else None
                        if fragment:
                            call_id, _, decoder = open_calls[call.index]
                            decoder.feed(fragment)
                            yield ToolCallArgumentDelta(id=call_id, fragment=fragment)

                if choice.finish_reason:
                    finish_reason = OPENAI_FINISH_REASONS.get(choice.finish_reason, choice.finish_reason)
                    for call_id, name, decoder in open_calls.values():
                        yield ToolCallComplete(id=call_id, name=name, arguments=_final_arguments(decoder))
                    open_calls.clear()
        except openai.APIError as e:
            logger.error(f"{self.name} API error: {e}")
            yield ErrorEvent(message=str(e))
            return

        if not started:
            yield StepStart(step=step)
        if open_calls:
            logger.warning(f"{self.name} stream ended without a finish reason, completing {len(open_calls)} calls")
            for call_id, name, decoder in open_calls.values():
                yield ToolCallComplete(id=call_id, name=name, arguments=_final_arguments(decoder))
        yield StepFinish(step=step, finish_reason=finish_reason)


ProviderFactory = Callable[[str], ModelProvider]


def infer_provider_name(model: str) -> str:
    """Infer the provider from a model id."""
    if model.startswith("claude-"):
        return "anthropic"
    if "/" in model:
        return "openrouter"
    return "openai"


class ProviderRegistry:
    """Maps provider names to factories that build a provider for a model id."""

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        self._factories[name] = factory

    def names(self) -> list[str]:
        return list(self._factories)

    def resolve(self, model: str, provider: str | None = None) -> ModelProvider:
        """Build the provider for ``model``.

        Raises:
            ProviderNotConfiguredError: If no factory is registered for the provider
        """
        name = provider or infer_provider_name(model)
        factory = self._factories.get(name)
        if factory is None:
            raise ProviderNotConfiguredError(f"No model provider configured for '{name}' (model {model})")
        logger.debug(f"Using provider {name} for model {model}")
        return factory(model)


def create_default_registry(
    config: AnthropicConfig | None = None,
    openai_config: OpenAIConfig | None = None,
    openrouter_config: OpenAIConfig | None = None,
) -> ProviderRegistry:
    """Registry with the Anthropic, OpenAI and OpenRouter providers.

    Each client is created on first use, so only the provider a model
    resolves to needs its API key.
    """
    registry = ProviderRegistry()
    anthropic_clients: dict[str, AnthropicClient] = {}
    openai_clients: dict[str, OpenAIClient] = {}

    def anthropic_factory(model: str) -> ModelProvider:
        if "client" not in anthropic_clients:
            anthropic_clients["client"] = AnthropicClient(config=config)
        return AnthropicProvider(anthropic_clients["client"], model)

    def openai_compatible_factory(name: str, client_config: OpenAIConfig) -> ProviderFactory:
        def factory(model: str) -> ModelProvider:
            if name not in openai_clients:
                openai_clients[name] = OpenAIClient(config=client_config)
            return OpenAIProvider(openai_clients[name], model, name=name)

        return factory

    registry.register("anthropic", anthropic_factory)
    registry.register("openai", openai_compatible_factory("openai", openai_config or OpenAIConfig()))
    registry.register(
        "openrouter", openai_compatible_factory("openrouter", openrouter_config or OpenAIConfig.openrouter())
    )
    return registry
