"""Tests for the OpenAI-compatible client, chunk mapping and registry entries."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from openai import APIError

from design_agent.clients.openai import (
    OPENROUTER_BASE_URL,
    OpenAIClient,
    OpenAIConfig,
    to_openai_messages,
    to_openai_tools,
)
from design_agent.models.events import (
    ErrorEvent,
    StepFinish,
    StepStart,
    TextDelta,
    ToolCallArgumentDelta,
    ToolCallComplete,
    ToolCallStart,
)
from design_agent.models.llm import LLMMessage, TextBlock, ToolResultBlock, ToolUseBlock
from design_agent.services.providers import OpenAIProvider, create_default_registry


@pytest.fixture
def client():
    return OpenAIClient(api_key="test-key")


def chunk(content=None, tool_calls=None, finish_reason=None) -> SimpleNamespace:
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)], usage=None)


def call_fragment(index: int, arguments: str, id_=None, name=None) -> SimpleNamespace:
    return SimpleNamespace(index=index, id=id_, function=SimpleNamespace(name=name, arguments=arguments))


def usage_chunk(prompt_tokens: int, completion_tokens: int) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[], usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
    )


def tool_call_chunks() -> list[SimpleNamespace]:
    return [
        chunk(content="Let me look"),
        chunk(tool_calls=[call_fragment(0, "", id_="call_a", name="ls")]),
        chunk(tool_calls=[call_fragment(0, '{"pa')]),
        chunk(tool_calls=[call_fragment(0, 'th": "."}')]),
        chunk(tool_calls=[call_fragment(1, '{"file_path": "theme.css"}', id_="call_b", name="read")]),
        chunk(finish_reason="tool_calls"),
        usage_chunk(100, 20),
    ]


def scripted_stream(chunks, error: Exception | None = None):
    requests = []

    async def stream_chat(messages, system_prompt, tools=None, **kwargs):
        requests.append({"messages": messages, "system_prompt": system_prompt, "tools": tools, **kwargs})
        for item in chunks:
            yield item
        if error is not None:
            raise error

    return stream_chat, requests


async def collect(provider: OpenAIProvider) -> list:
    messages = [LLMMessage(role="user", content="What is here?")]
    return [event async for event in provider.stream(messages, "You are a designer", [], step=0)]


class TestOpenAIClient:
    """Tests for client construction and request building."""

    def test_missing_api_key(self):
        """Test that a missing key names the variable to set."""
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError, match="OPENAI_API_KEY"):
                OpenAIClient()

    def test_openrouter_config(self):
        """Test the OpenRouter endpoint, key variable and default model."""
        config = OpenAIConfig.openrouter(temperature=0.5)

        assert config.base_url == OPENROUTER_BASE_URL
        assert config.api_key_env == "OPENROUTER_API_KEY"
        assert config.model == "anthropic/claude-3-7-sonnet-20250219"
        assert config.temperature == 0.5

    @pytest.mark.asyncio
    async def test_stream_chat_request(self):
        """Test the parameters sent to the chat completions endpoint."""

        async def chunks():
            yield chunk(content="hi")

        sdk = Mock()
        sdk.chat.completions.create = AsyncMock(return_value=chunks())
        client = OpenAIClient(client=sdk, config=OpenAIConfig(model="gpt-4o-mini"))
        tools = [{"name": "ls", "description": "List", "input_schema": {"type": "object"}}]

        received = [
            item async for item in client.stream_chat([LLMMessage(role="user", content="Hi")], "Be brief", tools)
        ]

        assert len(received) == 1
        params = sdk.chat.completions.create.call_args.kwargs
        assert params["model"] == "gpt-4o-mini"
        assert params["stream"] is True
        assert params["stream_options"] == {"include_usage": True}
        assert params["messages"][0] == {"role": "system", "content": "Be brief"}
        assert params["tools"][0]["function"]["name"] == "ls"


class TestMessageConversion:
    """Tests for converting history to chat completion messages."""

    def test_tool_round_trip_history(self):
        """Test that tool calls ride on the assistant message and results become tool messages."""
        messages = [
            LLMMessage(role="user", content="Make a theme"),
            LLMMessage(
                role="assistant",
                content=[
                    TextBlock(text="Writing it"),
                    ToolUseBlock(id="call_a", name="write", input={"file_path": "theme.css"}),
                ],
            ),
            LLMMessage(
                role="user",
                content=[ToolResultBlock(tool_use_id="call_a", content='{"ok": true}'), TextBlock(text="Thanks")],
            ),
        ]

        converted = to_openai_messages(messages, "System")

        assert [message["role"] for message in converted] == ["system", "user", "assistant", "tool", "user"]
        call = converted[2]["tool_calls"][0]
        assert call["id"] == "call_a"
        assert call["type"] == "function"
        assert json.loads(call["function"]["arguments"]) == {"file_path": "theme.css"}
        assert converted[3] == {"role": "tool", "tool_call_id": "call_a", "content": '{"ok": true}'}
        assert converted[4] == {"role": "user", "content": "Thanks"}

    def test_assistant_with_only_tool_calls_has_no_content(self):
        """Test that an assistant message without text sends null content."""
        messages = [LLMMessage(role="assistant", content=[ToolUseBlock(id="c", name="ls", input={})])]

        converted = to_openai_messages(messages, "")

        assert converted[0]["content"] is None
        assert converted[0]["tool_calls"][0]["function"]["arguments"] == "{}"

    def test_tools_become_functions(self):
        """Test the function tool wrapper."""
        schema = {"type": "object", "properties": {"path": {"type": "string"}}}

        (tool,) = to_openai_tools([{"name": "ls", "description": "List files", "input_schema": schema}])

        assert tool == {
            "type": "function",
            "function": {"name": "ls", "description": "List files", "parameters": schema},
        }


class TestOpenAIProvider:
    """Tests for mapping chat completion chunks to stream events."""

    @pytest.mark.asyncio
    async def test_tool_call_stream(self, client):
        """Test a step with text followed by two tool calls."""
        client.stream_chat, _ = scripted_stream(tool_call_chunks())

        events = await collect(OpenAIProvider(client, "gpt-4o"))

        assert events == [
            StepStart(step=0),
            TextDelta(text="Let me look"),
            ToolCallStart(id="call_a", name="ls"),
            ToolCallArgumentDelta(id="call_a", fragment='{"pa'),
            ToolCallArgumentDelta(id="call_a", fragment='th": "."}'),
            ToolCallStart(id="call_b", name="read"),
            ToolCallArgumentDelta(id="call_b", fragment='{"file_path": "theme.css"}'),
            ToolCallComplete(id="call_a", name="ls", arguments={"path": "."}),
            ToolCallComplete(id="call_b", name="read", arguments={"file_path": "theme.css"}),
            StepFinish(step=0, finish_reason="tool_use"),
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("reason", "expected"),
        [("stop", "end_turn"), ("length", "max_tokens"), ("content_filter", "content_filter")],
    )
    async def test_finish_reasons(self, client, reason, expected):
        """Test that finish reasons are translated for the agent loop."""
        client.stream_chat, _ = scripted_stream([chunk(content="Done"), chunk(finish_reason=reason)])

        events = await collect(OpenAIProvider(client))

        assert events[-1] == StepFinish(step=0, finish_reason=expected)

    @pytest.mark.asyncio
    async def test_usage_is_accumulated(self, client):
        """Test that the trailing usage chunk is recorded."""
        client.stream_chat, _ = scripted_stream(tool_call_chunks())
        provider = OpenAIProvider(client)

        await collect(provider)
        await collect(provider)

        assert provider.usage.input_tokens == 200
        assert provider.usage.output_tokens == 40

    @pytest.mark.asyncio
    async def test_open_calls_completed_when_stream_ends_early(self, client):
        """Test that calls still open at the end of the stream are completed."""
        client.stream_chat, _ = scripted_stream([chunk(tool_calls=[call_fragment(0, "{}", id_="c", name="ls")])])

        events = await collect(OpenAIProvider(client))

        assert events[-2:] == [ToolCallComplete(id="c", name="ls", arguments={}), StepFinish(step=0)]

    @pytest.mark.asyncio
    async def test_model_is_passed_through(self, client):
        """Test that the provider's model is sent with the request."""
        client.stream_chat, requests = scripted_stream([chunk(finish_reason="stop")])

        await collect(OpenAIProvider(client, "gpt-4o-mini"))

        assert requests[0]["model"] == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_api_error_becomes_error_event(self, client):
        """Test that an API error mid-stream ends the step with an error event."""
        error = APIError("Overloaded", httpx.Request("POST", "https://api.openai.com/v1/chat/completions"), body=None)
        client.stream_chat, _ = scripted_stream(tool_call_chunks()[:2], error=error)

        events = await collect(OpenAIProvider(client))

        assert events[-1] == ErrorEvent(message="Overloaded")
        assert not any(isinstance(event, StepFinish) for event in events)


class TestDefaultRegistry:
    """Tests for the OpenAI and OpenRouter registry entries."""

    def test_openai_model_resolves(self):
        """Test that a bare model id is served by the OpenAI provider."""
        registry = create_default_registry(openai_config=OpenAIConfig(base_url="http://localhost:11434/v1"))
        with patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"}, clear=True):
            first = registry.resolve("gpt-4o")
            second = registry.resolve("gpt-4o-mini")

        assert isinstance(first, OpenAIProvider)
        assert first.name == "openai"
        assert first.client is second.client
        assert first.client.config.base_url == "http://localhost:11434/v1"
        assert second.model == "gpt-4o-mini"

    def test_openrouter_model_resolves(self):
        """Test that a vendor-prefixed model id is served through OpenRouter."""
        registry = create_default_registry()
        with patch.dict("os.environ", {"OPENROUTER_API_KEY": "test-key"}, clear=True):
            provider = registry.resolve("anthropic/claude-3.5-sonnet")

        assert isinstance(provider, OpenAIProvider)
        assert provider.name == "openrouter"
        assert provider.model == "anthropic/claude-3.5-sonnet"
        assert provider.client.config.base_url == OPENROUTER_BASE_URL

    def test_openrouter_without_key(self):
        """Test that a missing OpenRouter key surfaces when the provider is built."""
        registry = create_default_registry()
        with patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"}, clear=True):
            with pytest.raises(ValueError, match="OPENROUTER_API_KEY"):
                registry.resolve("anthropic/claude-3.5-sonnet")
