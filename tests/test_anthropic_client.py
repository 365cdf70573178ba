"""Tests for the Anthropic client, stream mapping and provider registry."""

from types import SimpleNamespace
from unittest.mock import Mock, patch

import httpx
import pytest
from anthropic import APIError

from design_agent.clients.anthropic import AnthropicClient, AnthropicConfig, AnthropicTool
from design_agent.errors import ProviderNotConfiguredError
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
from design_agent.services.providers import (
    AnthropicProvider,
    ProviderRegistry,
    create_default_registry,
    infer_provider_name,
)


@pytest.fixture
def client():
    """Client with a test key and a mocked tokenizer counting one token per message."""
    with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "test-key"}):
        client = AnthropicClient(config=AnthropicConfig(max_conversation_tokens=1000, token_headroom=100))
    client.tokenizer = Mock()
    client.tokenizer.encode.return_value = ["token"]
    return client


def raw(type_: str, **fields) -> SimpleNamespace:
    return SimpleNamespace(type=type_, **fields)


def tool_use_events() -> list[SimpleNamespace]:
    return [
        raw("message_start", message=SimpleNamespace(usage=SimpleNamespace(input_tokens=120))),
        raw("content_block_start", index=0, content_block=SimpleNamespace(type="text", text="")),
        raw("content_block_delta", index=0, delta=SimpleNamespace(type="text_delta", text="Let me look")),
        raw("content_block_stop", index=0),
        raw("content_block_start", index=1, content_block=SimpleNamespace(type="tool_use", id="toolu_1", name="ls")),
        raw("content_block_delta", index=1, delta=SimpleNamespace(type="input_json_delta", partial_json='{"pa')),
        raw("content_block_delta", index=1, delta=SimpleNamespace(type="input_json_delta", partial_json='th": "."}')),
        raw("content_block_stop", index=1),
        raw("message_delta", delta=SimpleNamespace(stop_reason="tool_use"), usage=SimpleNamespace(output_tokens=30)),
        raw("message_stop"),
    ]


def scripted_stream(events, error: Exception | None = None):
    requests = []

    async def stream_message(messages, system_prompt, tools=None, **kwargs):
        requests.append({"messages": messages, "system_prompt": system_prompt, "tools": tools, **kwargs})
        for event in events:
            yield event
        if error is not None:
            raise error

    return stream_message, requests


async def collect(provider: AnthropicProvider, tools=None) -> list:
    messages = [LLMMessage(role="user", content="What is here?")]
    return [event async for event in provider.stream(messages, "You are a designer", tools or [], step=0)]


class TestAnthropicClientConfig:
    """Tests for client construction."""

    def test_missing_api_key(self):
        """Test that a missing key is reported as a configuration error."""
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError, match="API key not configured"):
                AnthropicClient()

    def test_injected_sdk_client_needs_no_key(self):
        """Test that a preconfigured SDK client is accepted without a key."""
        sdk = Mock()
        with patch.dict("os.environ", {}, clear=True):
            client = AnthropicClient(client=sdk)
        assert client.client is sdk


class TestTokenLimits:
    """Tests for token estimation and conversation truncation."""

    def test_estimate_without_tokenizer(self, client):
        """Test the character based fallback."""
        client.tokenizer = None
        assert client.estimate_message_tokens("x" * 40) == 10

    def test_estimate_with_failing_tokenizer(self, client):
        """Test fallback when the tokenizer raises."""
        client.tokenizer.encode.side_effect = RuntimeError("boom")
        assert client.estimate_message_tokens("x" * 40) == 10

    def test_empty_conversation(self, client):
        """Test that an empty conversation is returned unchanged."""
        assert client.truncate_conversation([], "system") == []

    def test_conversation_within_limit(self, client):
        """Test that a short conversation is not truncated."""
        messages = [
            LLMMessage(role="user", content="Hello"),
            LLMMessage(role="assistant", content="Hi there"),
        ]

        assert client.truncate_conversation(messages, "system") == messages

    def test_truncation_keeps_most_recent(self, client):
        """Test that the oldest messages are dropped first."""
        client.tokenizer.encode.side_effect = lambda text: ["token"] * (300 if text.startswith("big") else 1)
        messages = [
            LLMMessage(role="user", content="big one"),
            LLMMessage(role="assistant", content="big two"),
            LLMMessage(role="user", content="big three"),
            LLMMessage(role="assistant", content="small"),
        ]

        truncated = client.truncate_conversation(messages, "system")

        assert [m.content for m in truncated] == ["big three", "small"]

    def test_truncation_never_starts_with_tool_result(self, client):
        """Test that a tool result is not kept without its tool call."""
        client.tokenizer.encode.side_effect = lambda text: ["token"] * (500 if "old" in text else 100)
        messages = [
            LLMMessage(role="user", content="old question"),
            LLMMessage(role="assistant", content=[ToolUseBlock(id="c1", name="ls", input={"path": "old"})]),
            LLMMessage(role="user", content=[ToolResultBlock(tool_use_id="c1", content="[]")]),
            LLMMessage(role="assistant", content=[TextBlock(text="Nothing there")]),
            LLMMessage(role="user", content="Next question"),
        ]

        truncated = client.truncate_conversation(messages, "system")

        assert truncated[0].role == "user"
        assert truncated[0].content == "Next question"

    def test_tools_count_against_budget(self, client):
        """Test that tool definitions reduce the available budget."""
        client.tokenizer.encode.side_effect = lambda text: ["token"] * (850 if text.startswith("read") else 10)
        messages = [LLMMessage(role="user", content=f"message {i}") for i in range(5)]
        tools = [AnthropicTool(name="read", description="Read a file", input_schema={"type": "object"})]

        assert len(client.truncate_conversation(messages, "system")) == 5
        assert len(client.truncate_conversation(messages, "system", tools)) < 5


class TestAnthropicProvider:
    """Tests for mapping raw Anthropic events to stream events."""

    @pytest.mark.asyncio
    async def test_tool_use_stream(self, client):
        """Test a step with text followed by a tool call."""
        client.stream_message, _ = scripted_stream(tool_use_events())
        provider = AnthropicProvider(client, "claude-sonnet-4-20250514")

        events = await collect(provider)

        assert events == [
            StepStart(step=0),
            TextDelta(text="Let me look"),
            ToolCallStart(id="toolu_1", name="ls"),
            ToolCallArgumentDelta(id="toolu_1", fragment='{"pa'),
            ToolCallArgumentDelta(id="toolu_1", fragment='th": "."}'),
            ToolCallComplete(id="toolu_1", name="ls", arguments={"path": "."}),
            StepFinish(step=0, finish_reason="tool_use"),
        ]

    @pytest.mark.asyncio
    async def test_usage_is_accumulated(self, client):
        """Test that token usage from the stream is recorded."""
        client.stream_message, _ = scripted_stream(tool_use_events())
        provider = AnthropicProvider(client)

        await collect(provider)
        await collect(provider)

        assert provider.usage.input_tokens == 240
        assert provider.usage.output_tokens == 60
        assert provider.usage.total_tokens == 300

    @pytest.mark.asyncio
    async def test_tool_call_without_arguments(self, client):
        """Test that a tool call with no argument deltas completes with empty arguments."""
        client.stream_message, _ = scripted_stream(
            [
                raw("message_start", message=SimpleNamespace(usage=None)),
                raw("content_block_start", index=0, content_block=SimpleNamespace(type="tool_use", id="t", name="ls")),
                raw("content_block_stop", index=0),
                raw("message_stop"),
            ]
        )

        events = await collect(AnthropicProvider(client))

        assert ToolCallComplete(id="t", name="ls", arguments={}) in events

    @pytest.mark.asyncio
    async def test_model_and_cache_control(self, client):
        """Test that the model is passed through and the last tool is cached."""
        client.stream_message, requests = scripted_stream([raw("message_stop")])
        provider = AnthropicProvider(client, "claude-opus-4-20250514")
        tools = [
            {"name": "read", "description": "Read", "input_schema": {"type": "object"}},
            {"name": "write", "description": "Write", "input_schema": {"type": "object"}},
        ]

        await collect(provider, tools)

        sent = requests[0]
        assert sent["model"] == "claude-opus-4-20250514"
        assert sent["tools"][0].cache_control is None
        assert sent["tools"][-1].cache_control.type == "ephemeral"

    @pytest.mark.asyncio
    async def test_api_error_becomes_error_event(self, client):
        """Test that an API error mid-stream ends the step with an error event."""
        error = APIError("Overloaded", httpx.Request("POST", "https://api.anthropic.com/v1/messages"), body=None)
        client.stream_message, _ = scripted_stream(tool_use_events()[:3], error=error)

        events = await collect(AnthropicProvider(client))

        assert events[-1] == ErrorEvent(message="Overloaded")
        assert not any(isinstance(event, StepFinish) for event in events)


class TestProviderRegistry:
    """Tests for provider selection."""

    def test_infer_provider_name(self):
        """Test provider inference from model ids."""
        assert infer_provider_name("claude-sonnet-4-20250514") == "anthropic"
        assert infer_provider_name("anthropic/claude-3.5-sonnet") == "openrouter"
        assert infer_provider_name("gpt-4o") == "openai"

    def test_resolve_registered_provider(self):
        """Test building a provider from its factory."""
        registry = ProviderRegistry()
        built = []
        registry.register("anthropic", lambda model: built.append(model) or Mock(name=model))

        registry.resolve("claude-sonnet-4-20250514")

        assert built == ["claude-sonnet-4-20250514"]
        assert registry.names() == ["anthropic"]

    def test_explicit_provider_overrides_inference(self):
        """Test that an explicit provider name wins."""
        registry = ProviderRegistry()
        registry.register("openrouter", lambda model: Mock())

        registry.resolve("claude-sonnet-4-20250514", "openrouter")

    def test_unknown_provider(self):
        """Test that an unregistered provider is a configuration error."""
        with pytest.raises(ProviderNotConfiguredError, match="openai"):
            ProviderRegistry().resolve("gpt-4o")

    def test_default_registry_creates_client_lazily(self):
        """Test that the default registry builds the client on first resolve and reuses it."""
        registry = create_default_registry()
        with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "test-key"}):
            first = registry.resolve("claude-sonnet-4-20250514")
            second = registry.resolve("claude-opus-4-20250514")

        assert isinstance(first, AnthropicProvider)
        assert first.client is second.client
        assert second.model == "claude-opus-4-20250514"

    def test_default_registry_without_key(self):
        """Test that a missing key surfaces when the provider is built."""
        registry = create_default_registry()
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError, match="API key"):
                registry.resolve("claude-sonnet-4-20250514")
