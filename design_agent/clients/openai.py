"""OpenAI-compatible chat completions client, used for OpenAI and OpenRouter.

Conversation history is kept in the Messages API shape internally and
converted here: tool calls ride on the assistant message, and each tool
result becomes its own ``tool`` message.
"""

import json
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from openai import AsyncOpenAI
from openai.types.chat import ChatCompletionChunk

from design_agent.models.llm import LLMMessage, TextBlock, ToolResultBlock, ToolUseBlock
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


@dataclass
class OpenAIConfig:
    """Configuration for an OpenAI-compatible endpoint."""

    model: str = "gpt-4o"
    max_tokens: int = 16384
    temperature: float = 0.1
    max_retries: int = 3
    base_url: str | None = None
    api_key_env: str = "OPENAI_API_KEY"

    @classmethod
    def openrouter(cls, **overrides: Any) -> "OpenAIConfig":
        values: dict[str, Any] = {
            "model": "anthropic/claude-3-7-sonnet-20250219",
            "base_url": OPENROUTER_BASE_URL,
            "api_key_env": "OPENROUTER_API_KEY",
        }
        return cls(**{**values, **overrides})


def to_openai_messages(messages: list[LLMMessage], system_prompt: str) -> list[dict[str, Any]]:
    """Convert the history to chat completion messages.

    Tool results of a user message are emitted before its text, so every
    ``tool`` message directly follows the assistant message that called it.
    """
    converted: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}] if system_prompt else []
    for message in messages:
        blocks = message.blocks
        text = "".join(block.text for block in blocks if isinstance(block, TextBlock))

        if message.role == "assistant":
            entry: dict[str, Any] = {"role": "assistant", "content": text or None}
            calls = [
                {
                    "id": block.id,
                    "type": "function",
                    "function": {"name": block.name, "arguments": json.dumps(block.input)},
                }
                for block in blocks
                if isinstance(block, ToolUseBlock)
            ]
            if calls:
                entry["tool_calls"] = calls
            converted.append(entry)
            continue

        for block in blocks:
            if isinstance(block, ToolResultBlock):
                converted.append({"role": "tool", "tool_call_id": block.tool_use_id, "content": block.content})
        if text:
            converted.append({"role": "user", "content": text})
    return converted


def to_openai_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Wrap ``{name, description, input_schema}`` schemas as function tools."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["input_schema"],
            },
        }
        for tool in tools
    ]


class OpenAIClient:
    """Thin wrapper over the async OpenAI SDK.

    Retries on rate limits and server errors are left to the SDK.

    Args:
        api_key: API key, defaults to the variable named by ``config.api_key_env``
        config: Client configuration
        client: Preconfigured SDK client; no key is required when given

    Raises:
        ValueError: If no key is available and no SDK client was given
    """

    def __init__(
        self,
        api_key: str | None = None,
        config: OpenAIConfig | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self.config = config or OpenAIConfig()
        api_key = api_key or os.getenv(self.config.api_key_env)
        if not api_key and client is None:
            raise ValueError(f"API key not configured. Set the {self.config.api_key_env} environment variable.")

        self.client = client or AsyncOpenAI(
            api_key=api_key, base_url=self.config.base_url, max_retries=self.config.max_retries
        )

    async def stream_chat(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[dict[str, Any]] | None = None,
        **overrides: Any,
    ) -> AsyncIterator[ChatCompletionChunk]:
        """Stream one chat completion as raw chunks.

        The last chunk carries the token usage and no choices.
        """
        params: dict[str, Any] = {
            "model": overrides.get("model", self.config.model),
            "max_tokens": overrides.get("max_tokens", self.config.max_tokens),
            "temperature": overrides.get("temperature", self.config.temperature),
            "messages": to_openai_messages(messages, system_prompt),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            params["tools"] = to_openai_tools(tools)

        logger.debug(f"Streaming {params['model']}: {len(messages)} messages, {len(tools or [])} tools")
        stream = await self.client.chat.completions.create(**params)
        async for chunk in stream:
            yield chunk
