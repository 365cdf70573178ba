"""Anthropic API client streaming raw message events.

Requests pass through a moving-window limiter for requests and tokens, are
retried on rate limits and server errors, and have their history trimmed
from the front to fit the context window.
"""

import asyncio
import json
import os
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

import tiktoken
from anthropic import APIError, AsyncAnthropic
from anthropic.types import RawMessageStreamEvent
from limits import RateLimitItem, parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel

from design_agent.models.llm import LLMMessage, TextBlock, ToolResultBlock, ToolUseBlock
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

# Longest Retry-After we are willing to sleep through
MAX_RETRY_AFTER_SECONDS = 120


class CacheControl(BaseModel):
    """Prompt caching marker."""

    type: Literal["ephemeral"] = "ephemeral"
    ttl: Literal["5m", "1h"] = "5m"


class AnthropicTool(BaseModel):
    """Tool definition in the Messages API format."""

    name: str
    description: str
    input_schema: dict[str, Any]
    cache_control: CacheControl | None = None


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 32000
    temperature: float = 0.1
    max_retries: int = 3
    retry_delay: float = 1.0

    # Context window and the share reserved for the response
    max_conversation_tokens: int = 200000
    token_headroom: int = 2000

    requests_per_minute: int = 50
    tokens_per_minute: int = 400_000


class AnthropicRateLimiter:
    """Moving-window limits on requests and estimated input tokens per minute."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 400_000):
        self.limiter = MovingWindowRateLimiter(MemoryStorage())
        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def acquire(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until one more request of ``estimated_tokens`` fits in both windows."""
        # A single request larger than the whole window would never fit
        cost = max(1, min(estimated_tokens, self.token_limit.amount))
        await self._take(self.request_limit, identifier, 1)
        await self._take(self.token_limit, f"{identifier}_tokens", cost)

    async def _take(self, limit: RateLimitItem, key: str, cost: int) -> None:
        if self.limiter.hit(limit, key, cost=cost):
            return
        stats = self.limiter.get_window_stats(limit, key)
        wait_time = max(0.0, stats.reset_time - time.time())
        if wait_time > 0:
            logger.warning(f"Rate limit {limit} reached for {key}, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)


class AnthropicClient:
    """Thin wrapper over the async SDK used by the Anthropic provider.

    Args:
        api_key: Anthropic API key, defaults to ``ANTHROPIC_API_KEY``
        config: Client configuration
        client: Preconfigured SDK client; no key is required when given

    Raises:
        ValueError: If no key is available and no SDK client was given
    """

    def __init__(
        self,
        api_key: str | None = None,
        config: AnthropicConfig | None = None,
        client: AsyncAnthropic | None = None,
    ):
        api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key and client is None:
            raise ValueError("Anthropic API key not configured. Set the ANTHROPIC_API_KEY environment variable.")

        self.config = config or AnthropicConfig()
        self.client = client or AsyncAnthropic(api_key=api_key)
        self.rate_limiter = AnthropicRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

        self.tokenizer: tiktoken.Encoding | None
        try:
            # cl100k is close enough to Claude's tokenizer for budgeting
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception as e:
            logger.warning(f"Tokenizer unavailable, estimating tokens from length: {e}")
            self.tokenizer = None

    async def stream_message(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[AnthropicTool] | None = None,
        **overrides: Any,
    ) -> AsyncIterator[RawMessageStreamEvent]:
        """Stream one model response as raw events.

        Args:
            messages: Conversation history
            system_prompt: System prompt
            tools: Tool definitions
            **overrides: ``model``, ``max_tokens`` or ``temperature`` for this request
        """
        history = self.truncate_conversation(messages, system_prompt, tools)
        await self.rate_limiter.acquire(self._estimate_tokens(history, system_prompt))

        params: dict[str, Any] = {
            "model": overrides.get("model", self.config.model),
            "max_tokens": overrides.get("max_tokens", self.config.max_tokens),
            "temperature": overrides.get("temperature", self.config.temperature),
            "system": system_prompt,
            "messages": [message.model_dump() for message in history],
            "stream": True,
        }
        if tools:
            params["tools"] = [tool.model_dump(exclude_none=True) for tool in tools]

        logger.debug(f"Streaming {params['model']}: {len(history)} messages, {len(tools or [])} tools")
        stream = await self._with_retries(lambda: self.client.messages.create(**params))
        async for event in stream:
            yield event

    def _retry_delay(self, error: APIError, attempt: int) -> float | None:
        """Seconds to wait before retrying ``error``, or None if it should be raised."""
        if attempt >= self.config.max_retries - 1:
            return None
        status = getattr(error, "status_code", None)
        if status == 429:
            response = getattr(error, "response", None)
            retry_after = int(response.headers.get("retry-after", 60)) if response is not None else 60
            return retry_after if retry_after < MAX_RETRY_AFTER_SECONDS else None
        if status is not None and status >= 500:
            return self.config.retry_delay * 2**attempt
        return None

    async def _with_retries[T](self, call: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await call()
            except APIError as e:
                delay = self._retry_delay(e, attempt)
                if delay is None:
                    raise
                logger.warning(f"Anthropic request failed ({e}), retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
                attempt += 1

    def estimate_message_tokens(self, message: str) -> int:
        """Token count of ``message``, or about four characters per token without a tokenizer."""
        if self.tokenizer is None:
            return len(message) // 4
        try:
            return len(self.tokenizer.encode(message))
        except Exception:
            return len(message) // 4

    def _estimate_tokens(self, messages: list[LLMMessage], system_prompt: str) -> int:
        return self.estimate_message_tokens(system_prompt + "".join(_message_text(m) for m in messages))

    def truncate_conversation(
        self, messages: list[LLMMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[LLMMessage]:
        """Drop the oldest messages until the history fits the context window.

        The kept history always starts at a user message without tool
        results, so no tool result is separated from its call.
        """
        if not messages:
            return messages

        budget = self.config.max_conversation_tokens - self.config.token_headroom
        budget -= self.estimate_message_tokens(system_prompt)
        if tools:
            budget -= self.estimate_message_tokens(
                "".join(tool.name + tool.description + json.dumps(tool.input_schema) for tool in tools)
            )

        kept = len(messages)
        used = 0
        while kept > 0:
            cost = self.estimate_message_tokens(_message_text(messages[kept - 1]))
            if used + cost > budget:
                break
            used += cost
            kept -= 1

        if kept == 0:
            return messages

        start = kept
        while start < len(messages) and not _starts_turn(messages[start]):
            start += 1
        logger.warning(
            f"Truncated conversation from {len(messages)} to {len(messages) - start} messages "
            f"to fit within {budget} tokens"
        )
        return messages[start:]


def _message_text(message: LLMMessage) -> str:
    """Text counted against the budget, including tool inputs and results."""
    chunks = []
    for block in message.blocks:
        match block:
            case TextBlock(text=text):
                chunks.append(text)
            case ToolUseBlock(name=name, input=tool_input):
                chunks.append(name + json.dumps(tool_input))
            case ToolResultBlock(content=content):
                chunks.append(content)
    return "".join(chunks)


def _starts_turn(message: LLMMessage) -> bool:
    return message.role == "user" and not any(isinstance(b, ToolResultBlock) for b in message.blocks)
