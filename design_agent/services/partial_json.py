"""Incremental decoding of streamed tool-call arguments.

Arguments arrive as raw JSON fragments. After every fragment the whole
buffer is decoded; a failed attempt is discarded and retried on the next
fragment. Only JSON objects count as arguments.
"""

import json
from typing import Any

from pydantic_core import from_json

from design_agent.errors import StreamDecodeError


class PartialDecoder:
    """Accumulates argument fragments for one tool call.

    Args:
        allow_partial: Also decode incomplete buffers (missing closing braces,
            a truncated trailing value) for progressive display
    """

    def __init__(self, allow_partial: bool = False):
        self.allow_partial = allow_partial
        self._fragments: list[str] = []
        self._last: dict[str, Any] | None = None

    @property
    def buffer(self) -> str:
        return "".join(self._fragments)

    @property
    def last_decoded(self) -> dict[str, Any] | None:
        """Most recent successfully decoded object."""
        return self._last

    def feed(self, fragment: str) -> dict[str, Any] | None:
        """Append a fragment and attempt a decode.

        Returns:
            The decoded object if it changed since the last successful decode, else None
        """
        self._fragments.append(fragment)
        decoded = self._try_decode(self.buffer)
        if decoded is None or decoded == self._last:
            return None
        self._last = decoded
        return decoded

    def final(self) -> dict[str, Any]:
        """Strictly decode the complete buffer; an empty buffer is ``{}``.

        Raises:
            StreamDecodeError: If the buffer is not a complete JSON object
        """
        text = self.buffer.strip()
        if not text:
            return {}
        try:
            value = json.loads(text)
        except json.JSONDecodeError as e:
            raise StreamDecodeError(f"Tool arguments are not valid JSON: {e}") from e
        if not isinstance(value, dict):
            raise StreamDecodeError(f"Tool arguments must be a JSON object, got {type(value).__name__}")
        return value

    def _try_decode(self, text: str) -> dict[str, Any] | None:
        if not text.strip():
            return None
        try:
            if self.allow_partial:
                value = from_json(text, allow_partial=True)
            else:
                value = json.loads(text)
        except ValueError:
            return None
        return value if isinstance(value, dict) else None
