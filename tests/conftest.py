"""Shared fixtures for the design agent tests."""

from collections.abc import Sequence
from typing import Any

import pytest

from design_agent.models.events import StepStart, StreamEvent
from design_agent.models.llm import LLMMessage
from design_agent.models.session import SandboxContext
from design_agent.services.providers import ModelProvider


class ScriptedProvider(ModelProvider):
    """Replays a fixed list of events per step in place of a model.

    An exception in a script is raised at that point of the stream.
    """

    name = "scripted"

    def __init__(self, steps: Sequence[Sequence[StreamEvent | Exception]]):
        self.steps = [list(step) for step in steps]
        self.requests: list[list[LLMMessage]] = []
        self.system_prompts: list[str] = []
        self.tools: list[dict[str, Any]] = []

    async def stream(self, messages, system_prompt, tools, step=0):
        self.requests.append(list(messages))
        self.system_prompts.append(system_prompt)
        self.tools = tools

        yield StepStart(step=step)
        script = self.steps[min(step, len(self.steps) - 1)]
        for event in script:
            if isinstance(event, Exception):
                raise event
            yield event


@pytest.fixture
def sandbox(tmp_path) -> SandboxContext:
    """Sandbox context rooted at a fresh temporary directory."""
    return SandboxContext(root=tmp_path, session_id="test-session")


@pytest.fixture
def make_provider():
    """Factory for scripted providers."""
    return ScriptedProvider
