"""Tests for runtime configuration."""

import pytest
from pydantic import ValidationError

from design_agent.config import DEFAULT_MODEL, AgentConfig


class TestAgentConfig:
    """Tests for AgentConfig."""

    def test_defaults(self):
        """Test default values."""
        config = AgentConfig()

        assert config.model == DEFAULT_MODEL
        assert config.provider is None
        assert config.max_steps == 10
        assert config.max_tokens == 32000
        assert config.max_message_chars == 16000
        assert config.allow_partial_arguments is False
        assert config.openai_base_url is None

    def test_from_env(self, monkeypatch):
        """Test that DESIGN_AGENT_* variables are read and coerced."""
        monkeypatch.setenv("DESIGN_AGENT_MODEL", "anthropic/claude-3.5-sonnet")
        monkeypatch.setenv("DESIGN_AGENT_MAX_STEPS", "3")
        monkeypatch.setenv("DESIGN_AGENT_ALLOW_PARTIAL_ARGUMENTS", "true")
        monkeypatch.setenv("DESIGN_AGENT_WORKSPACE", "/tmp/project")
        monkeypatch.setenv("DESIGN_AGENT_OPENAI_BASE_URL", "http://localhost:11434/v1")

        config = AgentConfig.from_env()

        assert config.model == "anthropic/claude-3.5-sonnet"
        assert config.max_steps == 3
        assert config.allow_partial_arguments is True
        assert config.workspace == "/tmp/project"
        assert config.openai_base_url == "http://localhost:11434/v1"

    def test_from_env_ignores_empty_values(self, monkeypatch):
        """Test that empty variables fall back to defaults."""
        monkeypatch.setenv("DESIGN_AGENT_MODEL", "")

        assert AgentConfig.from_env().model == DEFAULT_MODEL

    def test_invalid_value_rejected(self, monkeypatch):
        """Test that invalid values fail validation."""
        monkeypatch.setenv("DESIGN_AGENT_MAX_STEPS", "0")

        with pytest.raises(ValidationError):
            AgentConfig.from_env()
