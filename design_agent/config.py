"""Runtime configuration loaded from the environment."""

import os

from pydantic import BaseModel, Field

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AgentConfig(BaseModel):
    """Agent configuration."""

    model: str = DEFAULT_MODEL
    provider: str | None = None
    workspace: str | None = None
    max_steps: int = Field(default=10, ge=1)
    max_tokens: int = Field(default=32000, ge=1)
    max_message_chars: int = Field(default=16000, ge=1)
    allow_partial_arguments: bool = False
    openai_base_url: str | None = None

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Build the configuration from ``DESIGN_AGENT_*`` variables."""
        values: dict[str, str] = {}
        for field_name in cls.model_fields:
            value = os.getenv(f"DESIGN_AGENT_{field_name.upper()}")
            if value:
                values[field_name] = value
        return cls.model_validate(values)
