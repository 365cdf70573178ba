"""Request and response models for the HTTP API."""

from datetime import datetime

from pydantic import BaseModel

from design_agent.models.messages import Turn


class ChatRequest(BaseModel):
    """Request model for the chat endpoint."""

    message: str
    session_id: str | None = None


class StopResponse(BaseModel):
    """Response model for the stop endpoint."""

    session_id: str
    stopped: bool


class ConversationResponse(BaseModel):
    """Response model for the conversation endpoint."""

    session_id: str
    turns: list[Turn]


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
