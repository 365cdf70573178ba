"""API endpoints for the design agent."""

import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from design_agent import __version__
from design_agent.errors import SessionBusyError
from design_agent.models.conversation import ChatRequest, ConversationResponse, HealthResponse, StopResponse
from design_agent.models.events import UIEvent
from design_agent.services.chat import ChatService, get_chat_service
from design_agent.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def _ndjson(events: AsyncIterator[UIEvent]) -> AsyncIterator[str]:
    async for event in events:
        yield json.dumps(event.to_wire()) + "\n"


@router.post("/chat", tags=["Chat"])
async def chat(request: ChatRequest, service: ChatService = Depends(get_chat_service)) -> StreamingResponse:
    """Run a query and stream UI events as newline-delimited JSON."""
    try:
        session, events = service.start(request.message, request.session_id)
    except SessionBusyError as e:
        logger.warning(f"Rejected query: {e}")
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ValueError as e:
        logger.warning(f"Message validation error: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e

    return StreamingResponse(
        _ndjson(events),
        media_type="application/x-ndjson",
        headers={"X-Session-Id": session.session_id},
    )


@router.post("/chat/{session_id}/stop", response_model=StopResponse, tags=["Chat"])
async def stop_chat(session_id: str, service: ChatService = Depends(get_chat_service)) -> StopResponse:
    """Cancel the session's in-flight query."""
    stopped = service.stop(session_id)
    logger.info(f"Stop requested for session {session_id}: {'stopped' if stopped else 'nothing running'}")
    return StopResponse(session_id=session_id, stopped=stopped)


@router.get("/chat/{session_id}/conversation", response_model=ConversationResponse, tags=["Chat"])
async def get_conversation(session_id: str, service: ChatService = Depends(get_chat_service)) -> ConversationResponse:
    """Return the session's turns in order."""
    session = service.sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session ID: {session_id}")
    return ConversationResponse(session_id=session_id, turns=session.conversation.turns)


@router.delete("/chat/{session_id}/turns/{index}", response_model=ConversationResponse, tags=["Chat"])
async def dismiss_error_turn(
    session_id: str, index: int, service: ChatService = Depends(get_chat_service)
) -> ConversationResponse:
    """Dismiss an error turn from the session's conversation."""
    session = service.sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session ID: {session_id}")
    if session.busy:
        raise HTTPException(status_code=409, detail=f"Session {session_id} has a query in progress")

    try:
        session.conversation.dismiss_error(index)
    except (IndexError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return ConversationResponse(session_id=session_id, turns=session.conversation.turns)


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
