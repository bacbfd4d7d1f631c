"""API router for identification conversations."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from foragelens.api.dependencies import get_conversation_service, get_conversation_store
from foragelens.models import SessionStatus
from foragelens.models.schemas import (
    SendMessageRequest,
    SendMessageResponse,
    SessionResponse,
)
from foragelens.services.conversation import ConversationService

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS = {
    "session_not_found": 404,
    "budget_exceeded": 402,
    "no_api_key": 401,
    "api_error": 502,
    "network_error": 504,
    "parse_error": 502,
    "context_too_large": 413,
    "empty_conversation": 422,
}


@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(store: ConversationService = Depends(get_conversation_store)) -> SessionResponse:
    return SessionResponse.model_validate(store.start_conversation())


@router.get("", response_model=List[SessionResponse])
async def list_sessions(
    status: Optional[SessionStatus] = None,
    store: ConversationService = Depends(get_conversation_store),
) -> List[SessionResponse]:
    return [SessionResponse.model_validate(s) for s in store.list_sessions(status)]


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    store: ConversationService = Depends(get_conversation_store),
) -> SessionResponse:
    session = store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Conversation not found.")
    return SessionResponse.model_validate(session)


@router.post("/{session_id}/end", response_model=SessionResponse)
async def end_session(
    session_id: str,
    store: ConversationService = Depends(get_conversation_store),
) -> SessionResponse:
    session = store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Conversation not found.")
    store.end_conversation(session_id)
    return SessionResponse.model_validate(session)


@router.post("/{session_id}/messages", response_model=SendMessageResponse)
async def send_message(
    session_id: str,
    payload: SendMessageRequest,
    conversations: ConversationService = Depends(get_conversation_service),
):
    """
    Send a user turn and run the identification pipeline on the conversation.

    Failures come back as ``{"ok": false, "error": <code>}`` with an HTTP
    status matching the error code.
    """
    result = await conversations.send_message(session_id, payload.text, payload.photos)
    body = SendMessageResponse(
        ok=result.ok,
        response=result.response,
        cached=result.cached,
        error=result.error,
        message=result.message,
        session=SessionResponse.model_validate(result.session) if result.session else None,
    )
    if result.ok:
        return body
    return JSONResponse(status_code=ERROR_STATUS.get(result.error, 500), content=body.model_dump(mode="json"))
