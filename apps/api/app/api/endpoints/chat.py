import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from app.api.errors import raise_http_error
from app.core.auth import AuthPrincipal, get_current_principal
from app.core.database import get_session
from app.models.chat import ChatSession
from app.schemas.chat import (
    ChatHistoryResponse,
    ChatRequest,
    ChatResponse,
    ChatSessionCreateRequest,
    ChatSessionDeleteResult,
    ChatSessionRead,
    ChatSessionStartResponse,
)
from app.services.character_service import require_character
from app.services.chat_session_service import (
    append_chat_messages,
    build_message,
    delete_chat_session,
    find_or_create_chat_session,
    get_chat_messages,
    get_owned_chat_session,
    list_user_sessions,
)
from app.services.llm_provider import generate_character_reply

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


def _session_read(session: ChatSession) -> ChatSessionRead:
    return ChatSessionRead(
        session_id=session.session_id,
        user_id=session.user_id,
        character_id=session.character_id,
        message_count=len(session.messages or []),
        created_at=session.created_at,
        updated_at=session.updated_at,
    )


@router.post("/chat-sessions", response_model=ChatSessionStartResponse)
def start_chat_session(
    payload: ChatSessionCreateRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        require_character(db, payload.character_id)
        session, continued = find_or_create_chat_session(
            db,
            user_id=principal.user_id,
            character_id=payload.character_id,
        )
        messages = get_chat_messages(db, session_id=session.session_id, user_id=principal.user_id)
    except ValueError as exc:
        raise_http_error(exc)
    return ChatSessionStartResponse(session_id=session.session_id, messages=messages, continued=continued)


@router.get("/chat-sessions", response_model=list[ChatSessionRead])
def my_chat_sessions(
    character_id: Optional[int] = Query(default=None, ge=1),
    limit: int = Query(default=24, ge=1, le=100),
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    sessions = list_user_sessions(db, user_id=principal.user_id, character_id=character_id, limit=limit)
    return [_session_read(item) for item in sessions]


@router.delete("/chat-sessions/{session_id}", response_model=ChatSessionDeleteResult)
def remove_chat_session(
    session_id: str,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        deleted_session_id = delete_chat_session(db, session_id=session_id, user_id=principal.user_id)
    except ValueError as exc:
        raise_http_error(exc)
    return ChatSessionDeleteResult(deleted_session_id=deleted_session_id)


@router.get("/chat-history/{session_id}", response_model=ChatHistoryResponse)
def chat_history(
    session_id: str,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    try:
        messages = get_chat_messages(db, session_id=session_id, user_id=principal.user_id)
    except ValueError as exc:
        raise_http_error(exc)
    return ChatHistoryResponse(session_id=session_id, messages=messages)


@router.post("/chat", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    db: Session = Depends(get_session),
    principal: AuthPrincipal = Depends(get_current_principal),
):
    user_input = payload.user_input.strip()
    if not user_input:
        raise HTTPException(status_code=400, detail="user_input is required")
    try:
        character = require_character(db, payload.character_id)
        session = get_owned_chat_session(db, session_id=payload.session_id, user_id=principal.user_id)
        if session.character_id != character.id:
            raise ValueError("session does not belong to this character")
        history = get_chat_messages(db, session_id=session.session_id, user_id=principal.user_id)
    except ValueError as exc:
        raise_http_error(exc)

    user_message = build_message("user", user_input)
    try:
        generation = await generate_character_reply(character, history, user_input)
    except (httpx.HTTPError, ValueError) as exc:
        logger.exception("chat generation failed for session %s", payload.session_id)
        raise HTTPException(status_code=500, detail="failed to generate a reply") from exc

    reply = generation.assistant_text or "..."
    updated = append_chat_messages(
        db,
        session_id=session.session_id,
        user_id=principal.user_id,
        new_messages=[user_message, build_message("assistant", reply)],
    )
    logger.debug("chat usage for session %s: %s", updated.session_id, generation.usage)
    return ChatResponse(response=reply, history=updated.messages)
