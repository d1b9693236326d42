"""Chat session routes: list, create, read, rename, delete, append."""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError

from isuite.api.deps import get_database, require_user
from isuite.core.limiter import endpoint_limit, limiter
from isuite.core.logging import logger
from isuite.schemas import User
from isuite.schemas.auth import SuccessResponse
from isuite.schemas.base import CamelModel
from isuite.schemas.chat import (
    ChatMessageResponse,
    ChatSessionResponse,
    MessageCreate,
    MessageResponse,
    SessionDetailResponse,
    SessionListResponse,
    SessionResponse,
)
from isuite.services.database_service import DatabaseService, SessionNotFoundError

router = APIRouter()


class SessionTitleUpdate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)


def not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")


@router.get("", response_model=SessionListResponse)
@limiter.limit(endpoint_limit("sessions"))
async def list_sessions(
    request: Request,
    user: User = Depends(require_user),
    db: DatabaseService = Depends(get_database),
):
    """The user's sessions, most recently updated first."""
    sessions = await db.list_sessions(user.id)
    return SessionListResponse(sessions=[ChatSessionResponse.model_validate(s) for s in sessions])


@router.post("", response_model=SessionResponse)
@limiter.limit(endpoint_limit("sessions"))
async def create_session(
    request: Request,
    user: User = Depends(require_user),
    db: DatabaseService = Depends(get_database),
):
    """Open a fresh chat. An existing empty session is handed back instead."""
    try:
        chat_session = await db.create_session(user.id)
    except SQLAlchemyError as e:
        logger.error("session_creation_failed", user_id=user.id, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create session")
    return SessionResponse(session=ChatSessionResponse.model_validate(chat_session))


@router.get("/{session_id}", response_model=SessionDetailResponse)
@limiter.limit(endpoint_limit("sessions"))
async def get_session(
    request: Request,
    session_id: str,
    user: User = Depends(require_user),
    db: DatabaseService = Depends(get_database),
):
    chat_session = await db.get_session(session_id, user.id)
    if chat_session is None:
        raise not_found()
    messages = await db.get_messages(session_id)
    return SessionDetailResponse(
        session=ChatSessionResponse.model_validate(chat_session),
        messages=[ChatMessageResponse.model_validate(m) for m in messages],
    )


@router.patch("/{session_id}", response_model=SessionResponse)
@limiter.limit(endpoint_limit("sessions"))
async def rename_session(
    request: Request,
    session_id: str,
    payload: SessionTitleUpdate,
    user: User = Depends(require_user),
    db: DatabaseService = Depends(get_database),
):
    if await db.get_session(session_id, user.id) is None:
        raise not_found()
    try:
        chat_session = await db.update_session_title(session_id, payload.title.strip())
    except SessionNotFoundError:
        raise not_found()
    return SessionResponse(session=ChatSessionResponse.model_validate(chat_session))


@router.delete("/{session_id}", response_model=SuccessResponse)
@limiter.limit(endpoint_limit("sessions"))
async def delete_session(
    request: Request,
    session_id: str,
    user: User = Depends(require_user),
    db: DatabaseService = Depends(get_database),
):
    if not await db.delete_session(session_id, user.id):
        raise not_found()
    return SuccessResponse()


@router.post("/{session_id}/messages", response_model=MessageResponse)
@limiter.limit(endpoint_limit("sessions"))
async def append_message(
    request: Request,
    session_id: str,
    payload: MessageCreate,
    user: User = Depends(require_user),
    db: DatabaseService = Depends(get_database),
):
    """Append one message to a session the user owns.

    Raises:
        HTTPException: 404 for an unknown session, 500 if the write fails
    """
    tool_calls = [t.model_dump() for t in payload.tool_calls] if payload.tool_calls else None
    try:
        message = await db.append_message(
            session_id, payload.role, payload.content, tool_calls=tool_calls, user_id=user.id
        )
    except SessionNotFoundError:
        raise not_found()
    except SQLAlchemyError as e:
        logger.error("message_save_failed", session_id=session_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save message")
    return MessageResponse(message=ChatMessageResponse.model_validate(message))
