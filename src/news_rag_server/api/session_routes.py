"""
Session Routes

Create, inspect and delete chat sessions. Looking up an unknown session
creates it, so ``GET`` never returns 404.
"""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, status

from .dependencies import get_session_store
from .models import SessionCreatedResponse, SessionDeletedResponse
from ..sessions.models import Session
from ..sessions.store import SessionStore

router = APIRouter(prefix="/api/session", tags=["session"])


@router.post(
    "",
    response_model=SessionCreatedResponse,
    summary="Start a new chat session",
    status_code=status.HTTP_200_OK,
)
async def create_session(
    sessions: Annotated[SessionStore, Depends(get_session_store)],
) -> SessionCreatedResponse:
    session = await sessions.create_session(str(uuid.uuid4()))
    return SessionCreatedResponse(session_id=session.id, created=session.created)


@router.get(
    "/{session_id}",
    response_model=Session,
    summary="Get (or lazily create) a session",
)
async def get_session(
    session_id: str,
    sessions: Annotated[SessionStore, Depends(get_session_store)],
) -> Session:
    return await sessions.get_session_info(session_id)


@router.delete(
    "/{session_id}",
    response_model=SessionDeletedResponse,
    summary="Delete a session and its history",
)
async def delete_session(
    session_id: str,
    sessions: Annotated[SessionStore, Depends(get_session_store)],
) -> SessionDeletedResponse:
    await sessions.delete_session(session_id)
    return SessionDeletedResponse(
        message="Session deleted successfully",
        session_id=session_id,
    )
