"""
API Models

Pydantic request/response models for the chat, session and health endpoints.
Field aliases keep the camelCase JSON contract of the web client.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field

from ..sessions.models import Message

MAX_MESSAGE_LENGTH = 4000


# ---------------------------------------------------------------------
# Chat Models
# ---------------------------------------------------------------------

class ChatRequest(BaseModel):
    """
    Chat message submitted by the client.
    """
    session_id: str = Field(..., min_length=1, alias="sessionId")
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)

    model_config = ConfigDict(extra="forbid", populate_by_name=True, str_strip_whitespace=True)


class ChatResponse(BaseModel):
    """
    Assistant reply stored in the session.
    """
    message: Message
    session_id: str = Field(..., alias="sessionId")

    model_config = ConfigDict(populate_by_name=True)


class HistoryResponse(BaseModel):
    messages: List[Message]
    session_id: str = Field(..., alias="sessionId")
    total: int = Field(..., ge=0)

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------
# Session Models
# ---------------------------------------------------------------------

class SessionCreatedResponse(BaseModel):
    session_id: str = Field(..., alias="sessionId")
    created: datetime

    model_config = ConfigDict(populate_by_name=True)


class SessionDeletedResponse(BaseModel):
    message: str
    session_id: str = Field(..., alias="sessionId")

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------
# Health Models
# ---------------------------------------------------------------------

class DetailedHealthResponse(BaseModel):
    status: str
    timestamp: datetime
    services: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
