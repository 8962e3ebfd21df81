"""
Session Data Models

Conversation records persisted by the session store. They serialize to the
camelCase JSON shapes used on the wire and in the cache:

- Session  = {id, created, lastActivity, messageCount}
- Message  = {id, role, content, timestamp, sources?}
- Citation = {title, url, source, publishedAt, snippet, score}
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Citation(BaseModel):
    """A source article surfaced alongside an assistant answer."""

    title: Optional[str] = None
    url: Optional[str] = None
    source: Optional[str] = None
    published_at: Optional[str] = Field(default=None, alias="publishedAt")
    snippet: str = ""
    score: float = 0.0

    model_config = ConfigDict(populate_by_name=True)


class Message(BaseModel):
    """A single chat message. Append-only within its session."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    sources: Optional[List[Citation]] = None

    model_config = ConfigDict(populate_by_name=True)


class Session(BaseModel):
    """Per-conversation bookkeeping record."""

    id: str = Field(..., min_length=1)
    created: datetime = Field(default_factory=utc_now)
    last_activity: datetime = Field(default_factory=utc_now, alias="lastActivity")
    message_count: int = Field(default=0, ge=0, alias="messageCount")

    model_config = ConfigDict(populate_by_name=True)
