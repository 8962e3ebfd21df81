"""
Ingestion Data Models

Canonical shapes for fetched news articles and the chunks derived from them.

An Article is immutable once fetched. Its identity is never stored: uniqueness
is derived from a normalized title prefix during deduplication.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Article(BaseModel):
    """
    A single news article as produced by a news source.

    Serialized with the wire field names
    ``{title, content, url, source, publishedAt, author, description, image}``.
    """

    title: str = Field(..., min_length=1)
    content: str = Field(default="")
    url: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    published_at: datetime = Field(..., alias="publishedAt")
    author: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )


class Chunk(BaseModel):
    """
    A word-bounded slice of an article, ready to be embedded.

    ``id`` is ``"<article url>-<ordinal>"`` so re-ingesting the same article
    yields the same identifiers.
    """

    id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)
