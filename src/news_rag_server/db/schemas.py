"""
Vector Index Records

Pydantic shapes for points written to, and results read from, the vector
index.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Article metadata keys surfaced on every search result.
RESULT_METADATA_FIELDS = (
    "title",
    "url",
    "source",
    "publishedAt",
    "author",
    "description",
    "image",
)


class IndexedPoint(BaseModel):
    """One vector with its payload, keyed by a stable non-negative id."""

    id: int = Field(..., ge=0)
    vector: List[float] = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)


class SearchResult(BaseModel):
    """A stored chunk matched by a similarity search."""

    id: int
    score: float
    content: str
    metadata: Dict[str, Optional[Any]] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_payload(cls, point_id: int, score: float, payload: Dict[str, Any]) -> "SearchResult":
        return cls(
            id=point_id,
            score=score,
            content=payload.get("content") or "",
            metadata={key: payload.get(key) for key in RESULT_METADATA_FIELDS},
        )
