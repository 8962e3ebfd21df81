"""
Embedding Data Models

This module defines the record produced for every text submitted to the
embedding provider.

Each instance corresponds to ONE input text and keeps its position in the
input list, so callers can zip records back onto the texts they embedded.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, ConfigDict


class EmbeddingRecord(BaseModel):
    """
    A single embedding result.

    A failed record carries a zero-filled vector of the expected
    dimensionality and ``failed=True``; it still occupies its input position.
    """

    embedding: List[float] = Field(
        ...,
        description="Embedding vector returned by the provider (or zeros).",
    )

    index: int = Field(
        ...,
        ge=0,
        description="Position of the source text in the submitted input list.",
    )

    failed: bool = Field(
        default=False,
        description="True when the vector is a zero-filled fallback.",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )
