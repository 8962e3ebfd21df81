"""
Chat Service

Query-time RAG flow: embed the user message, retrieve similar news chunks,
build the prompt, and call the language model.

Retrieval is best-effort. Any failure along the way leaves the model without
context but still answering, and a missing or failing model is replaced by a
canned demo answer, so the caller always receives a response.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from pydantic import BaseModel, Field

from .context import build_citations, build_prompt
from ..config import settings
from ..core.logging_setup import short_id
from ..db.schemas import SearchResult
from ..db.vector_store import VectorIndex
from ..embeddings.embedder import Embedder
from ..llm.client import LLMClient, LLMError
from ..sessions.models import Citation

logger = logging.getLogger("news_rag.chat")

MOCK_RESPONSE = (
    'I received your message: "{message}"\n\n'
    "**This is a demo response** because the AI service is not configured.\n\n"
    "### Available\n"
    "- Session management and message history\n"
    "- Streaming responses\n"
    "- News search over ingested articles (when the vector index is configured)\n\n"
    "*Set LLM_API_KEY to enable generated answers.*"
)


def _empty_usage() -> Dict[str, int]:
    return {"promptTokens": 0, "completionTokens": 0, "totalTokens": 0}


class ChatAnswer(BaseModel):
    content: str
    sources: List[Citation] = Field(default_factory=list)
    usage: Dict[str, int] = Field(default_factory=_empty_usage)


@dataclass
class StreamingAnswer:
    """Citations known up front plus the answer text as it is generated."""

    sources: List[Citation]
    chunks: AsyncIterator[str]
    prompt_length: int = 0
    context_count: int = 0


class ChatService:
    def __init__(
        self,
        embedder: Embedder,
        vector_index: VectorIndex,
        llm: LLMClient,
        search_limit: Optional[int] = None,
        score_threshold: Optional[float] = None,
        mock_delay: float = 0.05,
    ) -> None:
        self.embedder = embedder
        self.vector_index = vector_index
        self.llm = llm
        self.search_limit = search_limit or settings.vector_search_limit
        self.score_threshold = (
            settings.vector_score_threshold
            if score_threshold is None
            else score_threshold
        )
        self.mock_delay = mock_delay

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def get_relevant_context(self, message: str) -> List[SearchResult]:
        """Embed ``message`` and return similar chunks; [] on any failure."""
        try:
            record = await self.embedder.generate_single_embedding(message)
            if record is None:
                logger.warning(
                    "Failed to generate embedding for message, proceeding without context"
                )
                return []

            results = await self.vector_index.search(
                record.embedding,
                limit=self.search_limit,
                score_threshold=self.score_threshold,
            )
        except Exception:
            logger.exception("Failed to get relevant context")
            return []

        logger.info("Found %d relevant articles for context", len(results))
        return results

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_response(self, session_id: str, message: str) -> ChatAnswer:
        if not self.llm.enabled:
            return self.get_mock_response(message)

        context = await self.get_relevant_context(message)
        prompt = build_prompt(message, context)

        logger.info(
            "Generating AI response with RAG (session=%s, prompt_length=%d, context_sources=%d)",
            short_id(session_id),
            len(prompt),
            len(context),
        )

        try:
            result = await self.llm.complete(prompt)
        except LLMError:
            logger.exception("Failed to generate AI response")
            return self.get_mock_response(message)

        return ChatAnswer(
            content=result["content"],
            sources=build_citations(context),
            usage=result["usage"],
        )

    async def generate_streaming_response(
        self,
        session_id: str,
        message: str,
    ) -> StreamingAnswer:
        if not self.llm.enabled:
            return StreamingAnswer(sources=[], chunks=self._mock_stream(message))

        context = await self.get_relevant_context(message)
        prompt = build_prompt(message, context)

        logger.info(
            "Generating streaming AI response with RAG (session=%s, prompt_length=%d, context_sources=%d)",
            short_id(session_id),
            len(prompt),
            len(context),
        )

        return StreamingAnswer(
            sources=build_citations(context),
            chunks=self._stream_with_fallback(prompt, message),
            prompt_length=len(prompt),
            context_count=len(context),
        )

    async def _stream_with_fallback(self, prompt: str, message: str) -> AsyncIterator[str]:
        produced = False
        try:
            async for text in self.llm.stream(prompt):
                produced = True
                yield text
        except LLMError:
            logger.exception("Failed to generate streaming AI response")
            if produced:
                return
            async for text in self._mock_stream(message):
                yield text

    # ------------------------------------------------------------------
    # Demo fallbacks
    # ------------------------------------------------------------------

    def get_mock_response(self, message: str) -> ChatAnswer:
        return ChatAnswer(content=MOCK_RESPONSE.format(message=message))

    async def _mock_stream(self, message: str) -> AsyncIterator[str]:
        words = MOCK_RESPONSE.format(message=message).split(" ")
        for i, word in enumerate(words):
            yield word if i == len(words) - 1 else word + " "
            if self.mock_delay:
                await asyncio.sleep(self.mock_delay)

    async def health_check(self) -> Dict[str, Any]:
        if not self.llm.enabled:
            return {
                "status": "degraded",
                "message": "AI model not configured - missing LLM_API_KEY",
            }

        try:
            result = await self.llm.complete("Hello")
        except LLMError as exc:
            return {
                "status": "unhealthy",
                "message": "AI service error",
                "error": str(exc),
            }

        return {
            "status": "healthy",
            "message": "AI service is working correctly",
            "testResponse": result["content"][:50],
        }
