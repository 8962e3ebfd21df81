"""
Context Assembly

Turns vector search results into the text handed to the language model and the
citations returned to the client. Pure functions, no I/O.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from ..db.schemas import SearchResult
from ..sessions.models import Citation

CONTEXT_CHAR_LIMIT = 800
SNIPPET_CHAR_LIMIT = 200

SYSTEM_PROMPT = """You are a helpful AI assistant specialized in news and current events. You provide informative, accurate, and engaging responses based on the latest news information.

Key guidelines:
- Use the provided news context to give accurate, up-to-date information
- Cite specific sources when referencing the provided articles
- If the context doesn't contain relevant information, acknowledge this
- Provide factual, well-structured responses with markdown formatting
- Be conversational but professional
- Focus on being helpful and informative"""


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def format_published_date(value: Optional[str]) -> str:
    """Render an ISO timestamp as a plain date; unknown values pass through."""
    if not value:
        return "Unknown date"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%Y-%m-%d")
    except ValueError:
        return value


def build_context_block(
    results: Sequence[SearchResult],
    max_chars: int = CONTEXT_CHAR_LIMIT,
) -> str:
    """
    Format search results as numbered, source-attributed excerpts.

    Returns an empty string when there are no results.
    """
    if not results:
        return ""

    blocks: List[str] = []
    for number, result in enumerate(results, 1):
        meta = result.metadata
        blocks.append(
            f"[Source {number}: {meta.get('source') or 'Unknown source'} - "
            f"{meta.get('title') or 'Untitled'}]\n"
            f"Published: {format_published_date(meta.get('publishedAt'))}\n"
            f"Content: {_truncate(result.content, max_chars)}\n"
            f"URL: {meta.get('url') or ''}"
        )

    return "RELEVANT NEWS CONTEXT:\n\n" + "\n\n".join(blocks)


def build_citations(
    results: Sequence[SearchResult],
    snippet_chars: int = SNIPPET_CHAR_LIMIT,
) -> List[Citation]:
    return [
        Citation(
            title=result.metadata.get("title"),
            url=result.metadata.get("url"),
            source=result.metadata.get("source"),
            published_at=result.metadata.get("publishedAt"),
            snippet=_truncate(result.content, snippet_chars),
            score=result.score,
        )
        for result in results
    ]


def build_prompt(message: str, results: Sequence[SearchResult] = ()) -> str:
    """
    Build the full prompt: instructions, optional news context, then the
    user question. Context is optional; without results the model still
    gets the question.
    """
    parts = [SYSTEM_PROMPT]

    context = build_context_block(results)
    if context:
        parts.append(context)

    parts.append(
        f"User question: {message}\n\n"
        "Please provide a comprehensive response using the news context above when relevant:"
    )
    return "\n\n".join(parts)
