"""
Article Processing

Pure transformations applied to fetched articles before embedding:

- ``remove_duplicates``: keep the first article per normalized title prefix
- ``chunk_content``: split text into overlapping word windows
- ``process_articles_for_embedding``: turn articles into embeddable chunks
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, List, Set

from .models import Article, Chunk

logger = logging.getLogger("news_rag.ingestion")

TITLE_KEY_LENGTH = 50
DEFAULT_CHUNK_SIZE = 500
DEFAULT_CHUNK_OVERLAP = 50


def _title_key(article: Article) -> str:
    return article.title.lower()[:TITLE_KEY_LENGTH]


def remove_duplicates(articles: Iterable[Article]) -> List[Article]:
    """
    Return the articles whose normalized title prefix has not been seen yet,
    in first-seen order.
    """
    seen: Set[str] = set()
    unique: List[Article] = []

    for article in articles:
        key = _title_key(article)
        if key in seen:
            continue
        seen.add(key)
        unique.append(article)

    return unique


def chunk_content(
    content: str,
    max_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> Iterator[str]:
    """
    Lazily split ``content`` into windows of ``max_size`` words.

    Consecutive windows share ``overlap`` words. Each window is stripped and
    empty windows are skipped. When nothing survives, the whole input is
    yielded once, unchanged.

    Parameters
    ----------
    content : str
        Text to split. Words are separated by single spaces.

    max_size : int
        Maximum number of words per chunk.

    overlap : int
        Number of words repeated from the previous chunk.

    Raises
    ------
    ValueError
        If ``max_size`` is not positive, ``overlap`` is negative, or
        ``overlap >= max_size`` (the window would never advance).
    """
    if max_size < 1:
        raise ValueError(f"max_size must be positive, got {max_size}")
    if overlap < 0:
        raise ValueError(f"overlap must not be negative, got {overlap}")
    if overlap >= max_size:
        raise ValueError(
            f"overlap ({overlap}) must be less than max_size ({max_size})"
        )

    return _iter_chunks(content, max_size, overlap)


def _iter_chunks(content: str, max_size: int, overlap: int) -> Iterator[str]:
    words = content.split(" ")
    stride = max_size - overlap
    produced = False

    for start in range(0, len(words), stride):
        chunk = " ".join(words[start:start + max_size]).strip()
        if chunk:
            produced = True
            yield chunk

    if not produced:
        yield content


def process_articles_for_embedding(
    articles: Iterable[Article],
    max_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> List[Chunk]:
    """
    Chunk every article (title and body together) into Chunk records.

    Each chunk carries its parent's metadata plus ``chunkIndex`` and
    ``totalChunks``.
    """
    processed: List[Chunk] = []
    article_count = 0

    for article in articles:
        article_count += 1
        full_content = f"{article.title}\n\n{article.content}"
        pieces = list(chunk_content(full_content, max_size, overlap))

        for index, piece in enumerate(pieces):
            processed.append(
                Chunk(
                    id=f"{article.url}-{index}",
                    content=piece,
                    metadata={
                        "title": article.title,
                        "url": article.url,
                        "source": article.source,
                        "publishedAt": article.published_at.isoformat(),
                        "author": article.author,
                        "description": article.description,
                        "image": article.image,
                        "chunkIndex": index,
                        "totalChunks": len(pieces),
                    },
                )
            )

    logger.info(
        "Processed %d articles into %d chunks", article_count, len(processed)
    )
    return processed
