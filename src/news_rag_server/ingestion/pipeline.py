"""
Ingestion Pipeline

fetch -> deduplicate -> chunk -> embed -> upsert.

Batches run strictly one after another. Chunks whose embedding fell back to a
zero vector are counted but not stored, since they cannot be matched by
cosine similarity; a run with failed batches still completes and reports
partial counts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import Article, Chunk
from .processing import process_articles_for_embedding, remove_duplicates
from .sources import NewsFetcher
from ..config import settings
from ..db.schemas import IndexedPoint
from ..db.vector_store import VectorIndex, point_id_for
from ..embeddings.embedder import Embedder
from ..embeddings.models import EmbeddingRecord

logger = logging.getLogger("news_rag.pipeline")


@dataclass
class IngestionReport:
    articles: int = 0
    chunks: int = 0
    embeddings: int = 0
    failed_embeddings: int = 0
    vectors_stored: int = 0
    success: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


def build_points(
    chunks: Sequence[Chunk],
    records: Sequence[EmbeddingRecord],
) -> Tuple[List[IndexedPoint], int]:
    """
    Pair chunks with their embedding records by input position.

    Returns
    -------
    Tuple[List[IndexedPoint], int]
        Points for every successfully embedded chunk, and the number of
        chunks skipped because their record failed or is missing.
    """
    by_index = {record.index: record for record in records}
    points: List[IndexedPoint] = []
    skipped = 0

    for position, chunk in enumerate(chunks):
        record = by_index.get(position)
        if record is None or record.failed:
            skipped += 1
            continue
        points.append(
            IndexedPoint(
                id=point_id_for(chunk.id),
                vector=record.embedding,
                payload={"content": chunk.content, **chunk.metadata},
            )
        )

    return points, skipped


async def ingest_articles(
    articles: Iterable[Article],
    embedder: Embedder,
    vector_index: VectorIndex,
    chunk_size: Optional[int] = None,
    chunk_overlap: Optional[int] = None,
) -> IngestionReport:
    """Chunk, embed and store already-fetched articles."""
    report = IngestionReport()

    unique = remove_duplicates(articles)
    report.articles = len(unique)
    if not unique:
        logger.warning("No articles to ingest")
        return report

    chunks = process_articles_for_embedding(
        unique,
        chunk_size or settings.chunk_size,
        settings.chunk_overlap if chunk_overlap is None else chunk_overlap,
    )
    report.chunks = len(chunks)

    records = await embedder.generate_embeddings([c.content for c in chunks])
    report.failed_embeddings = sum(1 for r in records if r.failed)
    report.embeddings = len(records) - report.failed_embeddings

    if report.embeddings == 0:
        logger.warning("No embeddings were generated; check the embedding API key")
        return report

    points, skipped = build_points(chunks, records)
    logger.info("Prepared %d vectors for storage (%d skipped)", len(points), skipped)

    await vector_index.ensure_collection()
    if not await vector_index.upsert(points):
        logger.error("Failed to store vectors; check the vector index configuration")
        return report

    report.vectors_stored = len(points)
    report.success = True
    return report


async def run_ingestion(
    fetcher: NewsFetcher,
    embedder: Embedder,
    vector_index: VectorIndex,
) -> IngestionReport:
    """Fetch the latest news and ingest it."""
    logger.info("Fetching latest news articles...")
    articles = await fetcher.fetch_latest_news()

    if not articles:
        logger.warning("No articles were fetched; check API keys or network connection")
        return IngestionReport()

    report = await ingest_articles(articles, embedder, vector_index)

    logger.info(
        "Ingestion summary: articles=%d chunks=%d embeddings=%d failed=%d stored=%d",
        report.articles,
        report.chunks,
        report.embeddings,
        report.failed_embeddings,
        report.vectors_stored,
    )
    return report
