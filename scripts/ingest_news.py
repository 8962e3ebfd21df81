"""
Fetch the latest news and load it into the vector index.

Usage::

    python scripts/ingest_news.py

Reads the same environment / .env settings as the server. Exits non-zero
when the vector index is unreachable or nothing could be stored.
"""

import asyncio
import logging
import sys

from news_rag_server.config import settings
from news_rag_server.core.logging_setup import configure_logging
from news_rag_server.db.vector_store import VectorIndex
from news_rag_server.embeddings.embedder import Embedder
from news_rag_server.ingestion.pipeline import run_ingestion
from news_rag_server.ingestion.sources import NewsFetcher

logger = logging.getLogger("news_rag.ingest")


async def main() -> int:
    configure_logging(settings.log_level)

    embedder = Embedder()
    if not embedder.enabled:
        logger.error("JINA_API_KEY is not set; cannot generate embeddings")
        return 1

    vector_index = VectorIndex()
    if not await vector_index.initialize():
        logger.error("Vector index is unavailable; check DATABASE_URL")
        return 1

    try:
        report = await run_ingestion(NewsFetcher(), embedder, vector_index)
        info = await vector_index.get_collection_info()
    finally:
        await vector_index.close()

    if info is not None:
        logger.info(
            "Collection %s now holds %s points",
            info["name"],
            info["pointsCount"],
        )

    if not report.success:
        logger.error("Ingestion did not complete")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
