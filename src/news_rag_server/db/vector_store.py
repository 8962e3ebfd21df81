"""
Vector Index

PostgreSQL + pgvector storage and cosine similarity search for embedded news
chunks.

A "collection" is one table (see ``build_collection_table``). The index is
created unavailable and only becomes usable after ``initialize()`` succeeds.
While unavailable every operation degrades instead of raising: reads return
empty results, writes return False, and the rest of the pipeline keeps
running without vector capability.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import MetaData, delete, func, inspect, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from .models import build_collection_table
from .schemas import IndexedPoint, SearchResult
from .session import create_engine
from ..config import settings

logger = logging.getLogger("news_rag.vector_store")

_POINT_ID_MASK = (1 << 63) - 1

# Applied when the caller passes no threshold.
DEFAULT_SCORE_THRESHOLD = 0.7

# asyncpg connection failures after startup are not wrapped by SQLAlchemy.
_STORE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


class VectorIndexError(RuntimeError):
    """Raised when the collection cannot be prepared."""


def point_id_for(chunk_id: str) -> int:
    """
    Derive a stable, non-negative 63-bit point id from a chunk id.

    The same chunk id always maps to the same point, so re-ingesting an
    article overwrites its points. Distinct chunk ids colliding is possible
    but treated as an acceptable overwrite.
    """
    digest = hashlib.blake2b(chunk_id.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") & _POINT_ID_MASK


class VectorIndex:
    """
    pgvector-backed collection with batched idempotent upserts.

    The engine is either created by ``initialize()`` from ``database_url`` or
    injected ready-made (tests, or callers sharing one engine).
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        collection: Optional[str] = None,
        dimension: Optional[int] = None,
        batch_size: Optional[int] = None,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self._database_url = database_url or settings.database_url
        self.collection = collection or settings.vector_collection
        self.dimension = dimension or settings.embedding_dimension
        self.batch_size = batch_size or settings.vector_batch_size

        self._metadata = MetaData()
        self._table = build_collection_table(
            self._metadata, self.collection, self.dimension
        )
        self._engine: Optional[AsyncEngine] = engine

    @property
    def available(self) -> bool:
        return self._engine is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """
        Connect, probe and prepare the collection.

        Returns
        -------
        bool
            True when the index is usable. On any failure the engine is
            disposed and the index stays unavailable for the life of the
            process.
        """
        if self._engine is not None:
            return True

        if not self._database_url:
            logger.warning("DATABASE_URL not set, vector index will not be available")
            return False

        engine = create_engine(self._database_url)
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            self._engine = engine
            await self.ensure_collection()
        except _STORE_ERRORS + (VectorIndexError,):
            logger.exception("Failed to initialize vector index")
            self._engine = None
            await engine.dispose()
            return False

        logger.info("Vector index initialized (collection=%s)", self.collection)
        return True

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info("Vector index connection closed")

    async def ensure_collection(self) -> None:
        """
        Create the collection with cosine indexing if it does not exist.

        Idempotent. A no-op while the index is unavailable.

        Raises
        ------
        VectorIndexError
            If the collection cannot be inspected or created.
        """
        if self._engine is None:
            return

        try:
            async with self._engine.begin() as conn:
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                exists = await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).has_table(self.collection)
                )
                if exists:
                    logger.info("Collection %s already exists", self.collection)
                    return

                logger.info("Creating collection: %s", self.collection)
                await conn.run_sync(self._metadata.create_all, tables=[self._table])
        except _STORE_ERRORS as exc:
            raise VectorIndexError(
                f"Failed to ensure collection {self.collection}: {type(exc).__name__}"
            ) from exc

        logger.info("Collection %s created successfully", self.collection)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert(self, points: Sequence[IndexedPoint]) -> bool:
        """
        Insert or overwrite points, one batch per transaction.

        Points sharing an id overwrite each other (last one wins), both
        within this call and against rows already stored.

        Returns
        -------
        bool
            True when every batch was written. False when the index is
            unavailable or any batch failed; batches committed before the
            failure stay written.
        """
        if self._engine is None:
            logger.warning("Vector index not initialized, skipping vector upsert")
            return False

        deduped: Dict[int, IndexedPoint] = {}
        for point in points:
            deduped[point.id] = point
        rows = [
            {"id": p.id, "embedding": list(p.vector), "payload": p.payload}
            for p in deduped.values()
        ]

        total_batches = (len(rows) + self.batch_size - 1) // self.batch_size

        try:
            for batch_no, start in enumerate(range(0, len(rows), self.batch_size), 1):
                batch = rows[start : start + self.batch_size]
                stmt = pg_insert(self._table).values(batch)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[self._table.c.id],
                    set_={
                        "embedding": stmt.excluded.embedding,
                        "payload": stmt.excluded.payload,
                        "updated_at": func.now(),
                    },
                )

                async with self._engine.begin() as conn:
                    await conn.execute(stmt)

                logger.info(
                    "Upserted batch %d/%d (%d vectors)",
                    batch_no,
                    total_batches,
                    len(batch),
                )
        except _STORE_ERRORS:
            logger.exception("Failed to upsert vectors")
            return False

        logger.info(
            "Successfully upserted %d vectors to %s", len(rows), self.collection
        )
        return True

    async def delete_collection(self) -> bool:
        if self._engine is None:
            logger.warning("Vector index not initialized")
            return False

        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(self._metadata.drop_all, tables=[self._table])
        except _STORE_ERRORS:
            logger.exception("Failed to delete collection")
            return False

        logger.info("Collection %s deleted successfully", self.collection)
        return True

    async def clear_collection(self) -> bool:
        """Remove every point but keep the collection."""
        if self._engine is None:
            logger.warning("Vector index not initialized")
            return False

        try:
            async with self._engine.begin() as conn:
                await conn.execute(delete(self._table))
        except _STORE_ERRORS:
            logger.exception("Failed to clear collection")
            return False

        logger.info("Collection %s cleared successfully", self.collection)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def search(
        self,
        query_vector: Sequence[float],
        limit: Optional[int] = None,
        score_threshold: Optional[float] = None,
    ) -> List[SearchResult]:
        """
        Return up to ``limit`` points with cosine similarity of at least
        ``score_threshold``, best match first.

        Never raises for store failures: an unavailable index or a failed
        query yields an empty list.
        """
        limit = settings.vector_search_limit if limit is None else limit
        threshold = (
            DEFAULT_SCORE_THRESHOLD if score_threshold is None else score_threshold
        )

        if self._engine is None:
            logger.warning("Vector index not initialized, returning empty results")
            return []

        distance = self._table.c.embedding.cosine_distance(list(query_vector))
        score = (1 - distance).label("score")

        stmt = (
            select(self._table.c.id, self._table.c.payload, score)
            .where(1 - distance >= threshold)
            .order_by(distance)
            .limit(limit)
        )

        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                rows = result.all()
        except _STORE_ERRORS:
            logger.exception("Failed to search similar vectors")
            return []

        results = [
            SearchResult.from_payload(row.id, float(row.score), row.payload or {})
            for row in rows
        ]

        logger.info(
            "Found %d similar vectors with scores above %s", len(results), threshold
        )
        return results

    async def get_collection_info(self) -> Optional[Dict[str, Any]]:
        if self._engine is None:
            return None

        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(
                    select(func.count()).select_from(self._table)
                )
                points_count = result.scalar() or 0
        except _STORE_ERRORS:
            logger.exception("Failed to get collection info")
            return None

        return {
            "name": self.collection,
            "pointsCount": points_count,
            "vectorSize": self.dimension,
            "distance": "cosine",
        }

    async def health_check(self) -> Dict[str, Any]:
        if self._engine is None:
            return {
                "status": "degraded",
                "message": "Vector index not initialized - missing or unreachable DATABASE_URL",
            }

        info = await self.get_collection_info()
        if info is None:
            return {
                "status": "unhealthy",
                "message": f"Collection {self.collection} is not reachable",
            }

        return {
            "status": "healthy",
            "message": "Vector index is working correctly",
            "collectionInfo": info,
        }
