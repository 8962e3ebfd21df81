"""
Embedding Client

This module implements the embedding client used by ingestion and by query
time retrieval. It talks to an OpenAI-compatible embeddings endpoint (Jina by
default) and is responsible for:

- Splitting inputs into rate-limit friendly batches
- Bounded retry with exponential backoff per batch
- Zero-vector fallback records when a batch cannot be embedded
- Strict response validation and positional alignment with the input

Output length always equals input length whenever the client is enabled: a
batch that fails for any reason is replaced with fallback records flagged
``failed=True`` rather than being dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
import numpy as np

from .models import EmbeddingRecord
from ..config import settings

logger = logging.getLogger("news_rag.embedder")

# Provider responses with these statuses will not succeed on a retry.
TERMINAL_STATUS_CODES = frozenset({400, 401, 403, 422})


class EmbeddingError(RuntimeError):
    """Raised when a single embedding request fails."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class Embedder:
    """
    Asynchronous batch embedding generator.

    The client soft-disables itself when no API key is configured:
    ``generate_embeddings`` then returns an empty list without making any
    request.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        *,
        dimension: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        batch_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize an Embedder. Every argument defaults to its setting.

        Parameters
        ----------
        api_key : Optional[str]
            Provider API key. Defaults to settings.jina_api_key.

        dimension : Optional[int]
            Expected vector length, used for validation and fallback vectors.

        batch_size : Optional[int]
            Number of texts submitted per request.

        max_retries : Optional[int]
            Retries per batch after the first attempt.

        retry_base_delay : Optional[float]
            Seconds; the n-th retry waits ``retry_base_delay * 2**n``.

        batch_delay : Optional[float]
            Seconds to wait between consecutive batches.

        http_client : Optional[httpx.AsyncClient]
            Shared client to use instead of opening one per call.
        """
        if api_key is None and settings.jina_api_key is not None:
            api_key = settings.jina_api_key.get_secret_value()

        self.api_key = api_key or None
        self.model = model or settings.embedding_model
        self.base_url = base_url or settings.embedding_base_url
        self.dimension = dimension or settings.embedding_dimension
        self.batch_size = batch_size or settings.embedding_batch_size
        self.max_retries = (
            settings.embedding_max_retries if max_retries is None else max_retries
        )
        self.retry_base_delay = (
            settings.embedding_retry_base_delay
            if retry_base_delay is None
            else retry_base_delay
        )
        self.batch_delay = (
            settings.embedding_batch_delay if batch_delay is None else batch_delay
        )
        self.timeout = timeout or settings.embedding_timeout
        self._http_client = http_client

    @property
    def enabled(self) -> bool:
        return self.api_key is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_embeddings(
        self,
        texts: Sequence[str] | str,
    ) -> List[EmbeddingRecord]:
        """
        Embed ``texts`` in order, one batch at a time.

        Parameters
        ----------
        texts : Sequence[str] | str
            Input strings. A bare string is treated as a one-item list.

        Returns
        -------
        List[EmbeddingRecord]
            One record per input text with ``record.index`` equal to the
            text's position. Empty when the client is disabled.
        """
        if not self.enabled:
            logger.warning("Embedding API key not configured, skipping embeddings")
            return []

        if isinstance(texts, str):
            texts = [texts]

        if not texts:
            return []

        if self._http_client is not None:
            records = await self._embed_all(self._http_client, texts)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                records = await self._embed_all(client, texts)

        failed = sum(1 for r in records if r.failed)
        logger.info(
            "Generated %d embeddings out of %d texts (%d fallback)",
            len(records) - failed,
            len(texts),
            failed,
        )
        return records

    async def generate_single_embedding(self, text: str) -> Optional[EmbeddingRecord]:
        """
        Embed one text for query-time search.

        Returns None when the client is disabled or the request failed, since
        a zero vector is useless as a search query.
        """
        records = await self.generate_embeddings([text])
        if not records or records[0].failed:
            return None
        return records[0]

    async def health_check(self) -> Dict[str, Any]:
        if not self.enabled:
            return {
                "status": "degraded",
                "message": "Embedding API key not configured",
            }

        record = await self.generate_single_embedding("Hello world")
        if record is not None and len(record.embedding) == self.dimension:
            return {
                "status": "healthy",
                "message": "Embedding service is working correctly",
                "embeddingDimension": len(record.embedding),
            }
        return {
            "status": "unhealthy",
            "message": "Embedding service returned an invalid response",
        }

    @staticmethod
    def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
        """
        Cosine similarity of two vectors; 0.0 if either has zero norm.

        Raises
        ------
        ValueError
            If the vectors differ in length.
        """
        a = np.asarray(vec_a, dtype=np.float64)
        b = np.asarray(vec_b, dtype=np.float64)
        if a.shape != b.shape:
            raise ValueError("Vectors must have the same length")

        norm_a = np.linalg.norm(a)
        norm_b = np.linalg.norm(b)
        if norm_a == 0 or norm_b == 0:
            return 0.0
        return float(np.dot(a, b) / (norm_a * norm_b))

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    async def _embed_all(
        self,
        client: httpx.AsyncClient,
        texts: Sequence[str],
    ) -> List[EmbeddingRecord]:
        records: List[EmbeddingRecord] = []
        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size

        for batch_no, start in enumerate(range(0, len(texts), self.batch_size), 1):
            batch = list(texts[start : start + self.batch_size])
            logger.info("Processing embedding batch %d/%d", batch_no, total_batches)

            records.extend(await self._embed_batch(client, batch, start))

            if start + self.batch_size < len(texts) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        return records

    async def _embed_batch(
        self,
        client: httpx.AsyncClient,
        batch: List[str],
        offset: int,
    ) -> List[EmbeddingRecord]:
        """
        Embed one batch, retrying with exponential backoff.

        Never raises for provider failures: after the last attempt the batch
        is replaced with fallback records.
        """
        attempt = 0
        while True:
            try:
                return await self._request_batch(client, batch, offset)
            except EmbeddingError as exc:
                if not exc.retryable:
                    logger.error(
                        "Embedding batch at index %d failed permanently: %s",
                        offset,
                        exc,
                    )
                    break
                if attempt >= self.max_retries:
                    logger.error(
                        "Embedding batch at index %d failed after %d retries: %s",
                        offset,
                        self.max_retries,
                        exc,
                    )
                    break

                delay = self.retry_base_delay * (2 ** attempt)
                attempt += 1
                logger.warning(
                    "Embedding generation failed, retrying (%d/%d) in %.2fs: %s",
                    attempt,
                    self.max_retries,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)

        return self._fallback_records(len(batch), offset)

    def _fallback_records(self, count: int, offset: int) -> List[EmbeddingRecord]:
        return [
            EmbeddingRecord(
                embedding=[0.0] * self.dimension,
                index=offset + i,
                failed=True,
            )
            for i in range(count)
        ]

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request_batch(
        self,
        client: httpx.AsyncClient,
        batch: List[str],
        offset: int,
    ) -> List[EmbeddingRecord]:
        payload = {
            "model": self.model,
            "input": batch,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await client.post(
                self.base_url,
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise EmbeddingError(
                f"Embedding request returned HTTP {status}",
                retryable=status not in TERMINAL_STATUS_CODES,
            ) from exc
        except httpx.HTTPError as exc:
            raise EmbeddingError(
                f"Embedding request failed: {type(exc).__name__}"
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise EmbeddingError("Embedding response is not valid JSON.") from exc

        vectors = self._extract_embeddings(data, expected=len(batch))

        if vectors and len(vectors[0]) != self.dimension:
            logger.warning(
                "Unexpected embedding dimension: %d, expected: %d",
                len(vectors[0]),
                self.dimension,
            )

        return [
            EmbeddingRecord(embedding=vector, index=offset + i)
            for i, vector in enumerate(vectors)
        ]

    @staticmethod
    def _extract_embeddings(data: Any, expected: int) -> List[List[float]]:
        """
        Parse and validate the provider response.

        The provider returns::

            { "data": [ {"embedding": [...], "index": 0}, ... ] }

        Items are reordered by their ``index`` field when present.

        Raises
        ------
        EmbeddingError
            If the response has an unexpected structure or item count.
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingError("Embedding response missing 'data' field.")

        items = data["data"]
        if not isinstance(items, list):
            raise EmbeddingError("'data' field must be a list.")

        if len(items) != expected:
            raise EmbeddingError(
                f"Embedding response has {len(items)} items, expected {expected}."
            )

        ordered: List[Optional[List[float]]] = [None] * expected

        for position, item in enumerate(items):
            if not isinstance(item, dict) or "embedding" not in item:
                raise EmbeddingError(
                    f"Malformed embedding record at position {position}: {item!r}"
                )

            emb = item["embedding"]
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingError(
                    f"Invalid embedding vector at position {position}: must be float list."
                )

            slot = item.get("index", position)
            if not isinstance(slot, int) or not 0 <= slot < expected or ordered[slot] is not None:
                raise EmbeddingError(
                    f"Invalid or duplicate embedding index at position {position}: {slot!r}"
                )

            ordered[slot] = [float(x) for x in emb]

        return ordered  # type: ignore[return-value]
