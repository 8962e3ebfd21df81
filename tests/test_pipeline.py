from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from news_rag_server.db.vector_store import VectorIndex, point_id_for
from news_rag_server.embeddings.embedder import Embedder
from news_rag_server.embeddings.models import EmbeddingRecord
from news_rag_server.ingestion.models import Article, Chunk
from news_rag_server.ingestion.pipeline import build_points, ingest_articles, run_ingestion
from news_rag_server.ingestion.sources import NewsFetcher


def article(title, words=30):
    return Article(
        title=title,
        content=" ".join(f"w{i}" for i in range(words)),
        url=f"https://news.example/{title.lower().replace(' ', '-')}",
        source="Reuters",
        published_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


def records_for(texts, failed_positions=()):
    return [
        EmbeddingRecord(
            embedding=[0.0] * 3 if i in failed_positions else [0.1, 0.2, 0.3],
            index=i,
            failed=i in failed_positions,
        )
        for i, _ in enumerate(texts)
    ]


@pytest.fixture
def mock_embedder():
    mock = AsyncMock(spec=Embedder)
    mock.generate_embeddings.side_effect = lambda texts: records_for(texts)
    return mock


@pytest.fixture
def mock_index():
    mock = AsyncMock(spec=VectorIndex)
    mock.upsert.return_value = True
    return mock


def test_build_points_skips_failed_records():
    chunks = [
        Chunk(id="https://news.example/a-0", content="first", metadata={"title": "A"}),
        Chunk(id="https://news.example/a-1", content="second", metadata={"title": "A"}),
    ]

    points, skipped = build_points(chunks, records_for(chunks, failed_positions={1}))

    assert skipped == 1
    [point] = points
    assert point.id == point_id_for("https://news.example/a-0")
    assert point.payload == {"content": "first", "title": "A"}


@pytest.mark.asyncio
async def test_ingest_articles_happy_path(mock_embedder, mock_index):
    articles = [article("Alpha"), article("Beta"), article("ALPHA")]

    report = await ingest_articles(articles, mock_embedder, mock_index, chunk_size=20, chunk_overlap=5)

    assert report.articles == 2
    assert report.chunks == 4
    assert report.embeddings == 4
    assert report.failed_embeddings == 0
    assert report.vectors_stored == 4
    assert report.success

    mock_index.ensure_collection.assert_awaited_once()
    [points] = mock_index.upsert.await_args.args
    assert len(points) == 4


@pytest.mark.asyncio
async def test_ingest_articles_counts_fallbacks(mock_embedder, mock_index):
    mock_embedder.generate_embeddings.side_effect = lambda texts: records_for(texts, {0})

    report = await ingest_articles([article("Story")], mock_embedder, mock_index, chunk_size=20, chunk_overlap=5)

    assert report.chunks == 2
    assert report.failed_embeddings == 1
    assert report.vectors_stored == 1
    assert report.success


@pytest.mark.asyncio
async def test_ingest_articles_stops_without_embeddings(mock_embedder, mock_index):
    mock_embedder.generate_embeddings.side_effect = None
    mock_embedder.generate_embeddings.return_value = []

    report = await ingest_articles([article("Story")], mock_embedder, mock_index)

    assert not report.success
    mock_index.upsert.assert_not_awaited()


@pytest.mark.asyncio
async def test_ingest_articles_reports_store_failure(mock_embedder, mock_index):
    mock_index.upsert.return_value = False

    report = await ingest_articles([article("Story")], mock_embedder, mock_index, chunk_size=500, chunk_overlap=50)

    assert report.embeddings == 1
    assert report.vectors_stored == 0
    assert not report.success


@pytest.mark.asyncio
async def test_run_ingestion_with_no_articles(mock_embedder, mock_index):
    fetcher = AsyncMock(spec=NewsFetcher)
    fetcher.fetch_latest_news.return_value = []

    report = await run_ingestion(fetcher, mock_embedder, mock_index)

    assert report.as_dict() == {
        "articles": 0,
        "chunks": 0,
        "embeddings": 0,
        "failed_embeddings": 0,
        "vectors_stored": 0,
        "success": False,
    }
    mock_embedder.generate_embeddings.assert_not_awaited()
