import pytest
from pydantic import ValidationError

from news_rag_server.config import Settings


def test_defaults(monkeypatch):
    for name in ("CHUNK_SIZE", "CHUNK_OVERLAP", "EMBEDDING_DIMENSION", "ENVIRONMENT", "JINA_API_KEY"):
        monkeypatch.delenv(name, raising=False)

    s = Settings(_env_file=None)

    assert s.chunk_size == 500
    assert s.chunk_overlap == 50
    assert s.embedding_dimension == 768
    assert s.embedding_batch_size == 20
    assert s.chat_history_max_messages == 100
    assert s.chat_history_ttl == 86400
    assert s.jina_api_key is None
    assert not s.is_production


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("JINA_API_KEY", "jina-secret")
    monkeypatch.setenv("ENVIRONMENT", "Production")
    monkeypatch.setenv("VECTOR_SCORE_THRESHOLD", "0.5")

    s = Settings(_env_file=None)

    assert s.jina_api_key.get_secret_value() == "jina-secret"
    assert "jina-secret" not in repr(s)
    assert s.is_production
    assert s.vector_score_threshold == 0.5


def test_rejects_overlap_not_smaller_than_chunk_size():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, chunk_size=100, chunk_overlap=100)


def test_rejects_invalid_collection_name():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, vector_collection="news-articles; drop")


def test_split_csv():
    assert Settings.split_csv(" us, uk ,,tech ") == ["us", "uk", "tech"]
    assert Settings.split_csv("") == []
