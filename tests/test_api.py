import contextlib
import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from news_rag_server.api.dependencies import (
    get_chat_service,
    get_embedder,
    get_session_store,
    get_vector_index,
)
from news_rag_server.db.vector_store import VectorIndex
from news_rag_server.embeddings.embedder import Embedder
from news_rag_server.main import create_app
from news_rag_server.rag.chat_service import ChatAnswer, ChatService, StreamingAnswer
from news_rag_server.sessions.models import Citation
from news_rag_server.sessions.store import InMemorySessionStore

CITATION = Citation(
    title="Rates on hold",
    url="https://news.example/rates",
    source="Reuters",
    published_at="2024-05-01T12:00:00+00:00",
    snippet="Central bank...",
    score=0.9,
)


async def word_stream(*parts):
    for part in parts:
        yield part


@pytest.fixture
def sessions():
    return InMemorySessionStore(ttl_seconds=3600, max_messages=100)


@pytest.fixture
def mock_chat():
    mock = AsyncMock(spec=ChatService)
    mock.generate_response.return_value = ChatAnswer(
        content="Rates were held.",
        sources=[CITATION],
    )
    mock.generate_streaming_response.side_effect = lambda session_id, message: StreamingAnswer(
        sources=[CITATION],
        chunks=word_stream("Rates ", "were ", "held."),
    )
    mock.health_check.return_value = {"status": "degraded", "message": "no key"}
    return mock


@pytest.fixture
def mock_index():
    mock = AsyncMock(spec=VectorIndex)
    mock.health_check.return_value = {"status": "healthy"}
    return mock


@pytest.fixture
def mock_embedder():
    mock = AsyncMock(spec=Embedder)
    mock.health_check.return_value = {"status": "healthy"}
    return mock


@pytest.fixture
def app(sessions, mock_chat, mock_index, mock_embedder):
    app = create_app()
    app.dependency_overrides[get_session_store] = lambda: sessions
    app.dependency_overrides[get_chat_service] = lambda: mock_chat
    app.dependency_overrides[get_vector_index] = lambda: mock_index
    app.dependency_overrides[get_embedder] = lambda: mock_embedder

    # Skip Redis / database wiring
    @contextlib.asynccontextmanager
    async def mock_lifespan(app):
        yield

    app.router.lifespan_context = mock_lifespan
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def parse_sse(body):
    events = []
    for block in body.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


# ---------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------

def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_detailed_health_rolls_up_worst_status(client):
    resp = client.get("/health/detailed")

    body = resp.json()
    assert resp.status_code == 200
    assert body["status"] == "degraded"
    assert body["services"]["sessions"]["status"] == "degraded"
    assert body["services"]["sessions"]["backend"] == "memory"
    assert body["services"]["vectorIndex"]["status"] == "healthy"
    assert body["services"]["llm"]["status"] == "degraded"


def test_detailed_health_returns_503_when_a_service_is_unhealthy(client, mock_index):
    mock_index.health_check.return_value = {"status": "unhealthy", "error": "connection refused"}

    resp = client.get("/health/detailed")

    assert resp.status_code == 503
    assert resp.json()["status"] == "unhealthy"
    assert resp.json()["services"]["vectorIndex"]["error"] == "connection refused"


# ---------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------

def test_session_lifecycle(client):
    created = client.post("/api/session").json()
    session_id = created["sessionId"]

    info = client.get(f"/api/session/{session_id}").json()
    assert info["id"] == session_id
    assert info["messageCount"] == 0

    deleted = client.delete(f"/api/session/{session_id}").json()
    assert deleted == {"message": "Session deleted successfully", "sessionId": session_id}


def test_get_unknown_session_creates_it(client):
    resp = client.get("/api/session/brand-new")

    assert resp.status_code == 200
    assert resp.json()["messageCount"] == 0


# ---------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------

def test_chat_stores_both_messages(client, mock_chat):
    resp = client.post("/api/chat", json={"sessionId": "s1", "message": "  What about rates?  "})

    body = resp.json()
    assert resp.status_code == 200
    assert body["sessionId"] == "s1"
    assert body["message"]["role"] == "assistant"
    assert body["message"]["content"] == "Rates were held."
    assert body["message"]["sources"][0]["publishedAt"] == "2024-05-01T12:00:00+00:00"
    mock_chat.generate_response.assert_awaited_once_with("s1", "What about rates?")

    history = client.get("/api/chat/history/s1").json()
    assert history["total"] == 2
    assert [m["role"] for m in history["messages"]] == ["user", "assistant"]


@pytest.mark.parametrize(
    "payload",
    [
        {"sessionId": "s1", "message": ""},
        {"sessionId": "s1", "message": "   "},
        {"sessionId": "s1", "message": "x" * 4001},
        {"message": "hello"},
        {"sessionId": "s1", "message": "hello", "extra": True},
    ],
)
def test_chat_rejects_invalid_requests(client, payload):
    assert client.post("/api/chat", json=payload).status_code == 422


def test_history_pagination(client, sessions):
    for i in range(5):
        client.post("/api/chat", json={"sessionId": "s1", "message": f"q{i}"})

    page = client.get("/api/chat/history/s1", params={"limit": 2, "offset": 1}).json()

    assert page["total"] == 2
    assert page["messages"][-1]["role"] == "user"
    assert page["messages"][-1]["content"] == "q4"


def test_history_validates_limit(client):
    assert client.get("/api/chat/history/s1", params={"limit": 0}).status_code == 422


def test_stream_emits_events_and_stores_answer(client, sessions):
    resp = client.get("/api/chat/stream", params={"sessionId": "s1", "message": "rates?"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")

    events = parse_sse(resp.text)
    names = [name for name, _ in events]
    assert names == ["status", "chunk", "chunk", "chunk", "complete"]

    chunks = [data for name, data in events if name == "chunk"]
    assert chunks[-1]["content"] == "Rates were held."
    assert len({c["messageId"] for c in chunks}) == 1

    complete = events[-1][1]
    assert complete["done"] is True
    assert complete["messageId"] == chunks[0]["messageId"]
    assert complete["sources"][0]["url"] == "https://news.example/rates"

    history = client.get("/api/chat/history/s1").json()
    assert [m["content"] for m in history["messages"]] == ["rates?", "Rates were held."]
    assert history["messages"][1]["id"] == complete["messageId"]


def test_stream_reports_errors_as_events(client, mock_chat):
    mock_chat.generate_streaming_response.side_effect = RuntimeError("boom")

    resp = client.get("/api/chat/stream", params={"sessionId": "s1", "message": "rates?"})

    events = parse_sse(resp.text)
    assert [name for name, _ in events] == ["status", "error"]
    assert events[-1][1]["error"] == "Failed to process streaming message"


def test_stream_requires_parameters(client):
    assert client.get("/api/chat/stream", params={"message": "hi"}).status_code == 422


# ---------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------

def test_unhandled_errors_return_json_500(app, mock_chat):
    mock_chat.generate_response.side_effect = RuntimeError("boom")

    with TestClient(app, raise_server_exceptions=False) as c:
        resp = c.post("/api/chat", json={"sessionId": "s1", "message": "hello"})

    assert resp.status_code == 500
    assert resp.json()["error"] == "Internal server error"


def test_unknown_route_returns_json_404(client):
    resp = client.get("/api/nope")

    assert resp.status_code == 404
    assert resp.json() == {"error": "Endpoint not found", "path": "/api/nope"}
