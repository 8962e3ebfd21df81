import json
import logging
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from news_rag_server.config import settings
from news_rag_server.embeddings.embedder import Embedder

DIM = 768


def vector(seed, dim=DIM):
    return [float(seed)] * dim


def ok_handler(dim=DIM, calls=None):
    """Echo one vector per input, tagged with the input's position."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        data = [
            {"embedding": vector(i + 1, dim), "index": i}
            for i, _ in enumerate(body["input"])
        ]
        return httpx.Response(200, json={"data": data})

    return handler


def make_embedder(handler, **overrides):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    options = dict(
        api_key="test-key",
        model="jina-embeddings-v2-base-en",
        base_url="https://embeddings.test/v1/embeddings",
        dimension=DIM,
        batch_size=20,
        max_retries=3,
        retry_base_delay=0,
        batch_delay=0,
        http_client=client,
    )
    options.update(overrides)
    return Embedder(**options)


# ---------------------------------------------------------------------
# Success paths
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_generate_embeddings_batches_sequentially():
    calls = []
    embedder = make_embedder(ok_handler(calls=calls))

    records = await embedder.generate_embeddings([f"text {i}" for i in range(45)])

    assert [len(c["input"]) for c in calls] == [20, 20, 5]
    assert [r.index for r in records] == list(range(45))
    assert not any(r.failed for r in records)
    assert calls[0]["model"] == "jina-embeddings-v2-base-en"


@pytest.mark.asyncio
async def test_generate_embeddings_sends_bearer_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"data": [{"embedding": vector(1), "index": 0}]})

    embedder = make_embedder(handler)
    await embedder.generate_embeddings(["hello"])

    assert seen["auth"] == "Bearer test-key"


@pytest.mark.asyncio
async def test_bare_string_is_treated_as_single_input():
    embedder = make_embedder(ok_handler())

    records = await embedder.generate_embeddings("only one")

    assert len(records) == 1
    assert records[0].index == 0


@pytest.mark.asyncio
async def test_response_items_are_reordered_by_index():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "data": [
                    {"embedding": vector(2), "index": 1},
                    {"embedding": vector(1), "index": 0},
                ]
            },
        )

    embedder = make_embedder(handler)
    records = await embedder.generate_embeddings(["a", "b"])

    assert records[0].embedding[0] == 1.0
    assert records[1].embedding[0] == 2.0


@pytest.mark.asyncio
async def test_dimension_mismatch_is_warned_but_kept(caplog):
    embedder = make_embedder(ok_handler(dim=4))

    with caplog.at_level(logging.WARNING, logger="news_rag.embedder"):
        records = await embedder.generate_embeddings(["a"])

    assert len(records[0].embedding) == 4
    assert not records[0].failed
    assert "Unexpected embedding dimension" in caplog.text


# ---------------------------------------------------------------------
# Failure paths
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_failed_batches_produce_fallback_records():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(503, json={"error": "unavailable"})

    embedder = make_embedder(handler)
    records = await embedder.generate_embeddings([f"t{i}" for i in range(25)])

    assert len(records) == 25
    assert [r.index for r in records] == list(range(25))
    assert all(r.failed for r in records)
    assert all(r.embedding == [0.0] * DIM for r in records)
    # two batches, one attempt plus three retries each
    assert len(calls) == 8


@pytest.mark.asyncio
async def test_retry_recovers_after_transient_error():
    attempts = []
    succeed = ok_handler()

    def handler(request):
        attempts.append(1)
        if len(attempts) < 3:
            return httpx.Response(500)
        return succeed(request)

    embedder = make_embedder(handler)
    records = await embedder.generate_embeddings(["a", "b"])

    assert len(attempts) == 3
    assert not any(r.failed for r in records)


@pytest.mark.asyncio
async def test_terminal_status_is_not_retried():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(401, json={"error": "bad key"})

    embedder = make_embedder(handler)
    records = await embedder.generate_embeddings(["a", "b", "c"])

    assert len(calls) == 1
    assert len(records) == 3
    assert all(r.failed for r in records)


@pytest.mark.asyncio
async def test_malformed_response_falls_back():
    def handler(request):
        return httpx.Response(200, json={"unexpected": True})

    embedder = make_embedder(handler, max_retries=0)
    records = await embedder.generate_embeddings(["a"])

    assert len(records) == 1
    assert records[0].failed


@pytest.mark.asyncio
async def test_transport_error_falls_back():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    embedder = make_embedder(handler, max_retries=1)
    records = await embedder.generate_embeddings(["a"])

    assert records[0].failed


@pytest.mark.asyncio
async def test_partial_failure_keeps_successful_batches():
    calls = []
    succeed = ok_handler()

    def handler(request):
        calls.append(1)
        if len(calls) == 1:
            return succeed(request)
        return httpx.Response(502)

    embedder = make_embedder(handler, batch_size=2, max_retries=0)
    records = await embedder.generate_embeddings(["a", "b", "c"])

    assert [r.failed for r in records] == [False, False, True]
    assert [r.index for r in records] == [0, 1, 2]


# ---------------------------------------------------------------------
# Pacing
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_retry_delays_double_per_attempt():
    embedder = make_embedder(
        lambda request: httpx.Response(503),
        retry_base_delay=1,
        max_retries=3,
    )

    with patch("news_rag_server.embeddings.embedder.asyncio.sleep", new_callable=AsyncMock) as sleep:
        records = await embedder.generate_embeddings(["a", "b"])

    assert [c.args[0] for c in sleep.await_args_list] == [1, 2, 4]
    assert all(r.failed for r in records)


@pytest.mark.asyncio
async def test_batch_delay_only_between_batches():
    embedder = make_embedder(ok_handler(), batch_delay=0.5)

    with patch("news_rag_server.embeddings.embedder.asyncio.sleep", new_callable=AsyncMock) as sleep:
        await embedder.generate_embeddings([f"text {i}" for i in range(45)])

    # three batches, so two pauses and none after the last
    assert [c.args[0] for c in sleep.await_args_list] == [0.5, 0.5]


@pytest.mark.asyncio
async def test_single_batch_does_not_pause():
    embedder = make_embedder(ok_handler(), batch_delay=0.5)

    with patch("news_rag_server.embeddings.embedder.asyncio.sleep", new_callable=AsyncMock) as sleep:
        await embedder.generate_embeddings([f"text {i}" for i in range(20)])

    sleep.assert_not_awaited()


# ---------------------------------------------------------------------
# Disabled client and helpers
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_no_api_key_returns_empty(monkeypatch):
    monkeypatch.setattr(settings, "jina_api_key", None)
    embedder = Embedder(api_key=None)

    assert not embedder.enabled
    assert await embedder.generate_embeddings(["a", "b"]) == []
    assert await embedder.generate_single_embedding("a") is None


@pytest.mark.asyncio
async def test_empty_input_makes_no_request():
    calls = []
    embedder = make_embedder(ok_handler(calls=calls))

    assert await embedder.generate_embeddings([]) == []
    assert calls == []


@pytest.mark.asyncio
async def test_generate_single_embedding_returns_none_on_failure():
    embedder = make_embedder(lambda request: httpx.Response(500), max_retries=0)

    assert await embedder.generate_single_embedding("query") is None


@pytest.mark.asyncio
async def test_health_check_reports_dimension():
    embedder = make_embedder(ok_handler())

    health = await embedder.health_check()

    assert health["status"] == "healthy"
    assert health["embeddingDimension"] == DIM


def test_cosine_similarity():
    assert Embedder.cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert Embedder.cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert Embedder.cosine_similarity([1, 2], [-1, -2]) == pytest.approx(-1.0)
    assert Embedder.cosine_similarity([0, 0], [1, 1]) == 0.0

    with pytest.raises(ValueError):
        Embedder.cosine_similarity([1, 2, 3], [1, 2])
