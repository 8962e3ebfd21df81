from news_rag_server.db.schemas import SearchResult
from news_rag_server.rag.context import (
    SYSTEM_PROMPT,
    build_citations,
    build_context_block,
    build_prompt,
    format_published_date,
)


def result(content="Central bank holds rates steady.", **meta):
    metadata = {
        "title": "Rates on hold",
        "url": "https://news.example/rates",
        "source": "Reuters",
        "publishedAt": "2024-05-01T12:00:00+00:00",
    }
    metadata.update(meta)
    return SearchResult(id=1, score=0.87, content=content, metadata=metadata)


def test_context_block_formats_numbered_sources():
    block = build_context_block([result(), result(title="Second", source="BBC News")])

    assert block.startswith("RELEVANT NEWS CONTEXT:\n\n")
    assert "[Source 1: Reuters - Rates on hold]" in block
    assert "[Source 2: BBC News - Second]" in block
    assert "Published: 2024-05-01" in block
    assert "Content: Central bank holds rates steady." in block
    assert "URL: https://news.example/rates" in block


def test_context_block_truncates_long_content():
    block = build_context_block([result(content="x" * 1000)], max_chars=800)

    assert "Content: " + "x" * 800 + "...\n" in block


def test_context_block_empty():
    assert build_context_block([]) == ""


def test_citations_carry_snippet_and_score():
    [citation] = build_citations([result(content="y" * 300)])

    assert citation.title == "Rates on hold"
    assert citation.published_at == "2024-05-01T12:00:00+00:00"
    assert citation.snippet == "y" * 200 + "..."
    assert citation.score == 0.87


def test_prompt_without_context_still_has_question():
    prompt = build_prompt("What happened today?")

    assert prompt.startswith(SYSTEM_PROMPT)
    assert "RELEVANT NEWS CONTEXT" not in prompt
    assert "User question: What happened today?" in prompt


def test_prompt_with_context():
    prompt = build_prompt("Rates?", [result()])

    assert prompt.index("RELEVANT NEWS CONTEXT") < prompt.index("User question: Rates?")


def test_format_published_date():
    assert format_published_date("2024-05-01T12:00:00Z") == "2024-05-01"
    assert format_published_date(None) == "Unknown date"
    assert format_published_date("yesterday") == "yesterday"
