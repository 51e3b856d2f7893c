"""Tests for API routes."""
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from agentic_search.api.deps import get_llm_client
from agentic_search.errors import ProviderError
from agentic_search.main import app
from agentic_search.models.citation import ConfidenceLevel, ExcerptResult
from agentic_search.services import streaming
from agentic_search.tools.parallel_client import ExtractResponse, ExtractResult


def _completion(content):
    return {"choices": [{"finish_reason": "stop", "message": {"role": "assistant", "content": content}}]}


def _sse_events(body: str):
    """Parse an SSE body into (event, data) pairs."""
    events = []
    for frame in body.replace("\r\n", "\n").split("\n\n"):
        name, data = None, None
        for line in frame.split("\n"):
            if line.startswith("event:"):
                name = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data = json.loads(line[len("data:"):].strip())
        if name:
            events.append((name, data))
    return events


@pytest.fixture
def llm():
    fake = MagicMock()
    fake.chat = AsyncMock()
    fake.complete_json = AsyncMock()
    fake.list_models = AsyncMock(return_value=[])
    return fake


@pytest.fixture
def client(llm):
    app.dependency_overrides[get_llm_client] = lambda: llm
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "agentic-search"


def test_list_models(client):
    response = client.get("/api/models")
    assert response.status_code == 200
    model_ids = [m["id"] for m in response.json()["models"]]
    assert len(model_ids) == 6
    assert "anthropic/claude-sonnet-4.5" in model_ids
    assert "openai/gpt-5.2" in model_ids


def test_openrouter_catalogue(client, llm):
    llm.list_models.return_value = [{"id": "a/b", "pricing": {"prompt": "0.000001"}}]

    response = client.get("/api/models/openrouter")

    assert response.status_code == 200
    assert response.json() == {"models": [{"id": "a/b", "pricing": {"prompt": "0.000001"}}]}


def test_openrouter_catalogue_provider_failure(client, llm):
    llm.list_models.side_effect = ProviderError("OpenRouter API error: 500", provider="openrouter")

    response = client.get("/api/models/openrouter")

    assert response.status_code == 502


def test_missing_openrouter_key_is_503():
    with patch("agentic_search.llm_client.settings") as mock_settings:
        mock_settings.openrouter_api_key = ""
        with TestClient(app) as test_client:
            response = test_client.post("/api/research/stream", json={"query": "q"})

    assert response.status_code == 503
    assert "not configured" in response.json()["detail"]


def test_research_requires_query(client):
    response = client.post("/api/research/stream", json={"query": ""})
    assert response.status_code == 422


def test_research_stream(client, llm):
    llm.chat.return_value = _completion("Short answer.")
    llm.list_models.side_effect = ProviderError("no catalogue", provider="openrouter")

    response = client.post("/api/research/stream", json={"query": "What is LFP?", "model": "test/model"})

    assert response.status_code == 200
    events = _sse_events(response.text)
    names = [name for name, _ in events]
    assert names[0] == "research_started"
    assert names[-1] == "research_complete"
    assert events[0][1] == {"query": "What is LFP?", "model": "test/model"}
    assert events[-1][1]["report"] == "Short answer."
    assert "estimated_cost" not in events[-1][1]["usage"]


def test_research_stream_failure_emits_single_error(client, llm):
    llm.chat.side_effect = ProviderError("OpenRouter API error: 401 - bad key", provider="openrouter")

    response = client.post("/api/research/stream", json={"query": "q"})

    events = _sse_events(response.text)
    errors = [data for name, data in events if name == "error"]
    assert len(errors) == 1
    assert errors[0]["stage"] == "research"
    assert "401" in errors[0]["message"]


def test_citation_mode_stream(client):
    async def fake_run(response, sources, **kwargs):
        assert response == "The sky is blue [NASA](https://nasa.gov/sky)."
        assert sources == [{"url": "https://nasa.gov/sky", "title": "NASA", "excerpt": None}]
        yield streaming.citations_stripped("The sky is blue NASA.", [])
        raise ValueError("claim extraction exploded")

    with patch("agentic_search.api.routes.citation_mode.run_citation_mode", fake_run):
        response = client.post(
            "/api/citation-mode/stream",
            json={
                "response": "The sky is blue [NASA](https://nasa.gov/sky).",
                "sources": [{"url": "https://nasa.gov/sky", "title": "NASA"}],
            },
        )

    events = _sse_events(response.text)
    assert [name for name, _ in events] == ["citations_stripped", "error"]
    assert events[-1][1] == {"message": "claim extraction exploded", "stage": "citation_mode"}


def test_excerpt_endpoint_uses_shared_cache(client, llm):
    llm.chat.return_value = _completion(json.dumps({"excerpt": "Blue light scatters", "confidence": "high"}))
    page = ExtractResponse(results=[ExtractResult(url="https://nasa.gov/sky", content="Blue light scatters more.")])
    body = {"source": {"url": "https://nasa.gov/sky", "title": "NASA"}, "claim_text": "The sky is blue"}

    with patch(
        "agentic_search.citation_mode.excerpt_fetcher.parallel_client.extract",
        AsyncMock(return_value=page),
    ) as mock_extract:
        first = client.post("/api/citation-mode/excerpt", json=body)
        second = client.post("/api/citation-mode/excerpt", json=body)

    assert first.status_code == 200
    assert first.json() == {
        "url": "https://nasa.gov/sky",
        "claim_text": "The sky is blue",
        "excerpt": "Blue light scatters",
        "confidence": "high",
        "note": None,
    }
    assert second.json() == first.json()
    assert mock_extract.await_count == 1

    cleared = client.delete("/api/citation-mode/excerpt-cache")
    assert cleared.json() == {"cleared": 1}


def test_excerpt_batch_endpoints(client):
    async def fake_fetch(self, source, claim_text):
        return ExcerptResult(excerpt=f"{source.url}:{claim_text}", confidence=ConfidenceLevel.MEDIUM)

    items = [
        {"source": {"url": "https://a.com"}, "claim_text": "one"},
        {"source": {"url": "https://b.com"}, "claim_text": "two"},
    ]
    with patch("agentic_search.citation_mode.excerpt_fetcher.ExcerptFetcher.fetch_excerpt", fake_fetch):
        batch = client.post("/api/citation-mode/excerpts", json={"items": items})
        stream = client.post("/api/citation-mode/excerpts/stream", json={"items": items})

    results = sorted(batch.json()["results"], key=lambda r: r["url"])
    assert [r["excerpt"] for r in results] == ["https://a.com:one", "https://b.com:two"]
    events = _sse_events(stream.text)
    assert {name for name, _ in events} == {"excerpt_loaded"}
    assert sorted(data["claim_text"] for _, data in events) == ["one", "two"]


def test_reanalyze_keeps_basis_id(client, llm):
    llm.complete_json.return_value = {
        "confidence": "high",
        "reasoning": "Better source",
        "sources": [{"url": "https://noaa.gov/air", "title": "NOAA"}],
    }
    basis = {
        "id": "basis_abc",
        "claim_text": "The sky is blue",
        "claim_range": {"start": 0, "end": 15},
        "confidence": "low",
        "sources": [{"url": "https://nasa.gov/sky", "title": "NASA", "domain": "nasa.gov"}],
    }

    response = client.post(
        "/api/citation-mode/reanalyze",
        json={
            "basis": basis,
            "sources": [
                {"url": "https://nasa.gov/sky", "title": "NASA"},
                {"url": "https://noaa.gov/air", "title": "NOAA"},
            ],
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == "basis_abc"
    assert data["confidence"] == "high"
    assert [s["url"] for s in data["sources"]] == ["https://noaa.gov/air"]


def test_unreadable_pricing_catalogue_only_drops_the_cost(client, llm):
    llm.chat.return_value = _completion("Short answer.")
    llm.list_models.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")

    response = client.post("/api/research/stream", json={"query": "q"})

    events = _sse_events(response.text)
    assert [name for name, _ in events if name == "error"] == []
    assert events[-1][0] == "research_complete"
    assert "estimated_cost" not in events[-1][1]["usage"]


def test_serve_runs_the_app_with_configured_address():
    from agentic_search.main import serve

    with patch("agentic_search.main.uvicorn.run") as mock_run, patch(
        "agentic_search.main.settings"
    ) as mock_settings:
        mock_settings.api_host = "0.0.0.0"
        mock_settings.api_port = 9001
        serve()

    mock_run.assert_called_once_with("agentic_search.main:app", host="0.0.0.0", port=9001)
