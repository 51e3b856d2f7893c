from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from agentic_search.agents.tool_executor import ToolExecutor
from agentic_search.errors import ProviderError, ToolExecutionError
from agentic_search.models.messages import ToolCall
from agentic_search.models.sources import Source, SourceRegistry, SourceType
from agentic_search.tools.parallel_client import (
    ExtractResponse,
    ExtractResult,
    SearchResponse,
    SearchResult,
)


def _call(name, arguments):
    return ToolCall(id="call_1", name=name, arguments=json.dumps(arguments))


class TestSearchWeb:
    """search_web registers every result as a search source."""

    @pytest.mark.asyncio
    async def test_results_become_sources(self):
        registry = SourceRegistry()
        response = SearchResponse(
            search_id="s1",
            results=[
                SearchResult(url="https://a.com", title="A", excerpts=["x"]),
                SearchResult(url="https://b.com", title="B"),
            ],
        )
        with patch(
            "agentic_search.agents.tool_executor.parallel_client.search",
            AsyncMock(return_value=response),
        ) as mock_search:
            result, new_sources = await ToolExecutor(registry).execute(
                _call("search_web", {"objective": "q", "search_queries": ["a", "b"]})
            )

        assert mock_search.await_args.kwargs["search_queries"] == ["a", "b"]
        assert [s.url for s in new_sources] == ["https://a.com", "https://b.com"]
        assert all(s.type == SourceType.SEARCH for s in new_sources)
        assert result["results"][0]["excerpts"] == ["x"]

    @pytest.mark.asyncio
    async def test_duplicate_urls_are_not_reported_twice(self):
        registry = SourceRegistry()
        registry.add(Source(url="https://a.com", title="Earlier", type=SourceType.EXTRACT))
        response = SearchResponse(search_id="s1", results=[SearchResult(url="https://a.com", title="A")])

        with patch(
            "agentic_search.agents.tool_executor.parallel_client.search",
            AsyncMock(return_value=response),
        ):
            _, new_sources = await ToolExecutor(registry).execute(_call("search_web", {"objective": "q"}))

        assert new_sources == []
        assert registry.get("https://a.com").title == "Earlier"

    @pytest.mark.asyncio
    async def test_empty_objective_is_rejected(self):
        with pytest.raises(ToolExecutionError):
            await ToolExecutor(SourceRegistry()).execute(_call("search_web", {"objective": "  "}))


class TestExtractUrl:
    """extract_url registers the requested URLs whatever the outcome."""

    @pytest.mark.asyncio
    async def test_two_urls_yield_two_sources_when_one_extraction_fails(self):
        registry = SourceRegistry()
        response = ExtractResponse(
            results=[ExtractResult(url="https://a.com", title="A", excerpts=["p1", "p2"])],
            errors=[{"url": "https://b.com", "error_type": "fetch_failed"}],
        )
        with patch(
            "agentic_search.agents.tool_executor.parallel_client.extract",
            AsyncMock(return_value=response),
        ):
            result, new_sources = await ToolExecutor(registry).execute(
                _call("extract_url", {"urls": ["https://a.com", "https://b.com"], "objective": "specs"})
            )

        assert [(s.url, s.type) for s in new_sources] == [
            ("https://a.com", SourceType.EXTRACT),
            ("https://b.com", SourceType.EXTRACT),
        ]
        assert new_sources[0].title == "A"
        assert new_sources[1].title == "https://b.com"
        assert result["results"] == [{"url": "https://a.com", "content": "p1\n\np2"}]

    @pytest.mark.asyncio
    async def test_sources_registered_even_when_the_call_raises(self):
        registry = SourceRegistry()
        with patch(
            "agentic_search.agents.tool_executor.parallel_client.extract",
            AsyncMock(side_effect=ProviderError("boom", provider="parallel")),
        ):
            with pytest.raises(ProviderError):
                await ToolExecutor(registry).execute(
                    _call("extract_url", {"urls": ["https://a.com", "https://b.com"]})
                )

        assert [s.url for s in registry] == ["https://a.com", "https://b.com"]

    @pytest.mark.asyncio
    async def test_full_content_used_without_excerpts(self):
        response = ExtractResponse(results=[ExtractResult(url="https://a.com", content="body")])
        with patch(
            "agentic_search.agents.tool_executor.parallel_client.extract",
            AsyncMock(return_value=response),
        ) as mock_extract:
            result, _ = await ToolExecutor(SourceRegistry()).execute(
                _call("extract_url", {"urls": "https://a.com", "objective": "o", "excerpts": False})
            )

        assert result["results"][0]["content"] == "body"
        assert mock_extract.await_args.kwargs["excerpts"] is False
        assert mock_extract.await_args.kwargs["full_content"] is True


class TestDispatch:
    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        with pytest.raises(ToolExecutionError, match="Unknown tool: browse"):
            await ToolExecutor(SourceRegistry()).execute(_call("browse", {}))

    @pytest.mark.asyncio
    async def test_malformed_arguments(self):
        call = ToolCall(id="c", name="search_web", arguments='{"objective": ')
        with pytest.raises(ToolExecutionError, match="Failed to parse tool arguments"):
            await ToolExecutor(SourceRegistry()).execute(call)
