"""Client for the Parallel search and extract APIs."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from agentic_search.config import settings
from agentic_search.errors import ConfigurationError, ProviderError

PROVIDER = "parallel"


@dataclass
class SearchResult:
    url: str
    title: str
    publish_date: str | None = None
    excerpts: list[str] = field(default_factory=list)


@dataclass
class SearchResponse:
    search_id: str
    results: list[SearchResult]
    warnings: list[str] = field(default_factory=list)
    usage: dict[str, Any] | None = None


@dataclass
class ExtractResult:
    url: str
    title: str | None = None
    content: str = ""
    markdown: str | None = None
    excerpts: list[str] | None = None


@dataclass
class ExtractResponse:
    results: list[ExtractResult]
    errors: list[dict[str, Any]] = field(default_factory=list)


def _headers(api_key: str | None) -> dict[str, str]:
    key = api_key if api_key is not None else settings.parallel_api_key
    if not key:
        raise ConfigurationError("Parallel API key is not configured.")
    return {
        "Content-Type": "application/json",
        "x-api-key": key,
        "parallel-beta": settings.parallel_beta_header,
    }


async def _post(path: str, payload: dict[str, Any], headers: dict[str, str], api_name: str) -> dict[str, Any]:
    async with httpx.AsyncClient(timeout=settings.parallel_timeout_seconds) as client:
        response = await client.post(
            f"{settings.parallel_base_url.rstrip('/')}{path}",
            json=payload,
            headers=headers,
        )
    if response.status_code >= 400:
        raise ProviderError(
            f"Parallel {api_name} API error: {response.status_code} - {response.text}",
            provider=PROVIDER,
            status_code=response.status_code,
        )
    body = response.json()
    return body if isinstance(body, dict) else {}


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


async def search(
    objective: str,
    *,
    search_queries: list[str] | None = None,
    max_results: int | None = 10,
    api_key: str | None = None,
) -> SearchResponse:
    """Run an agentic-mode web search.

    API: POST {parallel_base_url}/v1beta/search
    """
    headers = _headers(api_key)
    payload: dict[str, Any] = {
        "mode": "agentic",
        "objective": objective,
        "max_results": int(max_results or 10),
    }
    if search_queries:
        payload["search_queries"] = search_queries
    body = await _post("/v1beta/search", payload, headers, "Search")

    return SearchResponse(
        search_id=str(body.get("search_id") or ""),
        results=[
            SearchResult(
                url=r.get("url", ""),
                title=r.get("title") or r.get("url", ""),
                publish_date=r.get("publish_date"),
                excerpts=_string_list(r.get("excerpts")),
            )
            for r in body.get("results") or []
            if isinstance(r, dict)
        ],
        warnings=_string_list(body.get("warnings")),
        usage=body.get("usage") if isinstance(body.get("usage"), dict) else None,
    )


async def extract(
    urls: list[str],
    *,
    objective: str | None = None,
    excerpts: bool = True,
    full_content: bool = False,
    api_key: str | None = None,
) -> ExtractResponse:
    """Extract excerpts or full content from ``urls``.

    API: POST {parallel_base_url}/v1beta/extract
    """
    headers = _headers(api_key)
    payload: dict[str, Any] = {
        "urls": urls,
        "excerpts": excerpts,
        "full_content": full_content,
    }
    if objective:
        payload["objective"] = objective
    body = await _post("/v1beta/extract", payload, headers, "Extract")

    results: list[ExtractResult] = []
    for r in body.get("results") or []:
        if not isinstance(r, dict):
            continue
        raw_excerpts = r.get("excerpts")
        results.append(
            ExtractResult(
                url=r.get("url", ""),
                title=r.get("title"),
                content=r.get("full_content") or r.get("content") or "",
                markdown=r.get("markdown"),
                excerpts=_string_list(raw_excerpts) if raw_excerpts is not None else None,
            )
        )
    errors = [e for e in body.get("errors") or [] if isinstance(e, dict)]
    return ExtractResponse(results=results, errors=errors)
