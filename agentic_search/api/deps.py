from __future__ import annotations

from fastapi import HTTPException, Request

from agentic_search.errors import ConfigurationError
from agentic_search.llm_client import OpenRouterClient
from agentic_search.services.excerpt_cache import ExcerptCache
from agentic_search.tools.definitions import MODELS


def get_available_models() -> list[dict[str, str]]:
    """Return the curated list of research models."""
    return [dict(m) for m in MODELS]


def get_llm_client() -> OpenRouterClient:
    try:
        return OpenRouterClient()
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


def get_excerpt_cache(request: Request) -> ExcerptCache:
    return request.app.state.excerpt_cache
