from __future__ import annotations

import json as _json

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from agentic_search.api.deps import get_excerpt_cache, get_llm_client
from agentic_search.citation_mode.basis_builder import BasisBuilder
from agentic_search.citation_mode.excerpt_fetcher import ExcerptFetcher
from agentic_search.citation_mode.pipeline import run_citation_mode, to_source_infos
from agentic_search.config import settings
from agentic_search.llm_client import OpenRouterClient, get_citation_model
from agentic_search.models.citation import Basis, SourcePosition
from agentic_search.models.schemas import (
    BasisModel,
    CacheClearedResponse,
    CitationModeRequest,
    ExcerptBatchRequest,
    ExcerptBatchResponse,
    ExcerptRequest,
    ExcerptResponse,
    ReanalyzeRequest,
)
from agentic_search.services import logger as log_service
from agentic_search.services import streaming
from agentic_search.services.excerpt_cache import ExcerptCache

router = APIRouter(prefix="/api/citation-mode", tags=["citation-mode"])


def _fetcher(client: OpenRouterClient, model: str | None, cache: ExcerptCache) -> ExcerptFetcher:
    return ExcerptFetcher(
        client,
        get_citation_model(model),
        cache=cache,
        concurrency=settings.excerpt_concurrency,
    )


@router.post("/stream")
async def stream_citation_mode(
    request: CitationModeRequest,
    client: OpenRouterClient = Depends(get_llm_client),
):
    """SSE endpoint that rebuilds the citations of a finished answer."""
    model = get_citation_model(request.model)
    sources = [s.model_dump() for s in request.sources]

    async def event_generator():
        try:
            async for event in run_citation_mode(
                request.response,
                sources,
                client=client,
                model=model,
                batch_size=settings.citation_batch_size,
            ):
                yield {"event": event.event.value, "data": _json.dumps(event.data)}
        except Exception as e:
            log_service.log_event(
                event_type="citation_stream_error",
                message="Citation Mode run failed",
                error=str(e),
            )
            error_event = streaming.error(str(e) or "Citation mode failed", stage="citation_mode")
            yield {"event": error_event.event.value, "data": _json.dumps(error_event.data)}

    return EventSourceResponse(event_generator())


@router.post("/excerpt", response_model=ExcerptResponse)
async def fetch_excerpt(
    request: ExcerptRequest,
    client: OpenRouterClient = Depends(get_llm_client),
    cache: ExcerptCache = Depends(get_excerpt_cache),
):
    source = SourcePosition.from_dict(request.source.model_dump())
    result = await _fetcher(client, request.model, cache).fetch_excerpt(source, request.claim_text)
    return ExcerptResponse(url=source.url, claim_text=request.claim_text, **result.to_dict())


@router.post("/excerpts", response_model=ExcerptBatchResponse)
async def fetch_excerpts(
    request: ExcerptBatchRequest,
    client: OpenRouterClient = Depends(get_llm_client),
    cache: ExcerptCache = Depends(get_excerpt_cache),
):
    items = [
        (SourcePosition.from_dict(item.source.model_dump()), item.claim_text)
        for item in request.items
    ]
    results = await _fetcher(client, request.model, cache).fetch_excerpts_batch(items)
    return ExcerptBatchResponse(
        results=[
            ExcerptResponse(url=url, claim_text=claim_text, **result.to_dict())
            for (url, claim_text), result in results.items()
        ]
    )


@router.post("/excerpts/stream")
async def stream_excerpts(
    request: ExcerptBatchRequest,
    client: OpenRouterClient = Depends(get_llm_client),
    cache: ExcerptCache = Depends(get_excerpt_cache),
):
    """SSE variant of the batch endpoint: one ``excerpt_loaded`` event per item as it completes."""
    items = [
        (SourcePosition.from_dict(item.source.model_dump()), item.claim_text)
        for item in request.items
    ]
    fetcher = _fetcher(client, request.model, cache)

    async def event_generator():
        async for source, claim_text, result in fetcher.iter_excerpts(items):
            event = streaming.excerpt_loaded(source.url, claim_text, result)
            yield {"event": event.event.value, "data": _json.dumps(event.data)}

    return EventSourceResponse(event_generator())


@router.post("/reanalyze", response_model=BasisModel)
async def reanalyze_basis(
    request: ReanalyzeRequest,
    client: OpenRouterClient = Depends(get_llm_client),
):
    """Rebuild one basis, preferring sources it does not cite yet."""
    basis = Basis.from_dict(request.basis.model_dump())
    builder = BasisBuilder(client, get_citation_model(request.model))
    sources = to_source_infos(s.model_dump() for s in request.sources)
    updated = await builder.reanalyze_basis(basis, sources)
    return BasisModel(**updated.to_dict())


@router.delete("/excerpt-cache", response_model=CacheClearedResponse)
async def clear_excerpt_cache(cache: ExcerptCache = Depends(get_excerpt_cache)):
    return CacheClearedResponse(cleared=cache.clear())
