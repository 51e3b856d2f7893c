from __future__ import annotations

import json as _json

import httpx
from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from agentic_search.agents.orchestrator import ResearchOrchestrator
from agentic_search.api.deps import get_llm_client
from agentic_search.errors import AgenticSearchError, ResearchRunError
from agentic_search.llm_client import OpenRouterClient, get_model
from agentic_search.models.schemas import ResearchRequest
from agentic_search.services import logger as log_service
from agentic_search.services import streaming
from agentic_search.services.pricing import ModelPricing, pricing_for_model

router = APIRouter(prefix="/api/research", tags=["research"])


async def _lookup_pricing(client: OpenRouterClient, model: str) -> ModelPricing | None:
    try:
        return pricing_for_model(await client.list_models(), model)
    except (AgenticSearchError, httpx.HTTPError, ValueError) as e:
        log_service.log_event(
            event_type="pricing_unavailable",
            message="Model pricing lookup failed; cost will not be estimated",
            error=str(e),
            model=model,
        )
        return None


@router.post("/stream")
async def stream_research(
    request: ResearchRequest,
    client: OpenRouterClient = Depends(get_llm_client),
):
    """SSE endpoint that runs one research query and streams its progress."""
    model = request.model or get_model()

    async def event_generator():
        log_service.log_event(
            event_type="research_started",
            message="Research started",
            model=model,
            query=request.query[:100],
        )
        pricing = await _lookup_pricing(client, model)
        orchestrator = ResearchOrchestrator(model=model, client=client, pricing=pricing)
        try:
            async for event in orchestrator.research(request.query):
                yield {"event": event.event.value, "data": _json.dumps(event.data)}
        except ResearchRunError:
            # The orchestrator already emitted its error event.
            return
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in research stream",
                error=str(e),
            )
            error_event = streaming.error("Research stream failed unexpectedly.")
            yield {"event": error_event.event.value, "data": _json.dumps(error_event.data)}

    return EventSourceResponse(event_generator())
