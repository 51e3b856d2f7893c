from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from agentic_search.api.deps import get_available_models, get_llm_client
from agentic_search.errors import ProviderError
from agentic_search.llm_client import OpenRouterClient
from agentic_search.models.schemas import ModelInfo, ModelsResponse

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("", response_model=ModelsResponse)
async def list_models():
    """List the curated research models."""
    models = get_available_models()
    return ModelsResponse(models=[ModelInfo(**m) for m in models])


@router.get("/openrouter")
async def list_openrouter_models(client: OpenRouterClient = Depends(get_llm_client)) -> dict[str, Any]:
    """Live OpenRouter catalogue, including per-token pricing."""
    try:
        models = await client.list_models()
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"models": models}
