from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agentic_search.api.routes import citation_mode, models, research
from agentic_search.config import settings
from agentic_search.services.excerpt_cache import ExcerptCache
from agentic_search.services.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    app.state.excerpt_cache = ExcerptCache(
        max_entries=settings.excerpt_cache_max_entries,
        ttl_seconds=settings.excerpt_cache_ttl_seconds,
    )
    logger.info("AgenticSearch API started")
    yield
    # Shutdown
    app.state.excerpt_cache.clear()


app = FastAPI(
    title="AgenticSearch",
    description="Tool-calling web research agent with Citation Mode",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(research.router)
app.include_router(citation_mode.router)
app.include_router(models.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "agentic-search"}


def serve():
    """Run the API with uvicorn on the configured host and port."""
    uvicorn.run("agentic_search.main:app", host=settings.api_host, port=settings.api_port)
