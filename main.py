"""AgenticSearch - tool-calling web research agent

Simple CLI for running research queries, optionally followed by Citation Mode.
"""

import argparse
import asyncio
import sys

from agentic_search.agents.orchestrator import ResearchOrchestrator
from agentic_search.citation_mode.excerpt_fetcher import FAILED_TO_LOAD, UNABLE_TO_LOAD, ExcerptFetcher
from agentic_search.citation_mode.pipeline import run_citation_mode
from agentic_search.config import settings
from agentic_search.errors import AgenticSearchError
from agentic_search.llm_client import OpenRouterClient, get_citation_model, get_model
from agentic_search.models.state import (
    CitationIdle,
    CitationReady,
    ExcerptFailed,
    ExcerptLoaded,
    ExcerptLoading,
    ResearchComplete,
    ResearchFailed,
    ResearchIdle,
    StartCitationMode,
    StartResearch,
    citation_action_for_event,
    research_action_for_event,
    transition_citation,
    transition_research,
)
from agentic_search.services.excerpt_cache import ExcerptCache


async def run_research(client: OpenRouterClient, query: str, model: str):
    """Run research on the given query and return the final session state."""
    print(f"Research query: {query}")
    print("-" * 50)

    state = transition_research(ResearchIdle(model=model), StartResearch(query))
    orchestrator = ResearchOrchestrator(model=model, client=client)

    try:
        async for event in orchestrator.research(query):
            action = research_action_for_event(event)
            if action is not None:
                state = transition_research(state, action)

            event_type = event.event.value
            data = event.data
            if event_type == "tool_call" and data.get("status") == "executing":
                print(f"\n[~] {data.get('name')} {data.get('arguments', '')[:100]}")
            elif event_type == "tool_call" and data.get("status") == "error":
                print(f"  [!] {data.get('name')} failed")
            elif event_type == "source_added":
                print(f"  [+] {data.get('title') or data.get('url')}")
            elif event_type == "content_chunk":
                print(data.get("chunk", ""), end="", flush=True)
            elif event_type == "research_complete":
                usage = data.get("usage", {})
                print(f"\n\n[*] Research Complete!")
                print(f"   Iterations: {data.get('iterations')}")
                print(f"   Tokens: {usage.get('total_tokens', 0)}")
                print(f"   Sources: {len(data.get('sources', []))}")
    except AgenticSearchError:
        # The error event already moved the session to ResearchFailed.
        pass

    if isinstance(state, ResearchFailed):
        print(f"\n[!] Error: {state.error}")
    return state


async def run_citations(client: OpenRouterClient, research: ResearchComplete, fetch_excerpts: bool):
    """Run Citation Mode over a finished answer and print the bases."""
    model = get_citation_model(research.model)
    state = transition_citation(CitationIdle(), StartCitationMode())

    print(f"\n{'='*50}")
    print("CITATION MODE")
    print(f"{'='*50}")
    try:
        async for event in run_citation_mode(research.report, research.sources, client=client, model=model):
            action = citation_action_for_event(event)
            if action is not None:
                state = transition_citation(state, action)
            if event.event.value == "citation_progress":
                print(f"[~] {event.data.get('message')}")
    except AgenticSearchError:
        # The error progress event already moved the session to CitationFailed.
        pass

    if not isinstance(state, CitationReady):
        print(f"[!] Citation Mode failed: {getattr(state, 'error', 'unknown error')}")
        return state

    if fetch_excerpts:
        cache = ExcerptCache(settings.excerpt_cache_max_entries, settings.excerpt_cache_ttl_seconds)
        fetcher = ExcerptFetcher(client, model, cache=cache, concurrency=settings.excerpt_concurrency)
        pairs = [(basis.id, source) for basis in state.bases for source in basis.sources]
        for basis_id, source in pairs:
            state = transition_citation(state, ExcerptLoading(basis_id, source.url))
        claim_by_basis = {basis.id: basis.claim_text for basis in state.bases}
        results = await fetcher.fetch_excerpts_batch(
            [(source, claim_by_basis[basis_id]) for basis_id, source in pairs]
        )
        for basis_id, source in pairs:
            result = results.get((source.url, claim_by_basis[basis_id]))
            if result is None or result.excerpt in (UNABLE_TO_LOAD, FAILED_TO_LOAD):
                state = transition_citation(state, ExcerptFailed(basis_id, source.url, "excerpt unavailable"))
            else:
                state = transition_citation(state, ExcerptLoaded(basis_id, source.url, result.excerpt))

    print(f"\nOverall confidence: {state.confidence.get('score', 0)}")
    for basis in state.bases:
        print(f"\n- [{basis.confidence.value}: {basis.confidence.description}] {basis.claim_text}")
        print(f"  {basis.reasoning}")
        for source in basis.sources:
            print(f"  * {source.title} ({source.domain})")
            if source.excerpt:
                print(f"    \"{source.excerpt}\"")
            elif source.fetch_error:
                print(f"    ({source.fetch_error})")
    return state


async def run(query: str, model: str | None, citations: bool, excerpts: bool):
    client = OpenRouterClient(model=model)
    state = await run_research(client, query, model or get_model())
    if isinstance(state, ResearchComplete):
        if citations:
            await run_citations(client, state, excerpts)
        return 0
    return 1


def main():
    parser = argparse.ArgumentParser(description="AgenticSearch Research Agent")
    parser.add_argument("--query", "-q", required=True, help="Research query")
    parser.add_argument("--model", "-m", help="Model to use (default: from config)")
    parser.add_argument("--citations", action="store_true", help="Run Citation Mode on the answer")
    parser.add_argument(
        "--excerpts",
        action="store_true",
        help="Fetch supporting excerpts for every basis source (implies --citations)",
    )

    args = parser.parse_args()

    try:
        code = asyncio.run(run(args.query, args.model, args.citations or args.excerpts, args.excerpts))
    except AgenticSearchError as e:
        print(f"[!] {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
