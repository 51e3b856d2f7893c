from __future__ import annotations

from typing import Any

from agentic_search.models.citation import Basis, CitationModeProgress, ExcerptResult, ExtractedCitation
from agentic_search.models.events import EventType, SSEEvent
from agentic_search.models.messages import ToolCall
from agentic_search.models.sources import Source


def research_started(query: str, model: str) -> SSEEvent:
    return SSEEvent(event=EventType.RESEARCH_STARTED, data={"query": query, "model": model})


def tool_call(call: ToolCall) -> SSEEvent:
    """Emit a tool call lifecycle update (executing, complete or error)."""
    return SSEEvent(
        event=EventType.TOOL_CALL,
        data={
            "id": call.id,
            "name": call.name,
            "arguments": call.arguments,
            "status": call.status.value if call.status else None,
        },
    )


def source_added(source: Source) -> SSEEvent:
    return SSEEvent(event=EventType.SOURCE_ADDED, data=source.to_dict())


def usage_update(usage: dict[str, Any]) -> SSEEvent:
    return SSEEvent(event=EventType.USAGE_UPDATE, data=usage)


def thinking_chunk(chunk: str) -> SSEEvent:
    return SSEEvent(event=EventType.THINKING_CHUNK, data={"chunk": chunk})


def content_chunk(chunk: str) -> SSEEvent:
    return SSEEvent(event=EventType.CONTENT_CHUNK, data={"chunk": chunk})


def research_complete(
    report: str,
    sources: list[dict],
    usage: dict[str, Any],
    iterations: int,
) -> SSEEvent:
    return SSEEvent(
        event=EventType.RESEARCH_COMPLETE,
        data={
            "report": report,
            "sources": sources,
            "usage": usage,
            "iterations": iterations,
        },
    )


def citation_progress(progress: CitationModeProgress) -> SSEEvent:
    return SSEEvent(event=EventType.CITATION_PROGRESS, data=progress.to_dict())


def citations_stripped(stripped_text: str, citations: list[ExtractedCitation]) -> SSEEvent:
    return SSEEvent(
        event=EventType.CITATIONS_STRIPPED,
        data={
            "stripped_text": stripped_text,
            "citations": [c.to_dict() for c in citations],
        },
    )


def basis_created(basis: Basis) -> SSEEvent:
    return SSEEvent(event=EventType.BASIS_CREATED, data=basis.to_dict())


def citation_mode_complete(
    stripped_text: str,
    citations: list[ExtractedCitation],
    bases: list[Basis],
    confidence: dict[str, Any],
) -> SSEEvent:
    return SSEEvent(
        event=EventType.CITATION_MODE_COMPLETE,
        data={
            "stripped_text": stripped_text,
            "citations": [c.to_dict() for c in citations],
            "bases": [b.to_dict() for b in bases],
            "confidence": confidence,
        },
    )


def excerpt_loaded(url: str, claim_text: str, result: ExcerptResult) -> SSEEvent:
    return SSEEvent(
        event=EventType.EXCERPT_LOADED,
        data={"url": url, "claim_text": claim_text, **result.to_dict()},
    )


def error(message: str, stage: str | None = None) -> SSEEvent:
    data: dict[str, Any] = {"message": message}
    if stage:
        data["stage"] = stage
    return SSEEvent(event=EventType.ERROR, data=data)
