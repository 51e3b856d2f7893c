"""Session state machines for a research run and a Citation Mode run.

Each state is an immutable dataclass; ``transition_research`` and
``transition_citation`` return the next state for an action and raise
``InvalidTransition`` when the current state does not accept it.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Union

from agentic_search.errors import InvalidTransition
from agentic_search.models.citation import Basis, CitationModeProgress, ExtractedCitation
from agentic_search.models.events import EventType, SSEEvent
from agentic_search.models.messages import ToolCall, ToolCallStatus


# --- Research session ---


@dataclass(frozen=True)
class ResearchIdle:
    model: str


@dataclass(frozen=True)
class ResearchRunning:
    model: str
    query: str
    tool_calls: tuple[ToolCall, ...] = ()
    thinking: str = ""
    content: str = ""
    sources: tuple[dict[str, Any], ...] = ()
    usage: dict[str, Any] = field(default_factory=dict)
    progress: str | None = None


@dataclass(frozen=True)
class ResearchComplete:
    model: str
    query: str
    report: str
    tool_calls: tuple[ToolCall, ...] = ()
    thinking: str = ""
    sources: tuple[dict[str, Any], ...] = ()
    usage: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResearchFailed:
    model: str
    query: str
    error: str
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    sources: tuple[dict[str, Any], ...] = ()

    @property
    def retry_query(self) -> str:
        return self.query


ResearchState = Union[ResearchIdle, ResearchRunning, ResearchComplete, ResearchFailed]


@dataclass(frozen=True)
class StartResearch:
    query: str
    model: str | None = None


@dataclass(frozen=True)
class ToolCallUpdated:
    call: ToolCall


@dataclass(frozen=True)
class ThinkingReceived:
    chunk: str


@dataclass(frozen=True)
class ContentReceived:
    chunk: str


@dataclass(frozen=True)
class SourceAdded:
    source: dict[str, Any]


@dataclass(frozen=True)
class UsageUpdated:
    usage: dict[str, Any]


@dataclass(frozen=True)
class ProgressMessage:
    message: str


@dataclass(frozen=True)
class ResearchFinished:
    report: str
    sources: tuple[dict[str, Any], ...] = ()
    usage: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResearchErrored:
    message: str


@dataclass(frozen=True)
class SelectModel:
    model: str


@dataclass(frozen=True)
class Reset:
    pass


def _upsert_call(calls: tuple[ToolCall, ...], call: ToolCall) -> tuple[ToolCall, ...]:
    for i, existing in enumerate(calls):
        if existing.id == call.id:
            return calls[:i] + (call,) + calls[i + 1 :]
    return calls + (call,)


def _add_source(sources: tuple[dict[str, Any], ...], source: dict[str, Any]) -> tuple[dict[str, Any], ...]:
    if any(s.get("url") == source.get("url") for s in sources):
        return sources
    return sources + (source,)


def transition_research(state: ResearchState, action: object) -> ResearchState:
    if isinstance(action, Reset):
        return ResearchIdle(model=state.model)

    if isinstance(state, ResearchRunning):
        if isinstance(action, ToolCallUpdated):
            return replace(state, tool_calls=_upsert_call(state.tool_calls, action.call))
        if isinstance(action, ThinkingReceived):
            return replace(state, thinking=state.thinking + action.chunk)
        if isinstance(action, ContentReceived):
            return replace(state, content=state.content + action.chunk)
        if isinstance(action, SourceAdded):
            return replace(state, sources=_add_source(state.sources, action.source))
        if isinstance(action, UsageUpdated):
            return replace(state, usage={**state.usage, **action.usage})
        if isinstance(action, ProgressMessage):
            return replace(state, progress=action.message)
        if isinstance(action, ResearchFinished):
            return ResearchComplete(
                model=state.model,
                query=state.query,
                report=action.report or state.content,
                tool_calls=state.tool_calls,
                thinking=state.thinking,
                sources=tuple(action.sources) or state.sources,
                usage={**state.usage, **action.usage},
            )
        if isinstance(action, ResearchErrored):
            return ResearchFailed(
                model=state.model,
                query=state.query,
                error=action.message,
                content=state.content,
                tool_calls=state.tool_calls,
                sources=state.sources,
            )
        raise InvalidTransition(state, action)

    # Idle, Complete and Failed accept a new run or a model change.
    if isinstance(action, StartResearch):
        if not action.query.strip():
            raise InvalidTransition(state, action)
        return ResearchRunning(model=action.model or state.model, query=action.query)
    if isinstance(action, SelectModel):
        return replace(state, model=action.model)
    raise InvalidTransition(state, action)


def research_action_for_event(event: SSEEvent) -> object | None:
    """Translate an orchestrator event into a session action (``None`` if irrelevant)."""
    data = event.data
    if event.event == EventType.RESEARCH_STARTED:
        return ProgressMessage("Research started")
    if event.event == EventType.TOOL_CALL:
        status = data.get("status")
        return ToolCallUpdated(
            ToolCall(
                id=data.get("id", ""),
                name=data.get("name", ""),
                arguments=data.get("arguments", ""),
                status=ToolCallStatus(status) if status else None,
            )
        )
    if event.event == EventType.SOURCE_ADDED:
        return SourceAdded(dict(data))
    if event.event == EventType.USAGE_UPDATE:
        return UsageUpdated(dict(data))
    if event.event == EventType.THINKING_CHUNK:
        return ThinkingReceived(data.get("chunk", ""))
    if event.event == EventType.CONTENT_CHUNK:
        return ContentReceived(data.get("chunk", ""))
    if event.event == EventType.RESEARCH_COMPLETE:
        return ResearchFinished(
            report=data.get("report", ""),
            sources=tuple(data.get("sources") or ()),
            usage=dict(data.get("usage") or {}),
        )
    if event.event == EventType.ERROR:
        return ResearchErrored(data.get("message", "Research failed"))
    return None


# --- Citation session ---


@dataclass(frozen=True)
class CitationIdle:
    pass


@dataclass(frozen=True)
class CitationProcessing:
    progress: CitationModeProgress | None = None
    stripped_text: str = ""
    citations: tuple[ExtractedCitation, ...] = ()
    bases: tuple[Basis, ...] = ()


@dataclass(frozen=True)
class CitationReady:
    stripped_text: str
    citations: tuple[ExtractedCitation, ...] = ()
    bases: tuple[Basis, ...] = ()
    confidence: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CitationFailed:
    error: str
    stripped_text: str = ""
    citations: tuple[ExtractedCitation, ...] = ()
    bases: tuple[Basis, ...] = ()


CitationState = Union[CitationIdle, CitationProcessing, CitationReady, CitationFailed]


@dataclass(frozen=True)
class StartCitationMode:
    pass


@dataclass(frozen=True)
class ProgressUpdated:
    progress: CitationModeProgress


@dataclass(frozen=True)
class CitationsStripped:
    stripped_text: str
    citations: tuple[ExtractedCitation, ...] = ()


@dataclass(frozen=True)
class BasisCreated:
    basis: Basis


@dataclass(frozen=True)
class CitationModeFinished:
    stripped_text: str
    citations: tuple[ExtractedCitation, ...] = ()
    bases: tuple[Basis, ...] = ()
    confidence: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CitationModeErrored:
    message: str


@dataclass(frozen=True)
class ToggleBasisExpanded:
    basis_id: str


@dataclass(frozen=True)
class RemoveBasis:
    basis_id: str


@dataclass(frozen=True)
class ExcerptLoading:
    basis_id: str
    url: str


@dataclass(frozen=True)
class ExcerptLoaded:
    basis_id: str
    url: str
    excerpt: str


@dataclass(frozen=True)
class ExcerptFailed:
    basis_id: str
    url: str
    error: str


_BASIS_ACTIONS = (ToggleBasisExpanded, RemoveBasis, ExcerptLoading, ExcerptLoaded, ExcerptFailed)


def _update_basis(
    bases: tuple[Basis, ...],
    basis_id: str,
    mutate: Callable[[Basis], None],
) -> tuple[Basis, ...]:
    updated: list[Basis] = []
    for basis in bases:
        if basis.id == basis_id:
            basis = copy.deepcopy(basis)
            mutate(basis)
        updated.append(basis)
    return tuple(updated)


def _apply_basis_action(bases: tuple[Basis, ...], action: object) -> tuple[Basis, ...]:
    if isinstance(action, ToggleBasisExpanded):
        return _update_basis(bases, action.basis_id, lambda b: setattr(b, "is_expanded", not b.is_expanded))
    if isinstance(action, RemoveBasis):
        return _update_basis(bases, action.basis_id, lambda b: setattr(b, "is_removed", True))
    if isinstance(action, ExcerptLoading):
        return _update_basis(bases, action.basis_id, lambda b: b.mark_excerpt_loading(action.url))
    if isinstance(action, ExcerptLoaded):
        return _update_basis(bases, action.basis_id, lambda b: b.attach_excerpt(action.url, action.excerpt))
    if isinstance(action, ExcerptFailed):
        return _update_basis(bases, action.basis_id, lambda b: b.mark_excerpt_error(action.url, action.error))
    raise TypeError(f"Not a basis action: {action!r}")


def transition_citation(state: CitationState, action: object) -> CitationState:
    if isinstance(action, Reset):
        return CitationIdle()

    if isinstance(action, _BASIS_ACTIONS):
        if isinstance(state, CitationIdle) or not state.bases:
            raise InvalidTransition(state, action)
        return replace(state, bases=_apply_basis_action(state.bases, action))

    if isinstance(state, CitationProcessing):
        if isinstance(action, ProgressUpdated):
            return replace(state, progress=action.progress)
        if isinstance(action, CitationsStripped):
            return replace(state, stripped_text=action.stripped_text, citations=tuple(action.citations))
        if isinstance(action, BasisCreated):
            return replace(state, bases=state.bases + (action.basis,))
        if isinstance(action, CitationModeFinished):
            return CitationReady(
                stripped_text=action.stripped_text,
                citations=tuple(action.citations),
                bases=tuple(action.bases) or state.bases,
                confidence=dict(action.confidence),
            )
        if isinstance(action, CitationModeErrored):
            return CitationFailed(
                error=action.message,
                stripped_text=state.stripped_text,
                citations=state.citations,
                bases=state.bases,
            )
        raise InvalidTransition(state, action)

    if isinstance(action, StartCitationMode):
        return CitationProcessing()
    raise InvalidTransition(state, action)


def citation_action_for_event(event: SSEEvent) -> object | None:
    """Translate a Citation Mode event into a session action (``None`` if irrelevant)."""
    data = event.data
    if event.event == EventType.CITATION_PROGRESS:
        progress = CitationModeProgress.from_dict(data)
        if progress.phase.value == "error":
            return CitationModeErrored(progress.message)
        return ProgressUpdated(progress)
    if event.event == EventType.CITATIONS_STRIPPED:
        return CitationsStripped(
            stripped_text=data.get("stripped_text", ""),
            citations=tuple(ExtractedCitation.from_dict(c) for c in data.get("citations") or ()),
        )
    if event.event == EventType.BASIS_CREATED:
        return BasisCreated(Basis.from_dict(data))
    if event.event == EventType.CITATION_MODE_COMPLETE:
        return CitationModeFinished(
            stripped_text=data.get("stripped_text", ""),
            citations=tuple(ExtractedCitation.from_dict(c) for c in data.get("citations") or ()),
            bases=tuple(Basis.from_dict(b) for b in data.get("bases") or ()),
            confidence=dict(data.get("confidence") or {}),
        )
    if event.event == EventType.ERROR:
        return CitationModeErrored(data.get("message", "Citation mode failed"))
    return None
