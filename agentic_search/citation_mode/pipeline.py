"""Citation Mode: rebuild the citations of a finished answer as confidence-scored bases.

Flow:
  1. Strip inline ``[title](url)`` links, keeping their visible text
  2. Ask the model for the factual claims in the stripped text
  3. Filter and merge the claims
  4. Build one basis per claim against the research sources
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Iterable

from loguru import logger

from agentic_search.citation_mode.basis_builder import BasisBuilder
from agentic_search.citation_mode.claim_extractor import extract_claims, filter_claims, merge_claims
from agentic_search.citation_mode.strip_citations import strip_citations_keep_text
from agentic_search.config import settings
from agentic_search.llm_client import OpenRouterClient
from agentic_search.models.citation import (
    Basis,
    CitationModePhase,
    CitationModeProgress,
    ConfidenceLevel,
    SourceInfo,
)
from agentic_search.models.events import SSEEvent
from agentic_search.services import logger as log_service
from agentic_search.services import streaming

TOTAL_STEPS = 4


@dataclass(frozen=True)
class ConfidenceSummary:
    score: int
    distribution: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "distribution": dict(self.distribution)}


def _progress(phase: CitationModePhase, step: int, message: str) -> SSEEvent:
    return streaming.citation_progress(
        CitationModeProgress(phase=phase, current_step=step, total_steps=TOTAL_STEPS, message=message)
    )


def to_source_infos(sources: Iterable[Any]) -> list[SourceInfo]:
    """Accept research ``Source`` objects, ``SourceInfo`` or plain dicts."""
    infos: list[SourceInfo] = []
    for source in sources:
        if isinstance(source, SourceInfo):
            infos.append(source)
        elif isinstance(source, dict):
            url = source.get("url")
            if url:
                infos.append(
                    SourceInfo(url=url, title=source.get("title") or url, excerpt=source.get("excerpt"))
                )
        else:
            infos.append(SourceInfo(url=source.url, title=source.title))
    return infos


async def run_citation_mode(
    response: str,
    sources: Iterable[Any],
    *,
    client: OpenRouterClient,
    model: str | None = None,
    batch_size: int | None = None,
) -> AsyncGenerator[SSEEvent, None]:
    """Yield progress, one ``basis_created`` per claim, then ``citation_mode_complete``.

    Claim extraction failures are fatal: an error progress event is yielded and
    the exception propagates. Bases built before a failure were already yielded.
    """
    try:
        yield _progress(CitationModePhase.STRIPPING, 0, "Analyzing existing citations...")
        stripped = strip_citations_keep_text(response)
        yield streaming.citations_stripped(stripped.stripped_text, stripped.citations)

        yield _progress(CitationModePhase.ANALYZING, 1, "Identifying factual claims...")
        raw_claims = await extract_claims(stripped.stripped_text, client=client, model=model)
        claims = merge_claims(
            filter_claims(raw_claims, min_length=settings.claim_min_length),
            gap=settings.claim_merge_gap,
        )
        yield _progress(CitationModePhase.ANALYZING, 2, f"Found {len(claims)} claims to verify...")

        builder = BasisBuilder(client, model, batch_size=batch_size or settings.citation_batch_size)
        async for event in builder.build_bases(claims, to_source_infos(sources)):
            yield event

        bases = sort_bases_by_position(builder.bases)
        yield _progress(CitationModePhase.COMPLETE, TOTAL_STEPS, f"Enhanced {len(bases)} citations")
        summary = calculate_overall_confidence(bases)
        log_service.log_event(
            "citation_mode_complete",
            "Citation Mode finished",
            claims=len(claims),
            bases=len(bases),
            score=summary.score,
        )
        yield streaming.citation_mode_complete(
            stripped.stripped_text,
            stripped.citations,
            bases,
            summary.to_dict(),
        )
    except Exception as exc:
        message = str(exc) or "Citation mode failed"
        logger.warning(f"Citation Mode failed: {message}")
        yield _progress(CitationModePhase.ERROR, 0, message)
        raise


def calculate_overall_confidence(bases: list[Basis]) -> ConfidenceSummary:
    """Weighted mean of basis confidences (high=100, medium=60, low=20), rounded."""
    distribution = {"high": 0, "medium": 0, "low": 0}
    if not bases:
        return ConfidenceSummary(score=0, distribution=distribution)
    total = 0
    for basis in bases:
        distribution[basis.confidence.value] += 1
        total += basis.confidence.weight
    return ConfidenceSummary(score=int(total / len(bases) + 0.5), distribution=distribution)


def get_bases_needing_attention(bases: list[Basis]) -> list[Basis]:
    """Bases with low confidence or no sources at all."""
    return [b for b in bases if b.confidence == ConfidenceLevel.LOW or not b.sources]


def sort_bases_by_position(bases: list[Basis]) -> list[Basis]:
    return sorted(bases, key=lambda b: b.claim_range.start)
