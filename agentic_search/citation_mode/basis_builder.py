from __future__ import annotations

import json
import uuid
from typing import Any, AsyncGenerator

from loguru import logger

from agentic_search.llm_client import OpenRouterClient
from agentic_search.models.citation import (
    Basis,
    CitationModePhase,
    CitationModeProgress,
    Claim,
    ConfidenceLevel,
    SourceInfo,
    SourcePosition,
)
from agentic_search.models.events import SSEEvent
from agentic_search.services import streaming
from agentic_search.services.prompt_store import render_pair
from agentic_search.tools.web_utils import extract_domain

BASIS_TEMPERATURE = 0.2
FALLBACK_REASONING = "Unable to analyze citation quality. Manual review recommended."
NO_REASONING = "No reasoning provided"


def _basis_id() -> str:
    return f"basis_{uuid.uuid4().hex[:12]}"


def _pick(entry: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = entry.get(key)
        if value is not None:
            return value
    return None


def _sources_json(sources: list[SourceInfo]) -> str:
    return json.dumps([s.to_prompt_dict() for s in sources], indent=2)


def _source_positions(raw_sources: Any, available: list[SourceInfo]) -> list[SourcePosition]:
    """Map model-reported sources onto known ones; entries without a URL are dropped."""
    if not isinstance(raw_sources, list):
        return []
    positions: list[SourcePosition] = []
    for entry in raw_sources:
        if not isinstance(entry, dict):
            continue
        url = entry.get("url")
        if not isinstance(url, str) or not url.strip():
            continue
        title = entry.get("title") if isinstance(entry.get("title"), str) else None
        matched = next(
            (s for s in available if s.url == url or (title and s.title == title)),
            None,
        )
        positions.append(
            SourcePosition(
                url=url,
                title=title or (matched.title if matched else None) or extract_domain(url),
                domain=extract_domain(url),
                start_text=_pick(entry, "startText", "start_text"),
                end_text=_pick(entry, "endText", "end_text"),
                excerpt=matched.excerpt if matched else None,
            )
        )
    return positions


def _basis_from_analysis(
    claim: Claim,
    analysis: dict[str, Any],
    available: list[SourceInfo],
    *,
    basis_id: str | None = None,
) -> Basis:
    reasoning = analysis.get("reasoning")
    return Basis(
        id=basis_id or _basis_id(),
        claim_text=claim.text,
        claim_range=claim.range,
        confidence=ConfidenceLevel.coerce(analysis.get("confidence")),
        reasoning=reasoning if isinstance(reasoning, str) and reasoning.strip() else NO_REASONING,
        sources=_source_positions(
            _pick(analysis, "sources", "supportingSources", "supporting_sources"), available
        ),
    )


def fallback_basis(claim: Claim, sources: list[SourceInfo], *, basis_id: str | None = None) -> Basis:
    """Low-confidence basis pointing at the first available source, if any."""
    return Basis(
        id=basis_id or _basis_id(),
        claim_text=claim.text,
        claim_range=claim.range,
        confidence=ConfidenceLevel.LOW,
        reasoning=FALLBACK_REASONING,
        sources=[
            SourcePosition(
                url=s.url,
                title=s.title,
                domain=extract_domain(s.url),
                excerpt=s.excerpt,
            )
            for s in sources[:1]
        ],
    )


class BasisBuilder:
    """Builds one Basis per claim, batching LLM analysis and degrading per claim."""

    def __init__(self, client: OpenRouterClient, model: str | None, *, batch_size: int = 5):
        self.client = client
        self.model = model
        self.batch_size = max(int(batch_size), 1)
        self.bases: list[Basis] = []

    async def build_bases(
        self,
        claims: list[Claim],
        sources: list[SourceInfo],
    ) -> AsyncGenerator[SSEEvent, None]:
        """Yield progress once per batch and ``basis_created`` once per claim, in claim order.

        Every claim yields exactly one basis; the results also accumulate on ``self.bases``.
        """
        self.bases = []
        total = len(claims)
        for i in range(0, total, self.batch_size):
            batch = claims[i : i + self.batch_size]
            upper = min(i + self.batch_size, total)
            yield streaming.citation_progress(
                CitationModeProgress(
                    phase=CitationModePhase.RESEARCHING,
                    current_step=i,
                    total_steps=total,
                    message=f"Analyzing citations {i + 1}-{upper} of {total}...",
                )
            )

            try:
                by_claim = await self._analyze_batch(batch, sources)
            except Exception as exc:
                logger.warning(f"Batch analysis failed, falling back to individual claims: {exc}")
                by_claim = {}

            for claim in batch:
                basis = by_claim.get(claim.id)
                if basis is None:
                    basis = await self._build_or_fallback(claim, sources)
                self.bases.append(basis)
                yield streaming.basis_created(basis)

    async def _analyze_batch(self, batch: list[Claim], sources: list[SourceInfo]) -> dict[str, Basis]:
        payload = await self.client.complete_json(
            self.model,
            *render_pair(
                "batch_analysis",
                claims_json=json.dumps([{"id": c.id, "text": c.text} for c in batch], indent=2),
                sources_json=_sources_json(sources),
            ),
            temperature=BASIS_TEMPERATURE,
            caller="batch_analysis",
        )
        analyses = payload.get("analyses")
        if not isinstance(analyses, list):
            raise ValueError("Invalid batch analysis response format")

        claims_by_id = {c.id: c for c in batch}
        by_claim: dict[str, Basis] = {}
        for analysis in analyses:
            if not isinstance(analysis, dict):
                continue
            claim = claims_by_id.get(_pick(analysis, "claimId", "claim_id", "id"))
            if claim is None or claim.id in by_claim:
                continue
            by_claim[claim.id] = _basis_from_analysis(claim, analysis, sources)
        return by_claim

    async def _build_or_fallback(self, claim: Claim, sources: list[SourceInfo]) -> Basis:
        try:
            return await self.build_basis_for_claim(claim, sources)
        except Exception as exc:
            logger.warning(f"Basis building failed for {claim.id}: {exc}")
            return fallback_basis(claim, sources)

    async def build_basis_for_claim(
        self,
        claim: Claim,
        sources: list[SourceInfo],
        *,
        basis_id: str | None = None,
    ) -> Basis:
        """Analyse one claim; unparseable model output yields the fallback basis."""
        try:
            payload = await self.client.complete_json(
                self.model,
                *render_pair(
                    "basis_building",
                    claim_text=claim.text,
                    sources_json=_sources_json(sources),
                ),
                temperature=BASIS_TEMPERATURE,
                caller="basis_building",
            )
        except json.JSONDecodeError:
            return fallback_basis(claim, sources, basis_id=basis_id)
        return _basis_from_analysis(claim, payload, sources, basis_id=basis_id)

    async def reanalyze_basis(self, basis: Basis, sources: list[SourceInfo]) -> Basis:
        """Rebuild ``basis`` preferring sources it does not cite yet.

        The basis id and claim binding are preserved.
        """
        used = {s.url for s in basis.sources}
        unused = [s for s in sources if s.url not in used]
        claim = Claim(id=basis.id, text=basis.claim_text, range=basis.claim_range)
        return await self.build_basis_for_claim(claim, unused or sources, basis_id=basis.id)
