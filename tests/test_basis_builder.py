from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from agentic_search.citation_mode.basis_builder import (
    FALLBACK_REASONING,
    NO_REASONING,
    BasisBuilder,
    fallback_basis,
)
from agentic_search.errors import ProviderError
from agentic_search.models.citation import (
    Basis,
    Claim,
    ConfidenceLevel,
    SourceInfo,
    SourcePosition,
    TextRange,
)
from agentic_search.models.events import EventType

SOURCES = [
    SourceInfo(url="https://www.nasa.gov/sky", title="NASA"),
    SourceInfo(url="https://noaa.gov/air", title="NOAA", excerpt="Rayleigh scattering"),
]


def _claims(n):
    return [Claim(id=f"claim_{i}", text=f"Claim number {i}", range=TextRange(i * 20, i * 20 + 15)) for i in range(1, n + 1)]


def _single(claim_text_confidence="high"):
    return {
        "confidence": claim_text_confidence,
        "reasoning": "Directly supported.",
        "sources": [{"url": "https://noaa.gov/air", "title": "NOAA", "startText": "Blue light"}],
    }


def _client(side_effect):
    client = MagicMock()
    client.complete_json = AsyncMock(side_effect=side_effect)
    return client


async def _collect(builder, claims, sources=SOURCES):
    return [event async for event in builder.build_bases(claims, sources)]


class TestBuildBases:
    """One basis per claim, in claim order, whatever the model does."""

    @pytest.mark.asyncio
    async def test_seven_claims_batch_five_and_two_with_first_batch_failing(self):
        calls = []

        async def respond(model, system, user, *, temperature=None, caller="json"):
            calls.append(caller)
            if caller == "batch_analysis":
                if calls.count("batch_analysis") == 1:
                    raise ProviderError("timeout", provider="openrouter")
                return {
                    "analyses": [
                        {"claimId": "claim_6", **_single("medium")},
                        {"claim_id": "claim_7", **_single("high")},
                    ]
                }
            return _single("low")

        builder = BasisBuilder(_client(respond), "m", batch_size=5)
        events = await _collect(builder, _claims(7))

        progress = [e.data for e in events if e.event == EventType.CITATION_PROGRESS]
        assert [(p["current_step"], p["total_steps"]) for p in progress] == [(0, 7), (5, 7)]
        assert progress[0]["phase"] == "researching"
        assert calls == ["batch_analysis"] + ["basis_building"] * 5 + ["batch_analysis"]

        created = [e.data for e in events if e.event == EventType.BASIS_CREATED]
        assert [b["claim_text"] for b in created] == [f"Claim number {i}" for i in range(1, 8)]
        assert [b["confidence"] for b in created] == ["low"] * 5 + ["medium", "high"]
        assert len(builder.bases) == 7
        assert len({b.id for b in builder.bases}) == 7

    @pytest.mark.asyncio
    async def test_claims_missing_from_batch_are_built_individually(self):
        async def respond(model, system, user, *, temperature=None, caller="json"):
            if caller == "batch_analysis":
                return {"analyses": [{"claimId": "claim_1", **_single("high")}, "junk"]}
            raise json.JSONDecodeError("bad", "", 0)

        builder = BasisBuilder(_client(respond), "m")
        await _collect(builder, _claims(2))

        assert builder.bases[0].confidence == ConfidenceLevel.HIGH
        assert builder.bases[1].confidence == ConfidenceLevel.LOW
        assert builder.bases[1].reasoning == FALLBACK_REASONING

    @pytest.mark.asyncio
    async def test_individual_failure_falls_back(self):
        builder = BasisBuilder(_client(ProviderError("down", provider="openrouter")), "m", batch_size=1)

        await _collect(builder, _claims(1))

        basis = builder.bases[0]
        assert basis.confidence == ConfidenceLevel.LOW
        assert basis.reasoning == FALLBACK_REASONING
        assert [s.url for s in basis.sources] == ["https://www.nasa.gov/sky"]
        assert basis.sources[0].domain == "nasa.gov"

    @pytest.mark.asyncio
    async def test_invalid_batch_shape_triggers_fallback(self):
        responses = [{"analyses": "nope"}, _single("medium")]
        builder = BasisBuilder(_client(responses), "m")

        await _collect(builder, _claims(1))

        assert builder.bases[0].confidence == ConfidenceLevel.MEDIUM

    @pytest.mark.asyncio
    async def test_no_claims_yields_nothing(self):
        builder = BasisBuilder(_client([]), "m")

        assert await _collect(builder, []) == []
        assert builder.bases == []


class TestAnalysisParsing:
    @pytest.mark.asyncio
    async def test_unknown_confidence_and_empty_reasoning_are_coerced(self):
        payload = {"confidence": "certain", "reasoning": "  ", "supportingSources": []}
        builder = BasisBuilder(_client([payload]), "m")

        basis = await builder.build_basis_for_claim(_claims(1)[0], SOURCES)

        assert basis.confidence == ConfidenceLevel.LOW
        assert basis.reasoning == NO_REASONING
        assert basis.sources == []

    @pytest.mark.asyncio
    async def test_sources_without_url_are_dropped_and_known_sources_matched(self):
        payload = {
            "confidence": "HIGH",
            "reasoning": "ok",
            "sources": [
                {"title": "No URL"},
                {"url": ""},
                {"url": "https://noaa.gov/air"},
                {"url": "https://unknown.org/page", "start_text": "a", "end_text": "b"},
            ],
        }
        builder = BasisBuilder(_client([payload]), "m")

        basis = await builder.build_basis_for_claim(_claims(1)[0], SOURCES)

        assert basis.confidence == ConfidenceLevel.HIGH
        assert [s.url for s in basis.sources] == ["https://noaa.gov/air", "https://unknown.org/page"]
        noaa, unknown = basis.sources
        assert noaa.title == "NOAA"
        assert noaa.excerpt == "Rayleigh scattering"
        assert unknown.title == "unknown.org"
        assert (unknown.start_text, unknown.end_text) == ("a", "b")

    def test_fallback_basis_without_sources(self):
        basis = fallback_basis(_claims(1)[0], [])

        assert basis.sources == []
        assert basis.confidence == ConfidenceLevel.LOW


class TestReanalyze:
    @pytest.mark.asyncio
    async def test_keeps_id_and_prefers_unused_sources(self):
        client = _client([_single("high")])
        builder = BasisBuilder(client, "m")
        basis = Basis(
            id="basis_fixed",
            claim_text="The sky is blue",
            claim_range=TextRange(0, 15),
            confidence=ConfidenceLevel.LOW,
            reasoning="weak",
            sources=[SourcePosition(url="https://www.nasa.gov/sky", title="NASA", domain="nasa.gov")],
        )

        updated = await builder.reanalyze_basis(basis, SOURCES)

        assert updated.id == "basis_fixed"
        assert updated.claim_text == "The sky is blue"
        assert updated.claim_range == TextRange(0, 15)
        assert updated.confidence == ConfidenceLevel.HIGH
        user_prompt = client.complete_json.await_args.args[2]
        assert "https://noaa.gov/air" in user_prompt
        assert "https://www.nasa.gov/sky" not in user_prompt

    @pytest.mark.asyncio
    async def test_uses_all_sources_when_every_one_is_cited(self):
        client = _client([_single("medium")])
        builder = BasisBuilder(client, "m")
        basis = Basis(
            id="basis_fixed",
            claim_text="x" * 12,
            claim_range=TextRange(0, 12),
            confidence=ConfidenceLevel.LOW,
            reasoning="",
            sources=[SourcePosition(url=s.url, title=s.title, domain="") for s in SOURCES],
        )

        await builder.reanalyze_basis(basis, SOURCES)

        user_prompt = client.complete_json.await_args.args[2]
        assert "https://www.nasa.gov/sky" in user_prompt
