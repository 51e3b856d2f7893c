from __future__ import annotations

import json
import re
from typing import Any

from loguru import logger

from agentic_search.errors import ClaimExtractionError, ProviderError
from agentic_search.llm_client import OpenRouterClient
from agentic_search.models.citation import Claim, TextRange
from agentic_search.services.prompt_store import render_pair

CLAIM_EXTRACTION_TEMPERATURE = 0.1
FUZZY_LOOKAHEAD_CHARS = 50
FUZZY_EXTRA_CHARS = 20
SENTENCE_SPLIT_RE = re.compile(r"[.!?\n]")
WHITESPACE_RE = re.compile(r"\s+")


async def extract_claims(text: str, *, client: OpenRouterClient, model: str | None) -> list[Claim]:
    """Ask the model for the factual claims in ``text`` and validate their offsets."""
    try:
        payload = await client.complete_json(
            model,
            *render_pair("claim_extraction", response_text=text),
            temperature=CLAIM_EXTRACTION_TEMPERATURE,
            caller="claim_extraction",
        )
    except json.JSONDecodeError as exc:
        raise ClaimExtractionError(f"Failed to parse claim extraction response: {exc}") from exc
    except ProviderError as exc:
        raise ClaimExtractionError(f"Failed to extract claims: {exc}") from exc

    claims = validate_claims(payload, text)
    logger.info(f"Claim extraction kept {len(claims)} claims")
    return claims


def validate_claims(payload: Any, text: str) -> list[Claim]:
    """Turn the model's ``{"claims": [...]}`` payload into claims whose text matches ``text``.

    Each accepted claim satisfies ``claim.text == text[claim.range.start:claim.range.end]``.
    Entries that cannot be repaired are dropped.
    """
    raw_claims = payload.get("claims") if isinstance(payload, dict) else None
    if not isinstance(raw_claims, list):
        return []

    valid: list[Claim] = []
    seen_ids: set[str] = set()
    for raw in raw_claims:
        if not isinstance(raw, dict):
            continue
        repaired = _repair_claim(raw, text)
        if repaired is None:
            continue
        claim_text, start, end = repaired

        claim_id = raw.get("id")
        if not isinstance(claim_id, str) or not claim_id or claim_id in seen_ids:
            claim_id = _next_claim_id(len(valid) + 1, seen_ids)
        seen_ids.add(claim_id)
        valid.append(Claim(id=claim_id, text=claim_text, range=TextRange(start, end)))
    return valid


def _next_claim_id(n: int, taken: set[str]) -> str:
    while f"claim_{n}" in taken:
        n += 1
    return f"claim_{n}"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _repair_claim(raw: dict[str, Any], text: str) -> tuple[str, int, int] | None:
    claim_text = raw.get("text")
    start = raw.get("start")
    end = raw.get("end")
    if not isinstance(claim_text, str) or not claim_text:
        return None
    if not _is_int(start) or not _is_int(end):
        return None
    if start < 0 or end > len(text) or start >= end:
        return None

    if text[start:end] == claim_text:
        return claim_text, start, end

    found = text.find(claim_text)
    if found != -1:
        return claim_text, found, found + len(claim_text)

    fuzzy = find_fuzzy_match(text, claim_text)
    if fuzzy is not None:
        return fuzzy
    logger.debug(f"Discarding claim that could not be located: {claim_text[:80]!r}")
    return None


def _normalize(value: str) -> str:
    return WHITESPACE_RE.sub(" ", value.lower())


def find_fuzzy_match(text: str, search: str) -> tuple[str, int, int] | None:
    """Best-effort location of ``search`` in ``text`` ignoring case and spacing.

    Tries the leading words of ``search`` with a shrinking window. The first
    position where the window matches is extended up to the claim length plus
    a little slack and cut at the next sentence terminator.
    """
    words = _normalize(search).strip().split(" ")
    if not words or words == [""]:
        return None
    min_words = max(1, len(words) - 2)

    for window in range(len(words), min_words - 1, -1):
        needle = " ".join(words[:window])
        for i in range(0, len(text) - len(needle) + 1):
            candidate = text[i : i + len(needle) + FUZZY_LOOKAHEAD_CHARS]
            if not _normalize(candidate).startswith(needle):
                continue
            end_index = i + min(len(search) + FUZZY_EXTRA_CHARS, len(candidate))
            actual = SENTENCE_SPLIT_RE.split(text[i:end_index], maxsplit=1)[0]
            if actual and len(actual) >= len(needle):
                return actual, i, i + len(actual)
    return None


def filter_claims(claims: list[Claim], min_length: int = 10) -> list[Claim]:
    """Drop claims that are too short, have no word character, or are just a number."""
    kept: list[Claim] = []
    for claim in claims:
        if len(claim.text) < min_length:
            continue
        if not re.search(r"\w", claim.text):
            continue
        if claim.text.strip().isdigit():
            continue
        kept.append(claim)
    return kept


def merge_claims(claims: list[Claim], gap: int = 10) -> list[Claim]:
    """Merge claims that overlap or sit within ``gap`` characters of each other.

    The earlier claim's id and text represent the merged range.
    """
    if len(claims) <= 1:
        return list(claims)

    ordered = sorted(claims, key=lambda c: c.range.start)
    merged: list[Claim] = []
    current = ordered[0]
    for nxt in ordered[1:]:
        if nxt.range.start <= current.range.end + gap:
            current = Claim(
                id=current.id,
                text=current.text,
                range=TextRange(current.range.start, max(current.range.end, nxt.range.end)),
            )
        else:
            merged.append(current)
            current = nxt
    merged.append(current)
    return merged
