"""Removal of inline ``[title](url)`` citations from a finished answer.

The stripped text is what Citation Mode analyses; each removed link is kept
as an ``ExtractedCitation`` whose position refers to the original text, and
``position_map`` translates those positions into the stripped text.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from agentic_search.models.citation import ExtractedCitation
from agentic_search.tools.web_utils import is_valid_url

MARKDOWN_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
SENTENCE_END_CHARS = ".!?\n"


@dataclass
class StripCitationsResult:
    stripped_text: str
    citations: list[ExtractedCitation] = field(default_factory=list)
    position_map: dict[int, int] = field(default_factory=dict)


def _find_citations(text: str) -> list[ExtractedCitation]:
    citations: list[ExtractedCitation] = []
    for match in MARKDOWN_LINK_RE.finditer(text):
        url = match.group(2)
        if not is_valid_url(url):
            continue
        citations.append(
            ExtractedCitation(
                index=len(citations),
                url=url,
                title=match.group(1),
                full_match=match.group(0),
                position=match.start(),
            )
        )
    return citations


def _rewrite(text: str, keep_text: bool) -> StripCitationsResult:
    citations = _find_citations(text)
    if not citations:
        return StripCitationsResult(stripped_text=text)

    parts: list[str] = []
    position_map: dict[int, int] = {}
    cursor = 0
    delta = 0
    for citation in citations:
        replacement = citation.title if keep_text else ""
        position_map[citation.position] = citation.position - delta
        parts.append(text[cursor : citation.position])
        parts.append(replacement)
        cursor = citation.position + len(citation.full_match)
        delta += len(citation.full_match) - len(replacement)
    parts.append(text[cursor:])

    return StripCitationsResult(
        stripped_text="".join(parts),
        citations=citations,
        position_map=position_map,
    )


def strip_citations(text: str) -> StripCitationsResult:
    """Remove citation links entirely, leaving room for basis markers."""
    return _rewrite(text, keep_text=False)


def strip_citations_keep_text(text: str) -> StripCitationsResult:
    """Replace each citation link by its visible title."""
    return _rewrite(text, keep_text=True)


def find_claim_for_citation(text: str, position: int, max_length: int = 200) -> str:
    """Return the sentence fragment that precedes a citation at ``position``.

    Looks back at most ``max_length`` characters for a sentence boundary.
    """
    start = position
    for i in range(position - 1, -1, -1):
        if position - i >= max_length:
            break
        if text[i] in SENTENCE_END_CHARS:
            start = i + 1
            break
        if i == 0:
            start = 0
    claim = text[start:position].strip()
    return claim.lstrip(" \t\r\n,;:")


def group_citations_by_claim(
    text: str,
    citations: list[ExtractedCitation],
) -> dict[str, list[ExtractedCitation]]:
    """Group citations by the sentence fragment that precedes each of them."""
    groups: dict[str, list[ExtractedCitation]] = {}
    for citation in sorted(citations, key=lambda c: c.position):
        claim = find_claim_for_citation(text, citation.position)
        groups.setdefault(claim, []).append(citation)
    return groups
