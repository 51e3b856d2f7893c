"""Citation Mode types.

A Basis replaces a plain inline citation with a richer object: a confidence
level, a short justification and the sources that support the claim, each of
which may later carry a verbatim excerpt fetched on demand.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class ConfidenceLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def weight(self) -> int:
        return CONFIDENCE_WEIGHTS[self]

    @property
    def description(self) -> str:
        return CONFIDENCE_DESCRIPTIONS[self]

    @property
    def rank(self) -> int:
        return _CONFIDENCE_ORDER.index(self)

    # str ordering would put "high" before "low"; compare by rank instead.
    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ConfidenceLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, ConfidenceLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, ConfidenceLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, ConfidenceLevel):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def coerce(cls, value: Any) -> "ConfidenceLevel":
        """Map anything outside the three recognised levels to ``LOW``."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.LOW


_CONFIDENCE_ORDER = (ConfidenceLevel.LOW, ConfidenceLevel.MEDIUM, ConfidenceLevel.HIGH)

CONFIDENCE_WEIGHTS = {
    ConfidenceLevel.HIGH: 100,
    ConfidenceLevel.MEDIUM: 60,
    ConfidenceLevel.LOW: 20,
}

CONFIDENCE_DESCRIPTIONS = {
    ConfidenceLevel.HIGH: "Primary source with direct evidence",
    ConfidenceLevel.MEDIUM: "Secondary source or indirect evidence",
    ConfidenceLevel.LOW: "Weak support or tangentially related",
}


class CitationModePhase(StrEnum):
    IDLE = "idle"
    STRIPPING = "stripping"
    ANALYZING = "analyzing"
    RESEARCHING = "researching"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class TextRange:
    """Half-open character range ``[start, end)``."""

    start: int
    end: int

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "TextRange":
        return cls(start=int(payload["start"]), end=int(payload["end"]))

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True, slots=True)
class Claim:
    id: str
    text: str
    range: TextRange

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text, "range": self.range.to_dict()}


@dataclass(frozen=True, slots=True)
class ExtractedCitation:
    index: int
    url: str
    title: str
    full_match: str
    position: int  # offset of the link in the original, unedited text

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ExtractedCitation":
        return cls(
            index=int(payload["index"]),
            url=payload["url"],
            title=payload["title"],
            full_match=payload["full_match"],
            position=int(payload["position"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "url": self.url,
            "title": self.title,
            "full_match": self.full_match,
            "position": self.position,
        }


@dataclass(frozen=True, slots=True)
class SourceInfo:
    """A research source as offered to the citation analysis prompts."""

    url: str
    title: str
    excerpt: str | None = None

    def to_prompt_dict(self) -> dict[str, str]:
        data = {"url": self.url, "title": self.title}
        if self.excerpt:
            data["excerpt"] = self.excerpt
        return data


@dataclass(slots=True)
class SourcePosition:
    url: str
    title: str
    domain: str
    start_text: str | None = None
    end_text: str | None = None
    excerpt: str | None = None
    fetched_at: float | None = None
    is_loading: bool = False
    fetch_error: str | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SourcePosition":
        return cls(
            url=payload["url"],
            title=payload.get("title") or payload["url"],
            domain=payload.get("domain") or "",
            start_text=payload.get("start_text"),
            end_text=payload.get("end_text"),
            excerpt=payload.get("excerpt"),
            fetched_at=payload.get("fetched_at"),
            is_loading=bool(payload.get("is_loading", False)),
            fetch_error=payload.get("fetch_error"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "domain": self.domain,
            "start_text": self.start_text,
            "end_text": self.end_text,
            "excerpt": self.excerpt,
            "fetched_at": self.fetched_at,
            "is_loading": self.is_loading,
            "fetch_error": self.fetch_error,
        }


@dataclass(slots=True)
class Basis:
    id: str
    claim_text: str
    claim_range: TextRange
    confidence: ConfidenceLevel
    reasoning: str
    sources: list[SourcePosition] = field(default_factory=list)
    is_expanded: bool = False
    is_removed: bool = False

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Basis":
        return cls(
            id=payload["id"],
            claim_text=payload["claim_text"],
            claim_range=TextRange.from_dict(payload["claim_range"]),
            confidence=ConfidenceLevel.coerce(payload.get("confidence")),
            reasoning=payload.get("reasoning") or "",
            sources=[SourcePosition.from_dict(s) for s in payload.get("sources") or []],
            is_expanded=bool(payload.get("is_expanded", False)),
            is_removed=bool(payload.get("is_removed", False)),
        )

    def source(self, url: str) -> SourcePosition | None:
        return next((s for s in self.sources if s.url == url), None)

    def mark_excerpt_loading(self, url: str) -> None:
        source = self.source(url)
        if source is not None:
            source.is_loading = True
            source.fetch_error = None

    def attach_excerpt(self, url: str, excerpt: str) -> None:
        source = self.source(url)
        if source is not None:
            source.excerpt = excerpt
            source.fetched_at = time.time()
            source.is_loading = False
            source.fetch_error = None

    def mark_excerpt_error(self, url: str, error: str) -> None:
        source = self.source(url)
        if source is not None:
            source.is_loading = False
            source.fetch_error = error

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "claim_text": self.claim_text,
            "claim_range": self.claim_range.to_dict(),
            "confidence": self.confidence.value,
            "reasoning": self.reasoning,
            "sources": [s.to_dict() for s in self.sources],
            "is_expanded": self.is_expanded,
            "is_removed": self.is_removed,
        }


@dataclass(frozen=True, slots=True)
class CitationModeProgress:
    phase: CitationModePhase
    current_step: int
    total_steps: int
    message: str

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CitationModeProgress":
        return cls(
            phase=CitationModePhase(payload["phase"]),
            current_step=int(payload["current_step"]),
            total_steps=int(payload["total_steps"]),
            message=payload.get("message") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "current_step": self.current_step,
            "total_steps": self.total_steps,
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class ExcerptResult:
    excerpt: str
    confidence: ConfidenceLevel
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "excerpt": self.excerpt,
            "confidence": self.confidence.value,
            "note": self.note,
        }
