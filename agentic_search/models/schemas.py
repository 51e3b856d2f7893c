from __future__ import annotations

from pydantic import BaseModel, Field


# --- Requests ---


class ResearchRequest(BaseModel):
    query: str = Field(min_length=1)
    model: str | None = None


class SourceInfoModel(BaseModel):
    url: str
    title: str = ""
    excerpt: str | None = None


class CitationModeRequest(BaseModel):
    response: str = Field(min_length=1)
    sources: list[SourceInfoModel] = Field(default_factory=list)
    model: str | None = None


class SourcePositionModel(BaseModel):
    url: str
    title: str = ""
    domain: str = ""
    start_text: str | None = None
    end_text: str | None = None
    excerpt: str | None = None
    fetched_at: float | None = None
    is_loading: bool = False
    fetch_error: str | None = None


class TextRangeModel(BaseModel):
    start: int
    end: int


class BasisModel(BaseModel):
    id: str
    claim_text: str
    claim_range: TextRangeModel
    confidence: str = "low"
    reasoning: str = ""
    sources: list[SourcePositionModel] = Field(default_factory=list)
    is_expanded: bool = False
    is_removed: bool = False


class ExcerptRequest(BaseModel):
    source: SourcePositionModel
    claim_text: str
    model: str | None = None


class ExcerptBatchItem(BaseModel):
    source: SourcePositionModel
    claim_text: str


class ExcerptBatchRequest(BaseModel):
    items: list[ExcerptBatchItem] = Field(default_factory=list)
    model: str | None = None


class ReanalyzeRequest(BaseModel):
    basis: BasisModel
    sources: list[SourceInfoModel] = Field(default_factory=list)
    model: str | None = None


# --- Responses ---


class ModelInfo(BaseModel):
    id: str
    name: str
    provider: str


class ModelsResponse(BaseModel):
    models: list[ModelInfo]


class ExcerptResponse(BaseModel):
    url: str
    claim_text: str
    excerpt: str
    confidence: str
    note: str | None = None


class ExcerptBatchResponse(BaseModel):
    results: list[ExcerptResponse]


class CacheClearedResponse(BaseModel):
    cleared: int
