from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    RESEARCH_STARTED = "research_started"
    TOOL_CALL = "tool_call"
    SOURCE_ADDED = "source_added"
    USAGE_UPDATE = "usage_update"
    THINKING_CHUNK = "thinking_chunk"
    CONTENT_CHUNK = "content_chunk"
    RESEARCH_COMPLETE = "research_complete"
    CITATION_PROGRESS = "citation_progress"
    CITATIONS_STRIPPED = "citations_stripped"
    BASIS_CREATED = "basis_created"
    CITATION_MODE_COMPLETE = "citation_mode_complete"
    EXCERPT_LOADED = "excerpt_loaded"
    ERROR = "error"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)
