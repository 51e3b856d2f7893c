from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any

from agentic_search.models.messages import TokenUsage
from agentic_search.services.pricing import ModelPricing, estimate_cost

CHARS_PER_TOKEN = 4


@dataclass
class UsageMetrics:
    """Running token totals and timing for one research run."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    started_at: float = field(default_factory=time.monotonic)
    thinking_started_at: float | None = None
    synthesis_started_at: float | None = None
    ended_at: float | None = None
    response_char_count: int = 0
    simulated_streaming: bool = False

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def add(self, usage: TokenUsage | None) -> None:
        if usage is None:
            return
        self.prompt_tokens += usage.prompt_tokens
        self.completion_tokens += usage.completion_tokens

    def mark_thinking(self) -> None:
        if self.thinking_started_at is None:
            self.thinking_started_at = time.monotonic()

    def mark_content(self, chunk: str) -> None:
        if self.synthesis_started_at is None:
            self.synthesis_started_at = time.monotonic()
        self.response_char_count += len(chunk)

    def finish(self) -> None:
        self.ended_at = time.monotonic()

    def to_dict(self, pricing: ModelPricing | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }
        if self.ended_at is not None:
            synthesis_start = self.synthesis_started_at or self.started_at
            duration_ms = int((self.ended_at - synthesis_start) * 1000)
            estimated_response_tokens = math.ceil(self.response_char_count / CHARS_PER_TOKEN)
            data["total_duration_ms"] = int((self.ended_at - self.started_at) * 1000)
            data["response_char_count"] = self.response_char_count
            data["estimated_response_tokens"] = estimated_response_tokens
            data["simulated_streaming"] = self.simulated_streaming
            if self.thinking_started_at is not None and self.synthesis_started_at is not None:
                data["thinking_duration_ms"] = int(
                    (self.synthesis_started_at - self.thinking_started_at) * 1000
                )
            # Speed is meaningless when the answer was re-chunked locally.
            if not self.simulated_streaming:
                data["duration_ms"] = duration_ms
                data["tokens_per_second"] = (
                    estimated_response_tokens / duration_ms * 1000 if duration_ms > 0 else 0.0
                )
        cost = estimate_cost(self.prompt_tokens, self.completion_tokens, pricing)
        if cost is not None:
            data["estimated_cost"] = round(cost, 6)
        return data
