"""Best-effort cost estimation from OpenRouter per-token pricing."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class ModelPricing:
    prompt: float = 0.0  # USD per prompt token
    completion: float = 0.0  # USD per completion token

    @classmethod
    def from_openrouter(cls, payload: dict[str, Any] | None) -> "ModelPricing | None":
        """Parse the ``pricing`` block of an OpenRouter model entry.

        OpenRouter reports prices as decimal strings in USD per token
        (e.g. ``"0.000003"``). Unparseable values count as zero.
        """
        if not isinstance(payload, dict):
            return None
        return cls(
            prompt=_to_float(payload.get("prompt")),
            completion=_to_float(payload.get("completion")),
        )


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def estimate_cost(
    prompt_tokens: int,
    completion_tokens: int,
    pricing: ModelPricing | None,
) -> float | None:
    if pricing is None:
        return None
    return prompt_tokens * pricing.prompt + completion_tokens * pricing.completion


def pricing_for_model(models: list[dict[str, Any]], model_id: str) -> ModelPricing | None:
    for entry in models:
        if entry.get("id") == model_id:
            return ModelPricing.from_openrouter(entry.get("pricing"))
    return None
