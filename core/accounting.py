"""Token and cost accounting for LLM usage."""

import math

from .constants import CHARS_PER_TOKEN
from .models import Accounting, ModelUsage

_PER_MILLION = 1_000_000

# USD per token, keyed by the model name reported to add_usage.
MODEL_PRICING: dict[str, dict[str, float]] = {
    "gpt-4.1": {"in": 2.00 / _PER_MILLION, "out": 8.00 / _PER_MILLION},
    "gpt-4.1-mini": {"in": 0.40 / _PER_MILLION, "out": 1.60 / _PER_MILLION},
    "gpt-4.1-nano": {"in": 0.10 / _PER_MILLION, "out": 0.40 / _PER_MILLION},
    "gpt-4o": {"in": 2.50 / _PER_MILLION, "out": 10.00 / _PER_MILLION},
    "gpt-4o-mini": {"in": 0.15 / _PER_MILLION, "out": 0.60 / _PER_MILLION},
    "o3": {"in": 2.00 / _PER_MILLION, "out": 8.00 / _PER_MILLION},
    "o4-mini": {"in": 1.10 / _PER_MILLION, "out": 4.40 / _PER_MILLION},
    "claude-opus-4-20250514": {"in": 15.00 / _PER_MILLION, "out": 75.00 / _PER_MILLION},
    "claude-sonnet-4-20250514": {"in": 3.00 / _PER_MILLION, "out": 15.00 / _PER_MILLION},
    "claude-3-5-haiku-20241022": {"in": 0.80 / _PER_MILLION, "out": 4.00 / _PER_MILLION},
    "gemini-2.5-pro": {"in": 1.25 / _PER_MILLION, "out": 10.00 / _PER_MILLION},
    "gemini-2.5-flash": {"in": 0.30 / _PER_MILLION, "out": 2.50 / _PER_MILLION},
}

_FREE = {"in": 0.0, "out": 0.0}


def estimate_tokens(text: str | None) -> int:
    """Rough token estimate for providers that do not report usage."""
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)


def compute_total_usd(models: dict[str, ModelUsage]) -> float:
    total = 0.0
    for model, usage in models.items():
        price = MODEL_PRICING.get(model, _FREE)
        total += usage.input * price["in"] + usage.output * price["out"]
    return total


def add_usage(accounting: Accounting, model: str, prompt_tokens: int, completion_tokens: int) -> Accounting:
    """
    Accumulate token counts for ``model`` and recompute the dollar total.

    Mutates and returns ``accounting``. Models missing from the price table
    are tracked but cost nothing.
    """
    record = accounting.models.setdefault(model, ModelUsage())
    record.input += prompt_tokens
    record.output += completion_tokens
    accounting.input += prompt_tokens
    accounting.output += completion_tokens
    accounting.totalUSD = compute_total_usd(accounting.models)
    return accounting
