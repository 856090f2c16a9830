# =============================================================================
# Token Usage & Cost Estimation
# =============================================================================
#
# An orchestrator run fans out into many LLM calls: one plan, one task
# generation per step, one tool-loop per subagent task, one summary per
# task and a final summary. TokenUsage accumulates the token counts of all
# of them so a run can report what it cost.
#
# Maps (provider_type, model_name) → per-token costs in USD.
#
# DESIGN DECISION: Static dict rather than database or config file.
# Pricing changes rarely and a code update is acceptable.
#
# DESIGN DECISION: estimate_cost() returns None for unknown models
# rather than 0.0. Unknown cost != zero cost.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelPricing:
    """Per-token costs for a model."""

    input_cost_per_token: float    # USD per input token
    output_cost_per_token: float   # USD per output token
    provider_label: str            # Human-readable provider name


@dataclass
class TokenUsage:
    """Running token totals across every LLM call of one operation."""

    input_tokens: int = 0
    output_tokens: int = 0
    calls: int = 0
    models: set[str] = field(default_factory=set)

    def add(self, response) -> None:
        """Accumulate an LLMResponse (or anything with the same fields)."""
        self.input_tokens += response.input_tokens
        self.output_tokens += response.output_tokens
        self.calls += 1
        if response.model:
            self.models.add(response.model)

    def merge(self, other: TokenUsage) -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.calls += other.calls
        self.models |= other.models

    def estimated_cost(self, provider_type: str, model: str) -> float | None:
        return estimate_cost(
            provider_type, model, self.input_tokens, self.output_tokens,
        )


# ---------------------------------------------------------------------------
# Pricing Registry
# ---------------------------------------------------------------------------
# Keys are (provider_type, model_name) tuples.
# provider_type matches the prefix in provider_id strings used by
# create_provider_from_id(): "anthropic" or "openai_compatible".
# ---------------------------------------------------------------------------

PRICING_REGISTRY: dict[tuple[str, str], ModelPricing] = {
    # --- Anthropic ---
    ("anthropic", "claude-sonnet-4-6"): ModelPricing(
        3.00 / 1_000_000, 15.00 / 1_000_000, "Anthropic",
    ),
    ("anthropic", "claude-haiku-4-5"): ModelPricing(
        0.80 / 1_000_000, 4.00 / 1_000_000, "Anthropic",
    ),

    # --- OpenAI ---
    ("openai_compatible", "gpt-4o"): ModelPricing(
        2.50 / 1_000_000, 10.00 / 1_000_000, "OpenAI",
    ),
    ("openai_compatible", "gpt-4o-mini"): ModelPricing(
        0.15 / 1_000_000, 0.60 / 1_000_000, "OpenAI",
    ),

    # --- DeepSeek ---
    ("openai_compatible", "deepseek-chat"): ModelPricing(
        0.14 / 1_000_000, 0.28 / 1_000_000, "DeepSeek",
    ),

    # --- Google (via OpenAI-compatible endpoint) ---
    ("openai_compatible", "gemini-2.0-flash"): ModelPricing(
        0.10 / 1_000_000, 0.40 / 1_000_000, "Google",
    ),
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def estimate_cost(
    provider_type: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
) -> float | None:
    """
    Calculate estimated cost in USD for a number of tokens.

    Returns None if the model is not in the registry (unknown pricing).

    Args:
        provider_type: "anthropic" or "openai_compatible".
        model: Model name as returned by the LLM API.
        input_tokens: Tokens consumed by prompts.
        output_tokens: Tokens generated in responses.
    """
    pricing = PRICING_REGISTRY.get((provider_type, model))
    if pricing is None:
        return None
    return (
        pricing.input_cost_per_token * input_tokens
        + pricing.output_cost_per_token * output_tokens
    )
