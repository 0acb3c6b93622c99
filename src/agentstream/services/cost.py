"""Model pricing table and cost estimation."""

from __future__ import annotations

from agentstream.models.messages import TokenUsage

# Prices per million tokens (USD)
MODEL_PRICING: dict[str, dict[str, float]] = {
    "claude-opus-4-5-20251101": {
        "input": 15.0,
        "output": 75.0,
        "cache_read": 1.5,
        "cache_creation": 18.75,
    },
    "claude-opus-4-6": {
        "input": 15.0,
        "output": 75.0,
        "cache_read": 1.5,
        "cache_creation": 18.75,
    },
    "claude-sonnet-4-5-20251022": {
        "input": 3.0,
        "output": 15.0,
        "cache_read": 0.3,
        "cache_creation": 3.75,
    },
    "claude-sonnet-4-6": {
        "input": 3.0,
        "output": 15.0,
        "cache_read": 0.3,
        "cache_creation": 3.75,
    },
    "claude-haiku-4-5-20251001": {
        "input": 0.80,
        "output": 4.0,
        "cache_read": 0.08,
        "cache_creation": 1.0,
    },
    "gpt-5": {
        "input": 1.25,
        "output": 10.0,
        "cache_read": 0.125,
        "cache_creation": 0.0,
    },
    "gpt-5-codex": {
        "input": 1.25,
        "output": 10.0,
        "cache_read": 0.125,
        "cache_creation": 0.0,
    },
    "gpt-5-mini": {
        "input": 0.25,
        "output": 2.0,
        "cache_read": 0.025,
        "cache_creation": 0.0,
    },
    "codex-mini-latest": {
        "input": 1.5,
        "output": 6.0,
        "cache_read": 0.375,
        "cache_creation": 0.0,
    },
    "gemini-2.5-pro": {
        "input": 1.25,
        "output": 10.0,
        "cache_read": 0.31,
        "cache_creation": 0.0,
    },
    "gemini-2.5-flash": {
        "input": 0.30,
        "output": 2.50,
        "cache_read": 0.075,
        "cache_creation": 0.0,
    },
    "gemini-3-pro-preview": {
        "input": 2.0,
        "output": 12.0,
        "cache_read": 0.2,
        "cache_creation": 0.0,
    },
}

# Substring -> table key, checked in order when the exact name is unknown.
MODEL_FAMILIES: tuple[tuple[str, str], ...] = (
    ("opus", "claude-opus-4-6"),
    ("sonnet", "claude-sonnet-4-6"),
    ("haiku", "claude-haiku-4-5-20251001"),
    ("codex-mini", "codex-mini-latest"),
    ("gpt-5-mini", "gpt-5-mini"),
    ("gpt-5", "gpt-5"),
    ("gemini-3", "gemini-3-pro-preview"),
    ("flash", "gemini-2.5-flash"),
    ("gemini", "gemini-2.5-pro"),
)

# Default pricing for unknown models (use Sonnet-level pricing)
DEFAULT_PRICING: dict[str, float] = {
    "input": 3.0,
    "output": 15.0,
    "cache_read": 0.3,
    "cache_creation": 3.75,
}

ENGINE_DEFAULT_MODELS: dict[str, str] = {
    "codex": "codex-mini-latest",
    "gemini": "gemini-2.5-pro",
}


def get_pricing(model: str, engine: str = "claude") -> dict[str, float]:
    """Get pricing for a model, falling back to its family, then the engine default."""
    if model in MODEL_PRICING:
        return MODEL_PRICING[model]
    normalized = model.strip().lower()
    if normalized in MODEL_PRICING:
        return MODEL_PRICING[normalized]
    for needle, key in MODEL_FAMILIES:
        if needle in normalized:
            return MODEL_PRICING[key]
    default_model = ENGINE_DEFAULT_MODELS.get(engine)
    if default_model is not None:
        return MODEL_PRICING[default_model]
    return DEFAULT_PRICING


def estimate_cost(
    model: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    cache_read_tokens: int = 0,
    cache_creation_tokens: int = 0,
    engine: str = "claude",
) -> dict[str, float]:
    """Estimate cost for token usage.

    Returns:
        Dict with input_cost, output_cost, cache_read_cost, cache_creation_cost, total_cost.
    """
    pricing = get_pricing(model, engine)
    input_cost = (input_tokens / 1_000_000) * pricing["input"]
    output_cost = (output_tokens / 1_000_000) * pricing["output"]
    cache_read_cost = (cache_read_tokens / 1_000_000) * pricing["cache_read"]
    cache_creation_cost = (cache_creation_tokens / 1_000_000) * pricing["cache_creation"]

    return {
        "input_cost": input_cost,
        "output_cost": output_cost,
        "cache_read_cost": cache_read_cost,
        "cache_creation_cost": cache_creation_cost,
        "total_cost": input_cost + output_cost + cache_read_cost + cache_creation_cost,
    }


def calculate_message_cost(tokens: TokenUsage, model: str, engine: str = "claude") -> float:
    """Total cost in USD of one usage record."""
    return estimate_cost(
        model=model,
        input_tokens=tokens.input_tokens,
        output_tokens=tokens.output_tokens,
        cache_read_tokens=tokens.cache_read_tokens,
        cache_creation_tokens=tokens.cache_creation_tokens,
        engine=engine,
    )["total_cost"]
