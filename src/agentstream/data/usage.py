"""Normalize provider-specific token usage records into TokenUsage."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import TYPE_CHECKING

from agentstream.models.messages import TokenUsage

if TYPE_CHECKING:
    from agentstream.models.messages import StreamMessage

_INPUT_KEYS = ("input_tokens", "inputTokens", "input")
_OUTPUT_KEYS = ("output_tokens", "outputTokens", "output")
_CACHE_READ_KEYS = (
    "cache_read_tokens",
    "cache_read_input_tokens",
    "cached_input_tokens",
    "cached_tokens",
    "cacheReadTokens",
    "cached",
    "cachedContentTokenCount",
    "cached_content_token_count",
)
_CACHE_CREATION_KEYS = (
    "cache_creation_tokens",
    "cache_creation_input_tokens",
    "cache_write_tokens",
    "cacheCreationTokens",
    "cacheWriteTokens",
)
_PROMPT_KEYS = ("prompt", "promptTokenCount", "prompt_token_count")
_CANDIDATES_KEYS = ("candidates", "candidatesTokenCount", "candidates_token_count")
_THOUGHTS_KEYS = ("thoughts", "thoughtsTokenCount", "thoughts_token_count")
_TOOL_KEYS = ("tool", "toolUsePromptTokenCount", "tool_use_prompt_token_count")


def normalize_usage(raw: object) -> TokenUsage | None:
    """Convert any supported usage shape into a canonical TokenUsage.

    Accepted shapes:
      * canonical / simplified: ``input_tokens``, ``output_tokens`` and the
        cache counters (primary engine and Codex aliases included)
      * Gemini API ``usageMetadata``: ``promptTokenCount``,
        ``candidatesTokenCount``, ``cachedContentTokenCount``,
        ``thoughtsTokenCount``, ``toolUsePromptTokenCount`` (camelCase or
        snake_case)
      * Gemini CLI aggregated tokens: ``prompt``, ``candidates``, ``cached``,
        ``thoughts``, ``tool``

    Returns None when every signal is zero or missing, so that callers can
    skip records that carry no billable usage.
    """
    if isinstance(raw, TokenUsage):
        return raw if raw.total_tokens > 0 else None
    if not isinstance(raw, Mapping):
        return None

    direct_input = _first_number(raw, _INPUT_KEYS)
    direct_output = _first_number(raw, _OUTPUT_KEYS)

    prompt = _first_number(raw, _PROMPT_KEYS)
    candidates = _first_number(raw, _CANDIDATES_KEYS)
    thoughts = _first_number(raw, _THOUGHTS_KEYS) or 0
    tool = _first_number(raw, _TOOL_KEYS) or 0
    cache_read = _first_number(raw, _CACHE_READ_KEYS) or 0
    cache_creation = _first_number(raw, _CACHE_CREATION_KEYS) or 0

    input_tokens = direct_input
    if input_tokens is None and prompt is not None:
        input_tokens = prompt + tool
    output_tokens = direct_output
    if output_tokens is None and candidates is not None:
        output_tokens = candidates + thoughts

    if (
        (input_tokens or 0) <= 0
        and (output_tokens or 0) <= 0
        and cache_read <= 0
        and cache_creation <= 0
    ):
        return None

    return TokenUsage(
        input_tokens=max(int(input_tokens or 0), 0),
        output_tokens=max(int(output_tokens or 0), 0),
        cache_read_tokens=int(cache_read) if cache_read > 0 else 0,
        cache_creation_tokens=int(cache_creation) if cache_creation > 0 else 0,
    )


def extract_message_usage(message: StreamMessage) -> TokenUsage:
    """Return the first usage record carried by a message, or an empty one."""
    candidates = [message.usage]
    if message.message is not None:
        candidates.append(message.message.usage)
    if message.codex_metadata is not None:
        candidates.append(message.codex_metadata.usage)
    for usage in candidates:
        if usage is not None and usage.total_tokens > 0:
            return usage
    return TokenUsage()


def to_number(value: object) -> float | None:
    """Coerce a finite number or numeric string; anything else is absent."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        try:
            return float(value)
        except OverflowError:
            return None
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _first_number(raw: Mapping[str, object], keys: tuple[str, ...]) -> float | None:
    for key in keys:
        value = to_number(raw.get(key))
        if value is not None:
            return value
    return None
