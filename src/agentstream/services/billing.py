"""Session billing ledger: billable-event selection, dedup, ordering, totals."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import TypeAlias

from agentstream.data.usage import extract_message_usage
from agentstream.models.billing import BillingEvent, SessionCostAggregation, SessionCostTotals
from agentstream.models.messages import StreamMessage, TokenUsage
from agentstream.services.cost import calculate_message_cost

PricingFunction: TypeAlias = Callable[[TokenUsage, str, str], float]

MODEL_FALLBACK = "claude-sonnet-4.5"
CODEX_MODEL_FALLBACK = "codex-mini-latest"
GEMINI_MODEL_FALLBACK = "gemini-2.5-pro"

CODEX_CUMULATIVE_ITEM_TYPE = "thread_token_usage_updated"


@dataclass
class _Candidate:
    """A billing event plus the bookkeeping needed to dedup and order it."""

    event: BillingEvent
    total_tokens: int
    order: int


def engine_of(message: StreamMessage) -> str:
    """Resolve the engine that produced a message."""
    if message.engine != "claude":
        return message.engine
    if message.codex_metadata is not None:
        return "codex"
    return "claude"


def is_billable(message: StreamMessage, engine: str) -> bool:
    """Engine-specific billability: each engine reports usage at a different granularity."""
    match engine:
        case "codex":
            if (
                message.codex_metadata is not None
                and message.codex_metadata.item_type == CODEX_CUMULATIVE_ITEM_TYPE
            ):
                return False
            return message.type == "system" and _has_usage(message)
        case "gemini":
            return message.type == "result" and _has_usage(message)
        case _:
            return message.type == "assistant"


def billing_key(message: StreamMessage, index: int) -> str:
    """Deduplication identity, from most to least stable source."""
    if message.message is not None and message.message.id.strip():
        return f"message:{message.message.id}"
    if message.id.strip():
        return f"message:{message.id}"
    if message.uuid.strip():
        return f"uuid:{message.uuid}"
    timestamp = message.timestamp or message.received_at
    if timestamp.strip():
        return f"time:{timestamp}"
    return f"index:{index}"


def extract_timestamp(message: StreamMessage) -> tuple[str | None, int | None]:
    """First parseable timestamp on the message, with its epoch milliseconds."""
    candidates = [message.timestamp, message.received_at]
    if message.message is not None:
        candidates.append(message.message.timestamp)
    for candidate in candidates:
        if not candidate.strip():
            continue
        millis = parse_timestamp_ms(candidate)
        if millis is not None:
            return candidate, millis
    return None, None


def parse_timestamp_ms(value: str) -> int | None:
    """Parse an ISO-8601 or RFC 2822 timestamp into epoch milliseconds; naive values are UTC."""
    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return int(parsed.timestamp() * 1000)


def resolve_model_name(message: StreamMessage, engine: str) -> str:
    """Model named by the message, or the engine's fallback model."""
    candidates = [message.model]
    if message.message is not None:
        candidates.append(message.message.model)
    if message.codex_metadata is not None:
        candidates.append(message.codex_metadata.model)
    for candidate in candidates:
        if candidate.strip():
            return candidate
    if engine == "codex":
        return CODEX_MODEL_FALLBACK
    if engine == "gemini":
        return GEMINI_MODEL_FALLBACK
    return MODEL_FALLBACK


def aggregate_session_cost(
    messages: list[StreamMessage],
    pricing: PricingFunction = calculate_message_cost,
) -> SessionCostAggregation:
    """Build the deduplicated billing ledger for a message sequence.

    When two candidates share a key, the one with strictly more tokens wins;
    on equal tokens the later (or equally timed, later scanned) one wins.
    Totals are summed from the surviving events only.
    """
    candidates: dict[str, _Candidate] = {}

    for index, message in enumerate(messages):
        engine = engine_of(message)
        if not is_billable(message, engine):
            continue

        tokens = extract_message_usage(message)
        total_tokens = tokens.total_tokens
        if total_tokens == 0:
            continue

        key = billing_key(message, index)
        timestamp, timestamp_ms = extract_timestamp(message)
        model = resolve_model_name(message, engine)

        existing = candidates.get(key)
        if existing is not None:
            if total_tokens < existing.total_tokens:
                continue
            if total_tokens == existing.total_tokens and (timestamp_ms or 0) < (
                existing.event.timestamp_ms or 0
            ):
                continue

        candidates[key] = _Candidate(
            event=BillingEvent(
                key=key,
                tokens=tokens,
                model=model,
                cost=pricing(tokens, model, engine),
                timestamp=timestamp,
                timestamp_ms=timestamp_ms,
                message=message,
            ),
            total_tokens=total_tokens,
            order=index,
        )

    ordered = sorted(candidates.values(), key=_sort_key)
    events = [candidate.event for candidate in ordered]

    totals = SessionCostTotals()
    for event in events:
        totals.total_cost += event.cost
        totals.input_tokens += event.tokens.input_tokens
        totals.output_tokens += event.tokens.output_tokens
        totals.cache_read_tokens += event.tokens.cache_read_tokens
        totals.cache_write_tokens += event.tokens.cache_creation_tokens
        totals.total_tokens += event.tokens.total_tokens

    timestamps = [event.timestamp_ms for event in events if event.timestamp_ms is not None]
    return SessionCostAggregation(
        totals=totals,
        events=events,
        billable_event_count=len(events),
        first_event_timestamp_ms=min(timestamps) if timestamps else None,
        last_event_timestamp_ms=max(timestamps) if timestamps else None,
    )


def _sort_key(candidate: _Candidate) -> tuple[int, int, int]:
    timestamp_ms = candidate.event.timestamp_ms
    if timestamp_ms is None:
        return (1, 0, candidate.order)
    return (0, timestamp_ms, candidate.order)


def _has_usage(message: StreamMessage) -> bool:
    return extract_message_usage(message).total_tokens > 0
