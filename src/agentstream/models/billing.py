"""Billing ledger models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from agentstream.models.messages import StreamMessage, TokenUsage


class BillingEvent(BaseModel):
    """One deduplicated, costed usage record."""

    key: str
    tokens: TokenUsage
    model: str
    cost: float = 0.0
    timestamp: str | None = None
    timestamp_ms: int | None = None
    message: StreamMessage


class SessionCostTotals(BaseModel):
    """Sums over every surviving billing event of a session."""

    total_cost: float = 0.0
    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0


class SessionCostAggregation(BaseModel):
    """Result of a billing pass over a message sequence."""

    totals: SessionCostTotals = Field(default_factory=SessionCostTotals)
    events: list[BillingEvent] = Field(default_factory=list)
    billable_event_count: int = 0
    first_event_timestamp_ms: int | None = None
    last_event_timestamp_ms: int | None = None
