"""Pydantic models for agentstream."""

from agentstream.models.billing import BillingEvent, SessionCostAggregation, SessionCostTotals
from agentstream.models.groups import (
    AggregatedGroup,
    MessageGroup,
    NormalGroup,
    SubagentGroup,
    SubagentMessageGroup,
)
from agentstream.models.messages import (
    ENGINES,
    MESSAGE_KINDS,
    CodexMetadata,
    ContentBlock,
    Engine,
    MessageBody,
    MessageKind,
    StreamMessage,
    TokenUsage,
    ToolResultBlock,
    ToolUseBlock,
)
from agentstream.models.sessions import (
    CodexRateLimits,
    RateLimitWindow,
    RunningProcess,
    SessionPhase,
    SessionRef,
)

__all__ = [
    "AggregatedGroup",
    "BillingEvent",
    "CodexMetadata",
    "CodexRateLimits",
    "ContentBlock",
    "Engine",
    "MessageBody",
    "MessageGroup",
    "MessageKind",
    "NormalGroup",
    "RateLimitWindow",
    "RunningProcess",
    "SessionCostAggregation",
    "SessionCostTotals",
    "SessionPhase",
    "SessionRef",
    "StreamMessage",
    "SubagentGroup",
    "SubagentMessageGroup",
    "TokenUsage",
    "ToolResultBlock",
    "ToolUseBlock",
    "ENGINES",
    "MESSAGE_KINDS",
]
