"""Display grouping models derived from a canonical message sequence."""

from __future__ import annotations

from typing import Literal, TypeAlias

from pydantic import BaseModel, Field

from agentstream.models.messages import StreamMessage

AggregateType: TypeAlias = Literal["tool", "thinking"]


class SubagentGroup(BaseModel):
    """A spawn call together with every message its sub-agent produced."""

    id: str
    task_message: StreamMessage
    task_tool_use_id: str
    subagent_messages: list[StreamMessage] = Field(default_factory=list)
    start_index: int = 0
    end_index: int = 0
    subagent_type: str | None = None


class NormalGroup(BaseModel):
    """A message rendered on its own."""

    type: Literal["normal"] = "normal"
    message: StreamMessage
    index: int


class SubagentMessageGroup(BaseModel):
    """A sub-agent group node."""

    type: Literal["subagent"] = "subagent"
    group: SubagentGroup


class AggregatedGroup(BaseModel):
    """A run of adjacent technical messages of one kind."""

    type: Literal["aggregated"] = "aggregated"
    messages: list[StreamMessage] = Field(default_factory=list)
    index: int
    aggregate_type: AggregateType


MessageGroup: TypeAlias = NormalGroup | SubagentMessageGroup | AggregatedGroup
