"""Sub-agent grouping and technical-message compaction for display."""

from __future__ import annotations

from collections.abc import Collection, Iterable

from agentstream.models.groups import (
    AggregatedGroup,
    AggregateType,
    MessageGroup,
    NormalGroup,
    SubagentGroup,
    SubagentMessageGroup,
)
from agentstream.models.messages import StreamMessage, ToolUseBlock

SUBAGENT_TOOL_NAMES: frozenset[str] = frozenset({"task"})


def _spawn_blocks(
    message: StreamMessage, spawn_tool_names: Collection[str]
) -> list[ToolUseBlock]:
    if message.type != "assistant":
        return []
    return [
        block.tool_use
        for block in message.content_blocks
        if block.type == "tool_use"
        and block.tool_use is not None
        and block.tool_use.name.lower() in spawn_tool_names
    ]


def has_task_tool_call(
    message: StreamMessage, spawn_tool_names: Collection[str] = SUBAGENT_TOOL_NAMES
) -> bool:
    """Whether an assistant message spawns at least one sub-agent."""
    return bool(_spawn_blocks(message, spawn_tool_names))


def extract_task_tool_use_ids(
    message: StreamMessage, spawn_tool_names: Collection[str] = SUBAGENT_TOOL_NAMES
) -> list[str]:
    """Ids of every spawn call in a message, in content order."""
    return [tool.id for tool in _spawn_blocks(message, spawn_tool_names) if tool.id]


def extract_task_tool_details(
    message: StreamMessage, spawn_tool_names: Collection[str] = SUBAGENT_TOOL_NAMES
) -> dict[str, str | None]:
    """Map spawn id -> sub-agent type annotation (if the call carries one)."""
    details: dict[str, str | None] = {}
    for tool in _spawn_blocks(message, spawn_tool_names):
        if not tool.id:
            continue
        subagent_type = tool.input.get("subagent_type")
        details[tool.id] = subagent_type if isinstance(subagent_type, str) else None
    return details


def is_subagent_message(message: StreamMessage) -> bool:
    return message.is_subagent


def get_parent_tool_use_id(message: StreamMessage) -> str | None:
    return message.parent_tool_use_id or None


def technical_message_type(message: StreamMessage) -> AggregateType | None:
    """Classify a message as a ``tool`` or ``thinking`` technical message.

    Returns None for anything that must stand alone: narrative text, mixed
    reasoning + tool content, or messages with no technical content at all.
    """
    has_thinking = False
    has_tool = False
    for block in message.content_blocks:
        match block.type:
            case "text":
                if block.text.strip():
                    return None
            case "thinking":
                has_thinking = True
            case "tool_use" | "tool_result":
                has_tool = True

    if has_thinking and has_tool:
        return None
    if has_thinking:
        return "thinking"
    if has_tool:
        return "tool"
    if message.type == "thinking":
        return "thinking"
    if message.type == "tool_use":
        return "tool"
    return None


def group_messages(
    messages: list[StreamMessage],
    spawn_tool_names: Collection[str] = SUBAGENT_TOOL_NAMES,
) -> list[MessageGroup]:
    """Group a message sequence into normal, sub-agent and aggregated nodes.

    Pure function of the full sequence; callers recompute it whenever the
    sequence changes.
    """
    spawn_names = frozenset(name.lower() for name in spawn_tool_names)

    # Pass 1: locate spawn calls. A single message may spawn several agents.
    task_tool_uses: dict[str, tuple[StreamMessage, int]] = {}
    index_to_task_ids: dict[int, list[str]] = {}
    subagent_types: dict[str, str | None] = {}
    for index, message in enumerate(messages):
        task_ids = extract_task_tool_use_ids(message, spawn_names)
        if not task_ids:
            continue
        index_to_task_ids[index] = task_ids
        details = extract_task_tool_details(message, spawn_names)
        for task_id in task_ids:
            task_tool_uses[task_id] = (message, index)
            subagent_types[task_id] = details.get(task_id)

    # Pass 2: attribute descendants by parent id across the whole remaining sequence.
    subagent_groups: dict[str, SubagentGroup] = {}
    grouped_indices: set[int] = set()
    for task_id, (task_message, task_index) in task_tool_uses.items():
        children: list[StreamMessage] = []
        child_indices: list[int] = []
        for index in range(task_index + 1, len(messages)):
            if get_parent_tool_use_id(messages[index]) == task_id:
                children.append(messages[index])
                child_indices.append(index)
        if children:
            grouped_indices.update(child_indices)
            subagent_groups[task_id] = SubagentGroup(
                id=task_id,
                task_message=task_message,
                task_tool_use_id=task_id,
                subagent_messages=children,
                start_index=task_index,
                end_index=child_indices[-1],
                subagent_type=subagent_types.get(task_id),
            )

    # Pass 3: intermediate sequence with sub-agent nodes at their spawn point.
    intermediate: list[MessageGroup] = []
    added_groups: set[str] = set()
    for index, message in enumerate(messages):
        if index in grouped_indices:
            continue
        task_ids = index_to_task_ids.get(index)
        if not task_ids:
            intermediate.append(NormalGroup(message=message, index=index))
            continue
        for task_id in task_ids:
            if task_id in subagent_groups and task_id not in added_groups:
                intermediate.append(SubagentMessageGroup(group=subagent_groups[task_id]))
                added_groups.add(task_id)
        if not any(task_id in subagent_groups for task_id in task_ids):
            intermediate.append(NormalGroup(message=message, index=index))

    return _compact_technical_runs(intermediate)


def _compact_technical_runs(intermediate: Iterable[MessageGroup]) -> list[MessageGroup]:
    """Pass 4: merge adjacent technical messages of the same kind."""
    final: list[MessageGroup] = []
    current: AggregatedGroup | None = None

    for node in intermediate:
        if not isinstance(node, NormalGroup):
            if current is not None:
                final.append(current)
                current = None
            final.append(node)
            continue

        aggregate_type = (
            None if is_subagent_message(node.message) else technical_message_type(node.message)
        )
        if aggregate_type is None:
            if current is not None:
                final.append(current)
                current = None
            final.append(node)
            continue

        if current is not None and current.aggregate_type == aggregate_type:
            current.messages.append(node.message)
            continue
        if current is not None:
            final.append(current)
        current = AggregatedGroup(
            messages=[node.message], index=node.index, aggregate_type=aggregate_type
        )

    if current is not None:
        final.append(current)
    return final


def grouped_subagent_ids(groups: Iterable[MessageGroup]) -> set[str]:
    """Spawn ids already represented by a sub-agent group node."""
    return {
        node.group.task_tool_use_id for node in groups if isinstance(node, SubagentMessageGroup)
    }


def should_hide_message(message: StreamMessage, groups: Iterable[MessageGroup]) -> bool:
    """Whether a sub-agent message is already shown inside its group."""
    if not is_subagent_message(message):
        return False
    parent_id = get_parent_tool_use_id(message)
    if not parent_id:
        return False
    return parent_id in grouped_subagent_ids(groups)


def subagent_message_role(message: StreamMessage) -> str:
    """Display role: a sub-agent's user-kind text is its output to the parent."""
    if message.type == "user" and is_subagent_message(message):
        if any(block.type == "text" for block in message.content_blocks):
            return "assistant"
    return message.type
