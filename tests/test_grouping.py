"""Tests for sub-agent grouping and technical-message compaction."""

from __future__ import annotations

from agentstream.models.groups import AggregatedGroup, NormalGroup, SubagentMessageGroup
from agentstream.models.messages import ContentBlock, MessageBody, StreamMessage
from agentstream.services.grouping import (
    extract_task_tool_details,
    extract_task_tool_use_ids,
    group_messages,
    grouped_subagent_ids,
    has_task_tool_call,
    should_hide_message,
    subagent_message_role,
    technical_message_type,
)


def _message(
    kind: str, *blocks: ContentBlock, parent: str | None = None, uuid: str = ""
) -> StreamMessage:
    return StreamMessage(
        type=kind,  # type: ignore[arg-type]
        uuid=uuid,
        message=MessageBody(role=kind, content=list(blocks)),
        parent_tool_use_id=parent,
    )


def _text(text: str, **kwargs: str) -> StreamMessage:
    return _message("assistant", ContentBlock.text_block(text), **kwargs)


def _tool(tool_id: str, name: str = "Bash", **kwargs: str) -> StreamMessage:
    return _message("assistant", ContentBlock.tool_use_block(tool_id, name, {}), **kwargs)


def _thinking(text: str = "pondering") -> StreamMessage:
    return _message("assistant", ContentBlock.thinking_block(text))


def _spawn(*task_ids: str, subagent_type: str | None = None) -> StreamMessage:
    tool_input = {"subagent_type": subagent_type} if subagent_type else {}
    return _message(
        "assistant",
        *(ContentBlock.tool_use_block(task_id, "Task", tool_input) for task_id in task_ids),
    )


class TestSpawnDetection:
    def test_task_tool_is_case_insensitive(self) -> None:
        message = _message("assistant", ContentBlock.tool_use_block("t1", "TASK", {}))
        assert has_task_tool_call(message)
        assert extract_task_tool_use_ids(message) == ["t1"]

    def test_user_messages_never_spawn(self) -> None:
        message = _message("user", ContentBlock.tool_use_block("t1", "Task", {}))
        assert not has_task_tool_call(message)

    def test_subagent_type_annotation(self) -> None:
        message = _spawn("t1", subagent_type="code-reviewer")
        assert extract_task_tool_details(message) == {"t1": "code-reviewer"}

    def test_custom_spawn_tool_names(self) -> None:
        message = _tool("x1", name="spawn_agent")
        assert not has_task_tool_call(message)
        assert has_task_tool_call(message, frozenset({"spawn_agent"}))


class TestTechnicalMessageType:
    def test_text_is_not_technical(self) -> None:
        assert technical_message_type(_text("hello")) is None

    def test_blank_text_does_not_block_tool_classification(self) -> None:
        message = _message(
            "assistant", ContentBlock.text_block("  "), ContentBlock.tool_use_block("t", "Bash")
        )
        assert technical_message_type(message) == "tool"

    def test_tool_result_is_tool(self) -> None:
        message = _message("user", ContentBlock.tool_result_block("t", "out"))
        assert technical_message_type(message) == "tool"

    def test_thinking(self) -> None:
        assert technical_message_type(_thinking()) == "thinking"

    def test_mixed_thinking_and_tool_stands_alone(self) -> None:
        message = _message(
            "assistant", ContentBlock.thinking_block("x"), ContentBlock.tool_use_block("t", "Bash")
        )
        assert technical_message_type(message) is None

    def test_kind_fallback(self) -> None:
        assert technical_message_type(StreamMessage(type="thinking")) == "thinking"
        assert technical_message_type(StreamMessage(type="tool_use")) == "tool"
        assert technical_message_type(StreamMessage(type="system")) is None


class TestGroupMessages:
    def test_parallel_spawns_form_separate_groups(self) -> None:
        spawn = _spawn("t1", "t2", subagent_type="explorer")
        messages = [
            _text("start", uuid="m0"),
            spawn,
            _text("a1", parent="t1", uuid="a1"),
            _text("b1", parent="t2", uuid="b1"),
            _text("a2", parent="t1", uuid="a2"),
            _text("middle", uuid="m1"),
            _text("b2", parent="t2", uuid="b2"),
            _text("a3", parent="t1", uuid="a3"),
        ]

        groups = group_messages(messages)

        assert [node.type for node in groups] == ["normal", "subagent", "subagent", "normal"]
        first, second = groups[1], groups[2]
        assert isinstance(first, SubagentMessageGroup)
        assert isinstance(second, SubagentMessageGroup)
        assert first.group.id == "t1"
        assert [m.uuid for m in first.group.subagent_messages] == ["a1", "a2", "a3"]
        assert first.group.start_index == 1
        assert first.group.end_index == 7
        assert first.group.subagent_type == "explorer"
        assert second.group.id == "t2"
        assert [m.uuid for m in second.group.subagent_messages] == ["b1", "b2"]
        assert second.group.end_index == 6

        normal_uuids = [node.message.uuid for node in groups if isinstance(node, NormalGroup)]
        assert normal_uuids == ["m0", "m1"]

    def test_spawn_without_descendants_stays_normal(self) -> None:
        spawn = _spawn("t1")
        groups = group_messages([_text("hi"), spawn])
        assert [node.type for node in groups] == ["normal", "aggregated"]
        aggregated = groups[1]
        assert isinstance(aggregated, AggregatedGroup)
        assert aggregated.messages == [spawn]

    def test_partial_parallel_spawn_drops_spawn_message(self) -> None:
        messages = [_spawn("t1", "t2"), _text("child", parent="t2")]
        groups = group_messages(messages)
        assert len(groups) == 1
        node = groups[0]
        assert isinstance(node, SubagentMessageGroup)
        assert node.group.id == "t2"

    def test_children_before_spawn_are_not_attributed(self) -> None:
        early = _text("early", parent="t1", uuid="early")
        groups = group_messages([early, _spawn("t1"), _text("late", parent="t1", uuid="late")])
        assert isinstance(groups[0], NormalGroup)
        assert groups[0].message.uuid == "early"
        assert isinstance(groups[1], SubagentMessageGroup)
        assert [m.uuid for m in groups[1].group.subagent_messages] == ["late"]

    def test_consecutive_tool_calls_collapse(self) -> None:
        groups = group_messages([_tool("1"), _tool("2"), _tool("3")])
        assert len(groups) == 1
        node = groups[0]
        assert isinstance(node, AggregatedGroup)
        assert node.aggregate_type == "tool"
        assert len(node.messages) == 3
        assert node.index == 0

    def test_text_splits_tool_runs(self) -> None:
        groups = group_messages(
            [_tool("1"), _tool("2"), _tool("3"), _text("progress"), _tool("4")]
        )
        assert [node.type for node in groups] == ["aggregated", "normal", "aggregated"]
        first, text_node, last = groups
        assert isinstance(first, AggregatedGroup) and len(first.messages) == 3
        assert isinstance(text_node, NormalGroup) and text_node.index == 3
        assert isinstance(last, AggregatedGroup) and len(last.messages) == 1
        assert last.index == 4

    def test_different_technical_kinds_do_not_merge(self) -> None:
        groups = group_messages([_thinking(), _tool("1"), _tool("2"), _thinking()])
        assert [
            node.aggregate_type for node in groups if isinstance(node, AggregatedGroup)
        ] == ["thinking", "tool", "thinking"]

    def test_mixed_message_stands_alone(self) -> None:
        mixed = _message(
            "assistant", ContentBlock.thinking_block("x"), ContentBlock.tool_use_block("t", "Bash")
        )
        groups = group_messages([_tool("1"), mixed, _tool("2")])
        assert [node.type for node in groups] == ["aggregated", "normal", "aggregated"]

    def test_subagent_group_breaks_runs(self) -> None:
        groups = group_messages([_tool("1"), _spawn("t1"), _text("c", parent="t1"), _tool("2")])
        assert [node.type for node in groups] == ["aggregated", "subagent", "aggregated"]

    def test_orphan_subagent_messages_are_not_aggregated(self) -> None:
        orphan = _tool("x", parent="missing")
        groups = group_messages([_tool("1"), orphan, _tool("2")])
        assert [node.type for node in groups] == ["aggregated", "normal", "aggregated"]

    def test_text_messages_always_stand_alone(self) -> None:
        messages = [_tool("1"), _text("one"), _thinking(), _text("two"), _tool("2")]
        groups = group_messages(messages)
        for node in groups:
            if isinstance(node, AggregatedGroup):
                assert all(technical_message_type(m) is not None for m in node.messages)
        text_nodes = [
            node
            for node in groups
            if isinstance(node, NormalGroup) and node.message.content_blocks[0].type == "text"
        ]
        assert len(text_nodes) == 2

    def test_grouping_is_idempotent(self) -> None:
        messages = [
            _text("start"),
            _spawn("t1"),
            _tool("c1", parent="t1"),
            _tool("1"),
            _thinking(),
            _text("done"),
        ]
        assert group_messages(messages) == group_messages(messages)

    def test_empty_sequence(self) -> None:
        assert group_messages([]) == []


class TestVisibility:
    def test_grouped_subagent_messages_are_hidden(self) -> None:
        child = _text("child", parent="t1")
        orphan = _text("orphan", parent="t9")
        groups = group_messages([_spawn("t1"), child, orphan])

        assert grouped_subagent_ids(groups) == {"t1"}
        assert should_hide_message(child, groups)
        assert not should_hide_message(orphan, groups)
        assert not should_hide_message(_text("top level"), groups)

    def test_subagent_user_text_displays_as_assistant(self) -> None:
        child = _message("user", ContentBlock.text_block("report"), parent="t1")
        assert subagent_message_role(child) == "assistant"
        assert subagent_message_role(_message("user", ContentBlock.text_block("hi"))) == "user"
        tool_output = _message("user", ContentBlock.tool_result_block("x", "out"), parent="t1")
        assert subagent_message_role(tool_output) == "user"
