"""Adapter for primary-engine (Claude) history and stream-json records."""

from __future__ import annotations

import json
from typing import Any

from agentstream.data.usage import normalize_usage
from agentstream.models.messages import (
    MESSAGE_KINDS,
    ContentBlock,
    MessageBody,
    StreamMessage,
)


COMMAND_STDOUT_MARKER = "<local-command-stdout>"
COMMAND_META_MARKERS = ("<command-name>", "<command-message>")
COMMAND_ERROR_MARKER = "Unknown slash command:"


def adapt_claude_record(raw: dict[str, Any]) -> StreamMessage | None:
    """Convert one primary-engine record into a StreamMessage.

    Records whose type is outside the canonical kind set yield None. A record
    without a type is treated as assistant output.
    """
    msg_type = _as_str(raw.get("type")) or "assistant"
    if msg_type not in MESSAGE_KINDS:
        return None

    body = _parse_body(raw.get("message"))
    parent_tool_use_id = _as_optional_str(raw.get("parent_tool_use_id")) or _as_optional_str(
        raw.get("parentToolUseId")
    )

    parsed = StreamMessage(
        type=msg_type,  # type: ignore[arg-type]
        subtype=_as_str(raw.get("subtype")),
        engine="claude",
        model=_as_str(raw.get("model")),
        message=body,
        usage=normalize_usage(raw.get("usage")),
        id=_as_str(raw.get("id")),
        uuid=_as_str(raw.get("uuid")),
        session_id=_as_str(raw.get("session_id")) or _as_str(raw.get("sessionId")),
        timestamp=_as_str(raw.get("timestamp")),
        received_at=_as_str(raw.get("receivedAt")),
        parent_tool_use_id=parent_tool_use_id,
        is_sidechain=raw.get("isSidechain") is True,
        text=_as_str(raw.get("result")) or _as_str(raw.get("text")),
    )
    return reclassify_command_message(parsed)


def reclassify_command_message(message: StreamMessage) -> StreamMessage:
    """Retype slash-command output recorded as user input to a system message."""
    if message.type != "user":
        return message

    text = "\n".join(
        block.text for block in message.content_blocks if block.type == "text" and block.text
    )
    is_output = COMMAND_STDOUT_MARKER in text
    is_meta = any(marker in text for marker in COMMAND_META_MARKERS)
    is_error = COMMAND_ERROR_MARKER in text
    if not (is_output or is_meta or is_error):
        return message

    if is_output:
        subtype = "command-output"
    elif is_error:
        subtype = "command-error"
    else:
        subtype = "command-meta"
    return message.model_copy(update={"type": "system", "subtype": subtype})


def _parse_body(raw_body: object) -> MessageBody | None:
    if not isinstance(raw_body, dict):
        return None

    raw_content = raw_body.get("content", [])
    blocks: list[ContentBlock] = []
    if isinstance(raw_content, str):
        blocks.append(ContentBlock.text_block(raw_content))
    elif isinstance(raw_content, list):
        for block in raw_content:
            if isinstance(block, str):
                blocks.append(ContentBlock.text_block(block))
            elif isinstance(block, dict):
                blocks.append(parse_content_block(block))

    return MessageBody(
        id=_as_str(raw_body.get("id")),
        role=_as_str(raw_body.get("role")),
        model=_as_str(raw_body.get("model")),
        content=blocks,
        usage=normalize_usage(raw_body.get("usage")),
        timestamp=_as_str(raw_body.get("timestamp")),
    )


def parse_content_block(block: dict[str, Any]) -> ContentBlock:
    """Parse a single content block dict."""
    block_type = _as_str(block.get("type")) or "unknown"

    match block_type:
        case "text":
            return ContentBlock.text_block(_as_str(block.get("text")))
        case "thinking":
            return ContentBlock.thinking_block(_as_str(block.get("thinking")))
        case "redacted_thinking":
            return ContentBlock.thinking_block("")
        case "tool_use":
            tool_input = block.get("input")
            return ContentBlock.tool_use_block(
                _as_str(block.get("id")),
                _as_str(block.get("name")),
                tool_input if isinstance(tool_input, dict) else {},
            )
        case "tool_result":
            return ContentBlock.tool_result_block(
                _as_str(block.get("tool_use_id")),
                extract_content_text(block.get("content", "")),
                is_error=block.get("is_error") is True,
            )
        case _:
            return ContentBlock(type=block_type, text=_as_str(block.get("text")))


def extract_content_text(content: object) -> str:
    """Flatten tool_result content (string, text-block list or JSON) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                parts.append(_as_str(item.get("text")))
            elif isinstance(item, str):
                parts.append(item)
        return "\n".join(parts)
    if content is None:
        return ""
    try:
        return json.dumps(content, ensure_ascii=False)
    except TypeError:
        return ""


def _as_str(value: object) -> str:
    return value if isinstance(value, str) else ""


def _as_optional_str(value: object) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None
