"""Convert Gemini CLI session detail records into canonical messages."""

from __future__ import annotations

import json
from typing import Any

from agentstream.data.usage import normalize_usage
from agentstream.models.messages import ContentBlock, MessageBody, StreamMessage, TokenUsage

_ASSISTANT_TYPES = {"gemini", "model", "assistant"}
_SYSTEM_TYPES = {"info", "error", "warning"}


def extract_gemini_usage(tokens: object) -> TokenUsage | None:
    """Extract usage from Gemini history ``tokens`` or API ``usageMetadata``."""
    return normalize_usage(tokens)


def convert_gemini_session_detail(detail: dict[str, Any]) -> list[StreamMessage]:
    """Flatten a Gemini session detail into a canonical message sequence.

    Each model turn produces, in order: one synthesized ``user`` tool_result
    message per tool call that has output, the assistant message (tool_use
    blocks followed by the narrative text) and, when the turn reports token
    usage, a ``result`` message carrying the normalized usage.
    """
    raw_messages = detail.get("messages")
    if not isinstance(raw_messages, list):
        return []

    session_id = _as_str(detail.get("sessionId"))
    converted: list[StreamMessage] = []

    for raw in raw_messages:
        if not isinstance(raw, dict):
            continue

        msg_type = _as_str(raw.get("type")).lower()
        msg_id = _as_str(raw.get("id"))
        timestamp = _as_str(raw.get("timestamp"))
        model = _as_str(raw.get("model"))
        text = _extract_content_text(raw.get("content"))

        if msg_type == "user":
            converted.append(
                StreamMessage(
                    type="user",
                    engine="gemini",
                    message=MessageBody(
                        role="user",
                        content=[ContentBlock.text_block(text)] if text else [],
                    ),
                    uuid=msg_id,
                    session_id=session_id,
                    timestamp=timestamp,
                )
            )
            continue

        if msg_type in _SYSTEM_TYPES:
            converted.append(
                StreamMessage(
                    type="system",
                    subtype=msg_type,
                    engine="gemini",
                    uuid=msg_id,
                    session_id=session_id,
                    timestamp=timestamp,
                    text=text,
                )
            )
            continue

        if msg_type and msg_type not in _ASSISTANT_TYPES:
            continue

        assistant_content: list[ContentBlock] = []
        thoughts = _extract_thoughts(raw.get("thoughts"))
        if thoughts:
            assistant_content.append(ContentBlock.thinking_block(thoughts))

        tool_calls = raw.get("toolCalls")
        if isinstance(tool_calls, list):
            for tool_call in tool_calls:
                if not isinstance(tool_call, dict):
                    continue
                call_id = _as_str(tool_call.get("id"))
                args = tool_call.get("args")
                assistant_content.append(
                    ContentBlock.tool_use_block(
                        call_id,
                        _as_str(tool_call.get("name")),
                        args if isinstance(args, dict) else {},
                    )
                )
                result_text = _tool_result_text(tool_call)
                if result_text is None:
                    continue
                converted.append(
                    StreamMessage(
                        type="user",
                        engine="gemini",
                        message=MessageBody(
                            role="user",
                            content=[
                                ContentBlock.tool_result_block(
                                    call_id,
                                    result_text,
                                    is_error=_as_str(tool_call.get("status")) == "error",
                                )
                            ],
                        ),
                        session_id=session_id,
                        timestamp=_as_str(tool_call.get("timestamp")) or timestamp,
                    )
                )

        if text:
            assistant_content.append(ContentBlock.text_block(text))

        converted.append(
            StreamMessage(
                type="assistant",
                engine="gemini",
                model=model,
                message=MessageBody(
                    role="assistant",
                    model=model,
                    content=assistant_content or [ContentBlock.text_block("")],
                ),
                uuid=msg_id,
                session_id=session_id,
                timestamp=timestamp,
            )
        )

        usage = extract_gemini_usage(raw.get("tokens"))
        if usage is not None:
            converted.append(
                StreamMessage(
                    type="result",
                    subtype="success",
                    engine="gemini",
                    model=model,
                    usage=usage,
                    uuid=f"{msg_id}:result" if msg_id else "",
                    session_id=session_id,
                    timestamp=timestamp,
                )
            )

    return converted


def _tool_result_text(tool_call: dict[str, Any]) -> str | None:
    """Pick the tool output, preferring the structured function response.

    Returns None when the call carries no output at all (still running).
    """
    result = tool_call.get("result")
    display = tool_call.get("resultDisplay")

    structured = _function_response_output(result)
    if structured is not None:
        return structured if isinstance(structured, str) else _dump(structured)
    if isinstance(display, str) and display:
        return display
    if isinstance(result, str):
        return result
    if result is not None:
        return _dump(result)
    if display is not None:
        return display if isinstance(display, str) else _dump(display)
    return None


def _function_response_output(result: object) -> object | None:
    if not isinstance(result, list) or not result:
        return None
    first = result[0]
    if not isinstance(first, dict):
        return None
    function_response = first.get("functionResponse")
    if not isinstance(function_response, dict):
        return None
    response = function_response.get("response")
    if not isinstance(response, dict):
        return None
    if "output" in response:
        return response["output"]
    return response.get("error")


def _extract_content_text(content: object) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        return _as_str(content.get("text"))
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and (text := _as_str(block.get("text"))):
                parts.append(text)
        return "\n".join(parts)
    return ""


def _extract_thoughts(thoughts: object) -> str:
    if isinstance(thoughts, str):
        return thoughts
    if not isinstance(thoughts, list):
        return ""
    parts: list[str] = []
    for item in thoughts:
        if isinstance(item, str):
            parts.append(item)
        elif isinstance(item, dict):
            subject = _as_str(item.get("subject"))
            description = _as_str(item.get("description"))
            if subject and description:
                parts.append(f"{subject}: {description}")
            else:
                parts.append(subject or description)
    return "\n".join(part for part in parts if part)


def _dump(value: object) -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except TypeError:
        return str(value)


def _as_str(value: object) -> str:
    return value if isinstance(value, str) else ""
