"""Stateful converter for Codex rollout records and exec --json events."""

from __future__ import annotations

import json
import logging
from typing import Any

from agentstream.data.claude import extract_content_text
from agentstream.data.usage import normalize_usage, to_number
from agentstream.models.messages import (
    CodexMetadata,
    ContentBlock,
    MessageBody,
    StreamMessage,
    TokenUsage,
)
from agentstream.models.sessions import CodexRateLimits, RateLimitWindow

logger = logging.getLogger(__name__)

THREAD_USAGE_ITEM_TYPE = "thread_token_usage_updated"


class CodexEventConverter:
    """Convert Codex events into canonical messages, one event at a time.

    The converter remembers the active model and the latest rate-limit
    snapshot across calls, so it must be reset between independent session
    loads.
    """

    def __init__(self) -> None:
        self._model = ""
        self._thread_id = ""
        self._rate_limits: CodexRateLimits | None = None

    def reset(self) -> None:
        self._model = ""
        self._thread_id = ""
        self._rate_limits = None

    @property
    def rate_limits(self) -> CodexRateLimits | None:
        return self._rate_limits

    @property
    def model(self) -> str:
        return self._model

    def convert_line(self, line: str) -> StreamMessage | None:
        """Parse and convert one JSONL line; malformed lines are dropped."""
        line = line.strip()
        if not line:
            return None
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Invalid Codex event payload: %s", line[:200])
            return None
        if not isinstance(event, dict):
            return None
        return self.convert_event(event)

    def convert_event(self, event: dict[str, Any]) -> StreamMessage | None:
        """Convert one event into zero or one message."""
        event_type = _as_str(event.get("type"))
        timestamp = _as_str(event.get("timestamp"))
        payload = _as_dict(event.get("payload"))

        match event_type:
            case "session_meta":
                self._thread_id = _as_str(payload.get("id")) or self._thread_id
                if model := _as_str(payload.get("model")):
                    self._model = model
                return self._system("init", timestamp, item_type="session_meta")
            case "turn_context":
                if model := _as_str(payload.get("model")):
                    self._model = model
                return None
            case "response_item":
                return self._convert_response_item(payload, timestamp)
            case "event_msg":
                return self._convert_event_msg(payload, timestamp)
            case "thread.started":
                self._thread_id = _as_str(event.get("thread_id")) or self._thread_id
                return self._system("init", timestamp, item_type="thread.started")
            case "item.completed":
                return self._convert_item(_as_dict(event.get("item")), timestamp)
            case "turn.completed":
                usage = _codex_usage(event.get("usage"))
                if usage is None:
                    return None
                return self._system(
                    "turn_completed", timestamp, item_type="turn_completed", usage=usage
                )
            case "thread.token_usage.updated" | "thread_token_usage_updated":
                raw_usage = event.get("usage") or _as_dict(event.get("info")).get(
                    "total_token_usage"
                )
                usage = _codex_usage(raw_usage)
                if usage is None:
                    return None
                return self._system(
                    "token_usage", timestamp, item_type=THREAD_USAGE_ITEM_TYPE, usage=usage
                )
            case "turn.failed":
                error = _as_dict(event.get("error"))
                return self._system(
                    "error", timestamp, item_type="turn.failed", text=_as_str(error.get("message"))
                )
            case "error":
                return self._system(
                    "error", timestamp, item_type="error", text=_as_str(event.get("message"))
                )
            case _:
                return None

    def _convert_response_item(
        self, payload: dict[str, Any], timestamp: str
    ) -> StreamMessage | None:
        payload_type = _as_str(payload.get("type"))

        match payload_type:
            case "message":
                role = _as_str(payload.get("role"))
                if role not in {"user", "assistant"}:
                    return None
                blocks = _parse_codex_content(payload.get("content"))
                if not blocks:
                    return None
                return self._message(
                    role, blocks, timestamp, item_type="message", body_id=_as_str(payload.get("id"))
                )
            case "function_call" | "custom_tool_call":
                call_id = _as_str(payload.get("call_id")) or _as_str(payload.get("id"))
                tool_name = _as_str(payload.get("name")) or "tool"
                raw_args = payload.get("arguments", payload.get("input"))
                return self._message(
                    "assistant",
                    [ContentBlock.tool_use_block(call_id, tool_name, _parse_arguments(raw_args))],
                    timestamp,
                    item_type=payload_type,
                )
            case "function_call_output" | "custom_tool_call_output":
                output = _extract_function_output(payload.get("output"))
                return self._message(
                    "user",
                    [ContentBlock.tool_result_block(_as_str(payload.get("call_id")), output)],
                    timestamp,
                    item_type=payload_type,
                )
            case "web_search_call":
                action = _as_dict(payload.get("action"))
                return self._message(
                    "assistant",
                    [
                        ContentBlock.tool_use_block(
                            _as_str(payload.get("id")), "web_search", action
                        )
                    ],
                    timestamp,
                    item_type=payload_type,
                )
            case "reasoning":
                thinking = _extract_reasoning(payload)
                if not thinking:
                    return None
                return self._message(
                    "assistant",
                    [ContentBlock.thinking_block(thinking)],
                    timestamp,
                    item_type=payload_type,
                )
            case _:
                return None

    def _convert_event_msg(self, payload: dict[str, Any], timestamp: str) -> StreamMessage | None:
        if _as_str(payload.get("type")) != "token_count":
            # agent_message/user_message events duplicate response items.
            return None

        rate_limits = payload.get("rate_limits")
        if isinstance(rate_limits, dict):
            self._rate_limits = _parse_rate_limits(rate_limits, timestamp)

        info = _as_dict(payload.get("info"))
        usage = _codex_usage(info.get("last_token_usage"))
        if usage is None:
            return None
        return self._system("token_count", timestamp, item_type="token_count", usage=usage)

    def _convert_item(self, item: dict[str, Any], timestamp: str) -> StreamMessage | None:
        item_type = _as_str(item.get("type"))
        item_id = _as_str(item.get("id"))

        match item_type:
            case "agent_message":
                text = _as_str(item.get("text"))
                if not text:
                    return None
                blocks = [ContentBlock.text_block(text)]
            case "reasoning":
                text = _as_str(item.get("text"))
                if not text:
                    return None
                blocks = [ContentBlock.thinking_block(text)]
            case "command_execution":
                exit_code = to_number(item.get("exit_code"))
                failed = _as_str(item.get("status")) == "failed" or (
                    exit_code is not None and exit_code != 0
                )
                blocks = [
                    ContentBlock.tool_use_block(
                        item_id, "shell", {"command": _as_str(item.get("command"))}
                    ),
                    ContentBlock.tool_result_block(
                        item_id, _as_str(item.get("aggregated_output")), is_error=failed
                    ),
                ]
            case "file_change":
                status = _as_str(item.get("status"))
                changes = item.get("changes")
                blocks = [
                    ContentBlock.tool_use_block(
                        item_id,
                        "apply_patch",
                        {"changes": changes if isinstance(changes, list) else []},
                    ),
                    ContentBlock.tool_result_block(item_id, status, is_error=status == "failed"),
                ]
            case "mcp_tool_call":
                server = _as_str(item.get("server"))
                tool = _as_str(item.get("tool")) or "tool"
                error = _as_dict(item.get("error"))
                result_text = _as_str(error.get("message")) or extract_content_text(
                    _as_dict(item.get("result")).get("content")
                )
                blocks = [
                    ContentBlock.tool_use_block(
                        item_id,
                        f"{server}.{tool}" if server else tool,
                        _parse_arguments(item.get("arguments")),
                    ),
                    ContentBlock.tool_result_block(item_id, result_text, is_error=bool(error)),
                ]
            case "web_search":
                blocks = [
                    ContentBlock.tool_use_block(
                        item_id, "web_search", {"query": _as_str(item.get("query"))}
                    )
                ]
            case "todo_list":
                items = item.get("items")
                blocks = [
                    ContentBlock.tool_use_block(
                        item_id, "update_plan", {"items": items if isinstance(items, list) else []}
                    )
                ]
            case "error":
                return self._system(
                    "error", timestamp, item_type="error", text=_as_str(item.get("message"))
                )
            case _:
                return None

        return self._message("assistant", blocks, timestamp, item_type=item_type)

    def _message(
        self,
        role: str,
        blocks: list[ContentBlock],
        timestamp: str,
        *,
        item_type: str,
        body_id: str = "",
    ) -> StreamMessage:
        return StreamMessage(
            type="assistant" if role == "assistant" else "user",
            engine="codex",
            model=self._model,
            message=MessageBody(id=body_id, role=role, model=self._model, content=blocks),
            session_id=self._thread_id,
            timestamp=timestamp,
            codex_metadata=CodexMetadata(item_type=item_type, model=self._model),
        )

    def _system(
        self,
        subtype: str,
        timestamp: str,
        *,
        item_type: str,
        usage: TokenUsage | None = None,
        text: str = "",
    ) -> StreamMessage:
        return StreamMessage(
            type="system",
            subtype=subtype,
            engine="codex",
            model=self._model,
            usage=usage,
            session_id=self._thread_id,
            timestamp=timestamp,
            text=text,
            codex_metadata=CodexMetadata(item_type=item_type, model=self._model),
        )


def _codex_usage(raw: object) -> TokenUsage | None:
    """Normalize Codex usage; reported input tokens include the cached ones."""
    if not isinstance(raw, dict):
        return None
    usage = normalize_usage(raw)
    if usage is None:
        return None
    cached = usage.cache_read_tokens
    if cached:
        usage = usage.model_copy(update={"input_tokens": max(usage.input_tokens - cached, 0)})
    return usage


def _parse_rate_limits(raw: dict[str, Any], timestamp: str) -> CodexRateLimits:
    return CodexRateLimits(
        primary=_parse_rate_window(raw.get("primary")),
        secondary=_parse_rate_window(raw.get("secondary")),
        updated_at=timestamp,
    )


def _parse_rate_window(raw: object) -> RateLimitWindow | None:
    if not isinstance(raw, dict):
        return None
    window = to_number(raw.get("window_minutes"))
    resets = to_number(raw.get("resets_in_seconds"))
    return RateLimitWindow(
        used_percent=to_number(raw.get("used_percent")) or 0.0,
        window_minutes=int(window) if window is not None else None,
        resets_in_seconds=int(resets) if resets is not None else None,
    )


def _parse_codex_content(raw_content: object) -> list[ContentBlock]:
    if isinstance(raw_content, str):
        return [ContentBlock.text_block(raw_content)] if raw_content else []
    if not isinstance(raw_content, list):
        return []

    blocks: list[ContentBlock] = []
    for block in raw_content:
        if isinstance(block, str):
            blocks.append(ContentBlock.text_block(block))
            continue
        if not isinstance(block, dict):
            continue
        text = _as_str(block.get("text"))
        if text:
            blocks.append(ContentBlock.text_block(text))
    return blocks


def _parse_arguments(raw: object) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        stripped = raw.strip()
        if not stripped:
            return {}
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError:
            return {"input": raw}
        return parsed if isinstance(parsed, dict) else {"input": parsed}
    return {}


def _extract_function_output(value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        output = value.get("output")
        if isinstance(output, str):
            return output
        return json.dumps(value, ensure_ascii=False)
    return _as_str(value)


def _extract_reasoning(payload: dict[str, Any]) -> str:
    summary = payload.get("summary")
    if isinstance(summary, list):
        parts = [
            _as_str(block.get("text"))
            for block in summary
            if isinstance(block, dict) and _as_str(block.get("text"))
        ]
        if parts:
            return "\n".join(parts)
    return _as_str(payload.get("content"))


def _as_dict(value: object) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: object) -> str:
    return value if isinstance(value, str) else ""
