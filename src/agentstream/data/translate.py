"""Translation pipeline shared by history loading and live output."""

from __future__ import annotations

import logging
from typing import Any

from agentstream.data.claude import adapt_claude_record
from agentstream.data.codex import CodexEventConverter
from agentstream.data.gemini import convert_gemini_session_detail
from agentstream.data.usage import normalize_usage
from agentstream.models.messages import MESSAGE_KINDS, StreamMessage

logger = logging.getLogger(__name__)


class KindFilter:
    """Drop records whose type is outside the canonical kind set.

    Persisted history may contain record types this library does not know
    (queue operations, file snapshots, future additions); each distinct
    unknown type is logged once per filter instance.
    """

    def __init__(self) -> None:
        self._warned: set[str] = set()

    @property
    def filtered_types(self) -> frozenset[str]:
        return frozenset(self._warned)

    def accepts(self, record: dict[str, Any]) -> bool:
        record_type = record.get("type")
        if not isinstance(record_type, str) or not record_type:
            return True
        if record_type in MESSAGE_KINDS:
            return True
        if record_type not in self._warned:
            self._warned.add(record_type)
            logger.debug("Filtering out message type: %s", record_type)
        return False


def normalize_usage_fields(message: StreamMessage) -> StreamMessage:
    """Normalize usage at top level, in the nested body and in Codex metadata."""
    if message.usage is not None:
        message.usage = normalize_usage(message.usage)
    if message.message is not None and message.message.usage is not None:
        message.message.usage = normalize_usage(message.message.usage)
    if message.codex_metadata is not None and message.codex_metadata.usage is not None:
        message.codex_metadata.usage = normalize_usage(message.codex_metadata.usage)
    return message


def translate_history(
    engine: str,
    records: list[dict[str, Any]],
    *,
    codex_converter: CodexEventConverter | None = None,
    kind_filter: KindFilter | None = None,
) -> list[StreamMessage]:
    """Convert a persisted record list for ``engine`` into canonical messages."""
    kind_filter = kind_filter or KindFilter()
    messages: list[StreamMessage] = []

    if engine == "codex":
        converter = codex_converter or CodexEventConverter()
        converter.reset()
        for record in records:
            if not isinstance(record, dict):
                continue
            converted = converter.convert_event(record)
            if converted is not None:
                messages.append(normalize_usage_fields(converted))
        return messages

    for record in records:
        if not isinstance(record, dict) or not kind_filter.accepts(record):
            continue
        parsed = adapt_claude_record(record)
        if parsed is not None:
            messages.append(normalize_usage_fields(parsed))
    return messages


def translate_gemini_detail(detail: dict[str, Any]) -> list[StreamMessage]:
    """Convert a Gemini session detail into canonical messages."""
    return [normalize_usage_fields(message) for message in convert_gemini_session_detail(detail)]


def translate_live_record(
    engine: str,
    record: dict[str, Any],
    *,
    codex_converter: CodexEventConverter | None = None,
    kind_filter: KindFilter | None = None,
) -> StreamMessage | None:
    """Convert one live stream record, applying the history pipeline rules."""
    if engine == "codex":
        converted = (codex_converter or CodexEventConverter()).convert_event(record)
        return normalize_usage_fields(converted) if converted is not None else None

    if kind_filter is not None and not kind_filter.accepts(record):
        return None
    parsed = adapt_claude_record(record)
    return normalize_usage_fields(parsed) if parsed is not None else None
