"""Canonical message models shared by every engine adapter."""

from __future__ import annotations

from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, Field

MessageKind: TypeAlias = Literal["user", "assistant", "system", "result", "thinking", "tool_use"]
Engine: TypeAlias = Literal["claude", "codex", "gemini"]

MESSAGE_KINDS: frozenset[str] = frozenset(
    {"user", "assistant", "system", "result", "thinking", "tool_use"}
)
ENGINES: frozenset[str] = frozenset({"claude", "codex", "gemini"})


class TokenUsage(BaseModel):
    """Token usage attributed to a single model call or turn."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_read_tokens
            + self.cache_creation_tokens
        )


class ToolUseBlock(BaseModel):
    """A tool invocation issued by the assistant."""

    id: str = ""
    name: str = ""
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    """The output of a tool invocation, keyed back to its tool_use id."""

    tool_use_id: str = ""
    content: str = ""
    is_error: bool = False


class ContentBlock(BaseModel):
    """A single content block (text, thinking, tool_use, tool_result)."""

    type: str
    text: str = ""
    tool_use: ToolUseBlock | None = None
    tool_result: ToolResultBlock | None = None

    @classmethod
    def text_block(cls, text: str) -> ContentBlock:
        return cls(type="text", text=text)

    @classmethod
    def thinking_block(cls, text: str) -> ContentBlock:
        return cls(type="thinking", text=text)

    @classmethod
    def tool_use_block(
        cls, tool_id: str, name: str, tool_input: dict[str, Any] | None = None
    ) -> ContentBlock:
        return cls(
            type="tool_use",
            tool_use=ToolUseBlock(id=tool_id, name=name, input=tool_input or {}),
        )

    @classmethod
    def tool_result_block(
        cls, tool_use_id: str, content: str, *, is_error: bool = False
    ) -> ContentBlock:
        return cls(
            type="tool_result",
            tool_result=ToolResultBlock(
                tool_use_id=tool_use_id, content=content, is_error=is_error
            ),
        )


class MessageBody(BaseModel):
    """The nested message body as emitted by the primary engine."""

    id: str = ""
    role: str = ""
    model: str = ""
    content: list[ContentBlock] = Field(default_factory=list)
    usage: TokenUsage | None = None
    timestamp: str = ""


class CodexMetadata(BaseModel):
    """Codex-specific side data attached to converted events."""

    item_type: str = ""
    model: str = ""
    usage: TokenUsage | None = None


class StreamMessage(BaseModel):
    """The engine-agnostic message every downstream consumer works with."""

    type: MessageKind
    subtype: str = ""
    engine: Engine = "claude"
    model: str = ""
    message: MessageBody | None = None
    usage: TokenUsage | None = None
    id: str = ""
    uuid: str = ""
    session_id: str = ""
    timestamp: str = ""
    received_at: str = ""
    parent_tool_use_id: str | None = None
    is_sidechain: bool = False
    text: str = ""
    codex_metadata: CodexMetadata | None = None

    @property
    def content_blocks(self) -> list[ContentBlock]:
        if self.message is None:
            return []
        return self.message.content

    @property
    def is_subagent(self) -> bool:
        return bool(self.parent_tool_use_id) or self.is_sidechain
