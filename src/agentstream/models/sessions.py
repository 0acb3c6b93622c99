"""Session-level models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from agentstream.models.messages import Engine


class SessionPhase(StrEnum):
    """States of the session reconnection controller."""

    IDLE = "idle"
    LOADING_HISTORY = "loading_history"
    HISTORY_LOADED = "history_loaded"
    HISTORY_LOAD_FAILED = "history_load_failed"
    CHECKING_ACTIVE = "checking_active"
    LISTENING = "listening"


class SessionRef(BaseModel):
    """Identifies a session and the engine that owns it."""

    id: str
    project_id: str = ""
    project_path: str = ""
    engine: Engine = "claude"


class RunningProcess(BaseModel):
    """A process descriptor returned by the running-sessions query."""

    pid: int = 0
    process_type: dict[str, Any] = Field(default_factory=dict)

    @property
    def session_id(self) -> str | None:
        claude = self.process_type.get("ClaudeSession")
        if isinstance(claude, dict):
            value = claude.get("session_id")
            if isinstance(value, str) and value:
                return value
        return None


class RateLimitWindow(BaseModel):
    """One Codex rate-limit window snapshot."""

    used_percent: float = 0.0
    window_minutes: int | None = None
    resets_in_seconds: int | None = None


class CodexRateLimits(BaseModel):
    """Latest rate-limit metadata reported by a Codex session."""

    primary: RateLimitWindow | None = None
    secondary: RateLimitWindow | None = None
    updated_at: str = ""
