"""Shared fixtures for agentstream tests."""

from __future__ import annotations

import asyncio
import hashlib
import shutil
from pathlib import Path
from typing import Any

import pytest
from result import Err, Ok, Result

from agentstream.config import Config
from agentstream.models.sessions import RunningProcess
from agentstream.services.events import LocalEventBus

DATA_ROOT = Path(__file__).parent / "data"
CLAUDE_SESSION_PATH = DATA_ROOT / "claude_session.jsonl"
CODEX_ROLLOUT_PATH = DATA_ROOT / "codex_rollout.jsonl"
GEMINI_SESSION_PATH = DATA_ROOT / "gemini_session.json"

CLAUDE_PROJECT_ID = "-tmp-test-project"
CODEX_SESSION_ID = "0199a1b2-codex-thread-1"
GEMINI_PROJECT_PATH = "/tmp/test-project"


class FakeHistoryService:
    """History service returning canned results, optionally held behind a gate."""

    def __init__(self) -> None:
        self.histories: dict[str, Result[list[dict[str, Any]], str]] = {}
        self.gemini_details: dict[str, Result[dict[str, Any], str]] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.raise_for: dict[str, Exception] = {}

    async def load_session_history(
        self, session_id: str, project_id: str, engine: str
    ) -> Result[list[dict[str, Any]], str]:
        self.calls.append((session_id, project_id, engine))
        await self._wait(session_id)
        return self.histories.get(session_id, Err(f"Session file not found: {session_id}"))

    async def get_gemini_session_detail(
        self, project_path: str, session_id: str
    ) -> Result[dict[str, Any], str]:
        self.calls.append((session_id, project_path, "gemini"))
        await self._wait(session_id)
        return self.gemini_details.get(session_id, Err(f"Session file not found: {session_id}"))

    async def _wait(self, session_id: str) -> None:
        gate = self.gates.get(session_id)
        if gate is not None:
            await gate.wait()
        if session_id in self.raise_for:
            raise self.raise_for[session_id]


class FakeRunningSessions:
    """Running-sessions query with a settable outcome."""

    def __init__(self) -> None:
        self.result: Result[list[RunningProcess], str] = Ok([])
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls = 0

    def set_running(self, *session_ids: str) -> None:
        self.result = Ok(
            [
                RunningProcess(pid=1000 + i, process_type={"ClaudeSession": {"session_id": sid}})
                for i, sid in enumerate(session_ids)
            ]
        )

    async def list_running_sessions(self) -> Result[list[RunningProcess], str]:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def claude_session_path() -> Path:
    """Path to the sample Claude session JSONL file."""
    return CLAUDE_SESSION_PATH


@pytest.fixture
def codex_rollout_path() -> Path:
    """Path to the sample Codex rollout JSONL file."""
    return CODEX_ROLLOUT_PATH


@pytest.fixture
def gemini_session_path() -> Path:
    """Path to the sample Gemini session JSON file."""
    return GEMINI_SESSION_PATH


@pytest.fixture
def engine_config(tmp_path: Path) -> Config:
    """Config whose engine directories hold one sample session each."""
    claude_dir = tmp_path / ".claude"
    codex_dir = tmp_path / ".codex"
    gemini_dir = tmp_path / ".gemini"

    project_dir = claude_dir / "projects" / CLAUDE_PROJECT_ID
    project_dir.mkdir(parents=True)
    shutil.copy(CLAUDE_SESSION_PATH, project_dir / "sess-claude.jsonl")

    rollout_dir = codex_dir / "sessions" / "2026" / "02" / "01"
    rollout_dir.mkdir(parents=True)
    shutil.copy(
        CODEX_ROLLOUT_PATH, rollout_dir / f"rollout-2026-02-01T09-00-00-{CODEX_SESSION_ID}.jsonl"
    )

    digest = hashlib.sha256(GEMINI_PROJECT_PATH.encode("utf-8")).hexdigest()
    chats_dir = gemini_dir / "tmp" / digest / "chats"
    chats_dir.mkdir(parents=True)
    shutil.copy(GEMINI_SESSION_PATH, chats_dir / "session-2026-03-01T12-00-gem1.json")

    return Config(claude_dir=claude_dir, codex_dir=codex_dir, gemini_dir=gemini_dir)


@pytest.fixture
def fake_history() -> FakeHistoryService:
    return FakeHistoryService()


@pytest.fixture
def fake_running() -> FakeRunningSessions:
    return FakeRunningSessions()


@pytest.fixture
def event_bus() -> LocalEventBus:
    return LocalEventBus()
