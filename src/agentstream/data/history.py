"""File-backed history service over the engines' local session stores."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

from result import Err, Ok, Result

from agentstream.config import Config

logger = logging.getLogger(__name__)


def read_jsonl_records(path: Path) -> list[dict[str, Any]]:
    """Read a JSONL file into a list of records, skipping invalid lines."""
    records: list[dict[str, Any]] = []
    with open(path, encoding="utf-8") as file:
        for line_num, line in enumerate(file, 1):
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Invalid JSON at %s:%d", path, line_num)
                continue
            if isinstance(raw, dict):
                records.append(raw)
    return records


def read_json_document(path: Path) -> dict[str, Any] | None:
    """Read a whole-file JSON object, or None if it is missing or invalid."""
    try:
        with open(path, encoding="utf-8") as file:
            payload = json.load(file)
    except (json.JSONDecodeError, OSError):
        logger.warning("Invalid JSON file: %s", path)
        return None
    return payload if isinstance(payload, dict) else None


class FileHistoryService:
    """Load native session history from ~/.claude, ~/.codex and ~/.gemini."""

    def __init__(self, config: Config) -> None:
        self._config = config

    async def load_session_history(
        self, session_id: str, project_id: str, engine: str
    ) -> Result[list[dict[str, Any]], str]:
        """Return the ordered native records of a Claude or Codex session."""
        if engine == "codex":
            path = self.find_codex_session(session_id)
        else:
            path = self.find_claude_session(session_id, project_id)
        if path is None:
            return Err(f"Session file not found: {session_id}")
        try:
            return Ok(read_jsonl_records(path))
        except OSError as exc:
            return Err(f"Failed to read session {session_id}: {exc}")

    async def get_gemini_session_detail(
        self, project_path: str, session_id: str
    ) -> Result[dict[str, Any], str]:
        """Return the Gemini session detail document for a session."""
        path = self.find_gemini_session(session_id, project_path)
        if path is None:
            return Err(f"Session file not found: {session_id}")
        payload = read_json_document(path)
        if payload is None:
            return Err(f"Failed to read Gemini session {session_id}")
        return Ok(payload)

    def find_claude_session(self, session_id: str, project_id: str = "") -> Path | None:
        projects_dir = self._config.projects_dir
        if project_id:
            candidate = projects_dir / project_id / f"{session_id}.jsonl"
            if candidate.is_file():
                return candidate
        if not projects_dir.is_dir():
            return None
        return next(iter(sorted(projects_dir.glob(f"*/{session_id}.jsonl"))), None)

    def find_codex_session(self, session_id: str) -> Path | None:
        sessions_dir = self._config.codex_sessions_dir
        if not sessions_dir.is_dir():
            return None
        return next(iter(sorted(sessions_dir.rglob(f"*{session_id}*.jsonl"))), None)

    def find_gemini_session(self, session_id: str, project_path: str = "") -> Path | None:
        tmp_dir = self._config.gemini_tmp_dir
        if not tmp_dir.is_dir():
            return None
        if project_path:
            digest = hashlib.sha256(project_path.encode("utf-8")).hexdigest()
            search_roots = [tmp_dir / digest]
        else:
            search_roots = [tmp_dir]
        for root in search_roots:
            for path in sorted(root.rglob("session-*.json")):
                payload = read_json_document(path)
                if payload is not None and payload.get("sessionId") == session_id:
                    return path
        return None
