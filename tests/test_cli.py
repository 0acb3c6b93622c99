"""CLI and entrypoint tests."""

from __future__ import annotations

import json
import runpy
from pathlib import Path

import pytest
from typer.testing import CliRunner

from agentstream.cli import app, describe_group
from agentstream.config import Config
from agentstream.models.groups import AggregatedGroup
from agentstream.models.messages import StreamMessage

runner = CliRunner()


def _dir_options(config: Config) -> list[str]:
    return [
        "--claude-dir",
        str(config.claude_dir),
        "--codex-dir",
        str(config.codex_dir),
        "--gemini-dir",
        str(config.gemini_dir),
    ]


def test_ledger_text_output(claude_session_path: Path) -> None:
    result = runner.invoke(app, ["ledger", str(claude_session_path)])
    assert result.exit_code == 0
    assert "Billable events: 2" in result.output
    assert "Tokens: 1,190" in result.output
    assert "message:msg_01" in result.output


def test_ledger_json_output(codex_rollout_path: Path) -> None:
    result = runner.invoke(app, ["ledger", str(codex_rollout_path), "--engine", "codex", "--json"])
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["billable_event_count"] == 2
    assert payload["totals"]["total_tokens"] == 2800
    assert "message" not in payload["events"][0]
    assert payload["events"][0]["model"] == "gpt-5-codex"


def test_ledger_gemini_file(gemini_session_path: Path) -> None:
    result = runner.invoke(app, ["ledger", str(gemini_session_path), "-e", "gemini", "--json"])
    assert result.exit_code == 0
    assert json.loads(result.output)["totals"]["total_tokens"] == 650


def test_ledger_missing_file(tmp_path: Path) -> None:
    result = runner.invoke(app, ["ledger", str(tmp_path / "missing.jsonl")])
    assert result.exit_code == 1


def test_groups_output(claude_session_path: Path) -> None:
    result = runner.invoke(app, ["groups", str(claude_session_path)])
    assert result.exit_code == 0
    lines = result.output.strip().splitlines()
    assert lines == [
        "[0] user: help me fix a bug",
        "[1] thinking x1",
        "[2] tool x2",
        "[4] system: <command-name>/cost</command-name>",
        "[5] assistant: Fixed the bug.",
    ]


def test_session_command_resolves_claude(engine_config: Config) -> None:
    result = runner.invoke(
        app,
        [*_dir_options(engine_config), "session", "sess-claude", "--project", "-tmp-test-project"],
    )
    assert result.exit_code == 0
    assert "Billable events: 2" in result.output


def test_session_command_resolves_gemini(engine_config: Config) -> None:
    result = runner.invoke(
        app, [*_dir_options(engine_config), "session", "gem-1", "--engine", "gemini"]
    )
    assert result.exit_code == 0
    assert "Billable events: 2" in result.output


def test_session_command_not_found(engine_config: Config) -> None:
    result = runner.invoke(app, [*_dir_options(engine_config), "session", "nope"])
    assert result.exit_code == 1


def test_describe_aggregated_group() -> None:
    node = AggregatedGroup(
        messages=[StreamMessage(type="tool_use")] * 2, index=7, aggregate_type="tool"
    )
    assert describe_group(node) == "[7] tool x2"


def test_python_module_entrypoint_invokes_cli_app(monkeypatch: pytest.MonkeyPatch) -> None:
    called = {"count": 0}

    def fake_app() -> None:
        called["count"] += 1

    monkeypatch.setattr("agentstream.cli.app", fake_app)
    runpy.run_module("agentstream.__main__", run_name="__main__")
    assert called["count"] == 1
