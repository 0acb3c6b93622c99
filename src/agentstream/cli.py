"""Typer CLI for agentstream: ledger, groups and session commands."""

from __future__ import annotations

import asyncio
import json
import logging
from enum import StrEnum
from pathlib import Path
from typing import Annotated

import typer
from result import Err, Result

from agentstream.config import Config
from agentstream.data.history import FileHistoryService, read_json_document, read_jsonl_records
from agentstream.data.translate import translate_gemini_detail, translate_history
from agentstream.models.billing import SessionCostAggregation
from agentstream.models.groups import AggregatedGroup, MessageGroup, NormalGroup
from agentstream.models.messages import StreamMessage
from agentstream.services.billing import aggregate_session_cost
from agentstream.services.grouping import group_messages

app = typer.Typer(
    name="agentstream",
    help="Reconcile Claude, Codex and Gemini session streams into one message model.",
    no_args_is_help=True,
)


class EngineChoice(StrEnum):
    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"


EngineOption = Annotated[
    EngineChoice,
    typer.Option("--engine", "-e", help="Engine that wrote the session"),
]


@app.callback()
def main(
    ctx: typer.Context,
    claude_dir: Annotated[
        Path | None,
        typer.Option("--claude-dir", help="Path to Claude data directory"),
    ] = None,
    codex_dir: Annotated[
        Path | None,
        typer.Option("--codex-dir", help="Path to Codex data directory"),
    ] = None,
    gemini_dir: Annotated[
        Path | None,
        typer.Option("--gemini-dir", help="Path to Gemini data directory"),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Configure logging and the engine data directories."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = Config(
        claude_dir=claude_dir or Path.home() / ".claude",
        codex_dir=codex_dir or Path.home() / ".codex",
        gemini_dir=gemini_dir or Path.home() / ".gemini",
    )


@app.command()
def ledger(
    session_file: Annotated[Path, typer.Argument(help="Session JSONL (or Gemini JSON) file")],
    engine: EngineOption = EngineChoice.CLAUDE,
    as_json: Annotated[bool, typer.Option("--json", help="Print the ledger as JSON")] = False,
) -> None:
    """Print the deduplicated billing ledger of a session file."""
    messages = _load_session_file(session_file, engine)
    aggregation = aggregate_session_cost(messages)
    if as_json:
        typer.echo(json.dumps(ledger_payload(aggregation), indent=2))
    else:
        _echo_ledger(aggregation)


@app.command()
def groups(
    session_file: Annotated[Path, typer.Argument(help="Session JSONL (or Gemini JSON) file")],
    engine: EngineOption = EngineChoice.CLAUDE,
) -> None:
    """Print the grouped display tree of a session file."""
    messages = _load_session_file(session_file, engine)
    for node in group_messages(messages):
        typer.echo(describe_group(node))


@app.command()
def session(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session id to resolve")],
    engine: EngineOption = EngineChoice.CLAUDE,
    project: Annotated[
        str,
        typer.Option("--project", help="Claude project id or Gemini project path"),
    ] = "",
) -> None:
    """Resolve a session by id under the engine directories and print its ledger."""
    config: Config = ctx.obj
    result = asyncio.run(_load_session(config, session_id, engine, project))
    if isinstance(result, Err):
        typer.echo(result.err_value, err=True)
        raise typer.Exit(code=1)
    _echo_ledger(aggregate_session_cost(result.ok_value))


async def _load_session(
    config: Config, session_id: str, engine: EngineChoice, project: str
) -> Result[list[StreamMessage], str]:
    """Fetch a session through the file history service and translate it."""
    service = FileHistoryService(config)
    if engine is EngineChoice.GEMINI:
        detail = await service.get_gemini_session_detail(project, session_id)
        return detail.map(translate_gemini_detail)
    records = await service.load_session_history(session_id, project, engine.value)
    return records.map(lambda items: translate_history(engine.value, items))


def _load_session_file(path: Path, engine: EngineChoice) -> list[StreamMessage]:
    if not path.is_file():
        typer.echo(f"Session file not found: {path}", err=True)
        raise typer.Exit(code=1)
    if engine is EngineChoice.GEMINI:
        detail = read_json_document(path)
        if detail is None:
            typer.echo(f"Invalid Gemini session file: {path}", err=True)
            raise typer.Exit(code=1)
        return translate_gemini_detail(detail)
    return translate_history(engine.value, read_jsonl_records(path))


def ledger_payload(aggregation: SessionCostAggregation) -> dict[str, object]:
    """JSON-ready ledger without the full source messages."""
    return {
        "totals": aggregation.totals.model_dump(),
        "billable_event_count": aggregation.billable_event_count,
        "first_event_timestamp_ms": aggregation.first_event_timestamp_ms,
        "last_event_timestamp_ms": aggregation.last_event_timestamp_ms,
        "events": [
            event.model_dump(mode="json", exclude={"message"}) for event in aggregation.events
        ],
    }


def _echo_ledger(aggregation: SessionCostAggregation) -> None:
    totals = aggregation.totals
    typer.echo(f"Billable events: {aggregation.billable_event_count}")
    typer.echo(f"Total cost: ${totals.total_cost:.4f}")
    typer.echo(
        f"Tokens: {totals.total_tokens:,} "
        f"(input {totals.input_tokens:,}, output {totals.output_tokens:,}, "
        f"cache read {totals.cache_read_tokens:,}, cache write {totals.cache_write_tokens:,})"
    )
    for event in aggregation.events:
        typer.echo(
            f"  {event.timestamp or '-'}  {event.model}  "
            f"{event.tokens.total_tokens:,} tokens  ${event.cost:.4f}  {event.key}"
        )


def describe_group(node: MessageGroup) -> str:
    """One-line summary of a display node."""
    if isinstance(node, NormalGroup):
        return f"[{node.index}] {node.message.type}: {_preview(node.message)}"
    if isinstance(node, AggregatedGroup):
        return f"[{node.index}] {node.aggregate_type} x{len(node.messages)}"
    group = node.group
    label = group.subagent_type or "subagent"
    return (
        f"[{group.start_index}] {label} {group.task_tool_use_id}: "
        f"{len(group.subagent_messages)} messages"
    )


def _preview(message: StreamMessage, limit: int = 60) -> str:
    for block in message.content_blocks:
        if block.type == "text" and block.text.strip():
            line = block.text.strip().splitlines()[0]
            return line if len(line) <= limit else line[: limit - 3] + "..."
        if block.type == "tool_use" and block.tool_use is not None:
            return f"<tool_use {block.tool_use.name}>"
        if block.type == "tool_result":
            return "<tool_result>"
        if block.type == "thinking":
            return "<thinking>"
    return message.text[:limit] if message.text else message.subtype
