"""Session lifecycle: history loading, active-session detection and live reattach."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from result import Err, Ok, Result

from agentstream.data.codex import CodexEventConverter
from agentstream.data.translate import (
    KindFilter,
    translate_gemini_detail,
    translate_history,
    translate_live_record,
)
from agentstream.models.messages import StreamMessage
from agentstream.models.sessions import CodexRateLimits, SessionPhase, SessionRef
from agentstream.services.protocols import (
    EventTransportProtocol,
    HistoryServiceProtocol,
    RunningSessionsProtocol,
    Unlisten,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MARKERS: tuple[str, ...] = (
    "Session file not found",
    "not found",
    "Session ID not found",
)

# Engines whose sessions are batch runs with no attachable process.
STATELESS_ENGINES: frozenset[str] = frozenset({"codex", "gemini"})

HISTORY_LOAD_ERROR = "Failed to load session history"


def is_not_found_error(message: str) -> bool:
    return any(marker in message for marker in NOT_FOUND_MARKERS)


def output_event(session_id: str) -> str:
    return f"claude-output:{session_id}"


def error_event(session_id: str) -> str:
    return f"claude-error:{session_id}"


def complete_event(session_id: str) -> str:
    return f"claude-complete:{session_id}"


@dataclass
class _LoadedHistory:
    messages: list[StreamMessage]
    raw_output: list[str]
    converter: CodexEventConverter = field(default_factory=CodexEventConverter)


class SessionLifecycle:
    """Drive one display slot through history load and live reattach.

    The latest requested session id acts as a race guard: a history load or
    active check that resolves after another session was requested is
    discarded without touching any state.
    """

    def __init__(
        self,
        history: HistoryServiceProtocol,
        running: RunningSessionsProtocol,
        transport: EventTransportProtocol,
        on_session_not_found: Callable[[], None] | None = None,
    ) -> None:
        self._history = history
        self._running = running
        self._transport = transport
        self._on_session_not_found = on_session_not_found

        self.messages: list[StreamMessage] = []
        self.raw_output: list[str] = []
        self.is_loading = False
        self.error: str | None = None
        self.active_session_id: str | None = None
        self.codex_rate_limits: CodexRateLimits | None = None
        self.phase = SessionPhase.IDLE

        self._loading_session_id: str | None = None
        self._session: SessionRef | None = None
        self._codex_converter = CodexEventConverter()
        self._kind_filter = KindFilter()
        self._unlisteners: list[Unlisten] = []
        self._is_listening = False
        self._has_active_session = False
        self._closed = False

    @property
    def is_listening(self) -> bool:
        return self._is_listening

    @property
    def has_active_session(self) -> bool:
        return self._has_active_session

    @property
    def session(self) -> SessionRef | None:
        return self._session

    async def load_history(self, session: SessionRef) -> None:
        """Fetch and translate a session's history; only the latest request applies."""
        requested_id = session.id
        if self.active_session_id is not None and self.active_session_id != requested_id:
            logger.debug("Detaching from %s to load %s", self.active_session_id, requested_id)
            self._detach()
        self._loading_session_id = requested_id
        self.is_loading = True
        self.error = None
        self.phase = SessionPhase.LOADING_HISTORY

        outcome = await self._fetch_history(session)

        if self._loading_session_id != requested_id or self._closed:
            logger.debug("Discarding superseded history load for %s", requested_id)
            return

        match outcome:
            case Ok(loaded):
                self._session = session
                self._codex_converter = loaded.converter
                self._kind_filter = KindFilter()
                self.messages = loaded.messages
                self.raw_output = loaded.raw_output
                if session.engine == "codex":
                    self.codex_rate_limits = loaded.converter.rate_limits
                self.is_loading = False
                self.phase = SessionPhase.HISTORY_LOADED
            case Err(message):
                self.is_loading = False
                self.phase = SessionPhase.HISTORY_LOAD_FAILED
                if is_not_found_error(message):
                    logger.debug("Session %s not found, treating as new", requested_id)
                    if self._on_session_not_found is not None:
                        self._on_session_not_found()
                    return
                logger.error("Failed to load session history for %s: %s", requested_id, message)
                self.error = HISTORY_LOAD_ERROR

    async def check_active(self, session: SessionRef) -> None:
        """Reattach to the session's live stream if its process is still running."""
        if session.engine in STATELESS_ENGINES:
            logger.debug("Skipping active check for %s session %s", session.engine, session.id)
            return
        if self._is_superseded(session.id):
            return

        self.phase = SessionPhase.CHECKING_ACTIVE
        try:
            result = await self._running.list_running_sessions()
        except Exception:
            logger.exception("Failed to check active session %s", session.id)
            self._settle_check(session.id)
            return

        if self._is_superseded(session.id) or self._closed:
            logger.debug("Discarding superseded active check for %s", session.id)
            return

        match result:
            case Err(message):
                logger.error("Failed to check active session %s: %s", session.id, message)
                self._settle_check(session.id)
            case Ok(processes):
                if any(process.session_id == session.id for process in processes):
                    logger.info("Found active session %s, reconnecting", session.id)
                    try:
                        await self.reconnect(session.id)
                    except Exception:
                        logger.exception("Failed to attach to active session %s", session.id)
                        self._settle_check(session.id)
                else:
                    self._settle_check(session.id)

    async def reconnect(self, session_id: str) -> None:
        """Subscribe to a session's live output, error and completion events."""
        if self._is_listening:
            logger.debug("Already listening, ignoring reconnect to %s", session_id)
            return

        self._teardown_listeners()
        self._is_listening = True
        self.active_session_id = session_id

        subscriptions = (
            (output_event(session_id), self._handle_output),
            (error_event(session_id), self._handle_error),
            (complete_event(session_id), self._handle_complete),
        )
        try:
            for event_name, handler in subscriptions:
                self._unlisteners.append(await self._transport.listen(event_name, handler))
        except Exception:
            self._detach()
            raise

        if self._closed or self.active_session_id != session_id:
            self._teardown_listeners()
            return
        self._has_active_session = True
        self.is_loading = True
        self.phase = SessionPhase.LISTENING

    def close(self) -> None:
        """Release listeners; later async results are ignored."""
        self._closed = True
        self._teardown_listeners()

    async def _fetch_history(self, session: SessionRef) -> Result[_LoadedHistory, str]:
        try:
            if session.engine == "gemini":
                detail = await self._history.get_gemini_session_detail(
                    session.project_path, session.id
                )
                if isinstance(detail, Err):
                    return detail
                raw_messages = detail.ok_value.get("messages")
                records: list[Any] = raw_messages if isinstance(raw_messages, list) else []
                return Ok(
                    _LoadedHistory(
                        messages=translate_gemini_detail(detail.ok_value),
                        raw_output=[json.dumps(record) for record in records],
                    )
                )

            result = await self._history.load_session_history(
                session.id, session.project_id, session.engine
            )
            if isinstance(result, Err):
                return result
            converter = CodexEventConverter()
            messages = translate_history(
                session.engine,
                result.ok_value,
                codex_converter=converter,
                kind_filter=KindFilter(),
            )
            return Ok(
                _LoadedHistory(
                    messages=messages,
                    raw_output=[json.dumps(record) for record in result.ok_value],
                    converter=converter,
                )
            )
        except Exception as exc:
            logger.exception("History fetch for %s raised", session.id)
            return Err(f"History fetch failed: {exc}")

    def _handle_output(self, payload: str) -> None:
        if self._closed:
            return
        self.raw_output.append(payload)
        try:
            record = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Failed to parse live message: %s", payload)
            return
        if not isinstance(record, dict):
            logger.warning("Ignoring non-object live message: %s", payload)
            return

        engine = self._session.engine if self._session is not None else "claude"
        message = translate_live_record(
            engine,
            record,
            codex_converter=self._codex_converter,
            kind_filter=self._kind_filter,
        )
        if message is None:
            return
        self.messages.append(message)
        if engine == "codex":
            self.codex_rate_limits = self._codex_converter.rate_limits

    def _handle_error(self, payload: str) -> None:
        logger.error("Session error: %s", payload)
        if not self._closed:
            self.error = payload

    def _handle_complete(self, payload: str) -> None:
        logger.info("Session %s completed", self.active_session_id)
        self._teardown_listeners()
        if self._closed:
            return
        self.is_loading = False
        self._has_active_session = False
        self.phase = SessionPhase.IDLE

    def _teardown_listeners(self) -> None:
        unlisteners, self._unlisteners = self._unlisteners, []
        for unlisten in unlisteners:
            unlisten()
        self._is_listening = False

    def _detach(self) -> None:
        self._teardown_listeners()
        self._has_active_session = False
        self.active_session_id = None

    def _is_superseded(self, session_id: str) -> bool:
        return self._loading_session_id is not None and self._loading_session_id != session_id

    def _settle_check(self, session_id: str) -> None:
        if not self._is_superseded(session_id):
            self.phase = SessionPhase.IDLE
