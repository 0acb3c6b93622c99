"""Protocol definitions for the collaborators of the session lifecycle."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeAlias

from result import Result

from agentstream.models.sessions import RunningProcess

EventHandler: TypeAlias = Callable[[str], Awaitable[None] | None]
Unlisten: TypeAlias = Callable[[], None]


class HistoryServiceProtocol(Protocol):
    """Fetches the native history of a session."""

    async def load_session_history(
        self, session_id: str, project_id: str, engine: str
    ) -> Result[list[dict[str, Any]], str]: ...

    async def get_gemini_session_detail(
        self, project_path: str, session_id: str
    ) -> Result[dict[str, Any], str]: ...


class RunningSessionsProtocol(Protocol):
    """Lists the engine processes that are currently running."""

    async def list_running_sessions(self) -> Result[list[RunningProcess], str]: ...


class EventTransportProtocol(Protocol):
    """Delivers named live events (output, error, completion) per session."""

    async def listen(self, event_name: str, handler: EventHandler) -> Unlisten: ...
