"""In-process live event transport."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict

from agentstream.services.protocols import EventHandler, Unlisten

logger = logging.getLogger(__name__)


class LocalEventBus:
    """Deliver events to listeners in emission order, one at a time."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    async def listen(self, event_name: str, handler: EventHandler) -> Unlisten:
        self._handlers[event_name].append(handler)

        def unlisten() -> None:
            handlers = self._handlers.get(event_name)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._handlers[event_name]

        return unlisten

    async def emit(self, event_name: str, payload: str = "") -> int:
        """Dispatch ``payload`` to every listener; returns how many were called."""
        handlers = list(self._handlers.get(event_name, ()))
        if not handlers:
            logger.debug("No listeners for %s", event_name)
        for handler in handlers:
            result = handler(payload)
            if inspect.isawaitable(result):
                await result
        return len(handlers)

    def listener_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, ()))
