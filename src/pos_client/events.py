"""In-process event bus for auth signals.

The transport emits ``"unauthorized"`` after evicting a rejected credential;
UI or session layers subscribe to redirect or log out.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
import logging
from typing import Any

logger = logging.getLogger(__name__)

UNAUTHORIZED = "unauthorized"

type EventHandler = Callable[..., Any]


class EventBus:
    """Simple pub-sub scoped to one process."""

    def __init__(self) -> None:  # noqa: D107
        self._subscribers: defaultdict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event: str, handler: EventHandler) -> Callable[[], None]:
        """Register ``handler`` for ``event`` and return an unsubscribe callable."""
        self._subscribers[event].append(handler)

        def _unsubscribe() -> None:
            handlers = self._subscribers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def emit(self, event: str, **payload: Any) -> int:
        """Call every handler for ``event`` and return how many were called.

        Handler failures are logged and do not reach the emitter.
        """
        handlers = list(self._subscribers.get(event, []))
        for handler in handlers:
            try:
                handler(**payload)
            except Exception:
                logger.exception("Handler for event '%s' failed", event)
        return len(handlers)


# Process-wide bus used when a client is not given its own.
default_bus = EventBus()
