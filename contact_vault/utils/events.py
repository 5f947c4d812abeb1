"""
Minimal publish/subscribe bus for engine notifications.

The UI layer (or the CLI) subscribes to recovery events instead of the
engine reaching out to any particular front end.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

# Event names emitted by the recovery engine
EVENT_RECOVERED = "recovered"
EVENT_RECOVERY_ISSUE = "recovery-issue"

# Emitted events kept for inspection, oldest dropped first
HISTORY_LIMIT = 100

EventHandler = Callable[[str, dict[str, Any]], None]


class EventBus:
    """
    Synchronous event dispatcher.

    Handlers receive ``(event_name, payload)``. A failing handler is logged
    and does not prevent the remaining handlers from running.

    Usage:
        bus = EventBus()
        bus.subscribe("recovered", lambda name, payload: print(payload))
        bus.emit("recovered", {"source": "backup", "record_count": 10})
    """

    def __init__(self, history_limit: int = HISTORY_LIMIT) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._history: deque[tuple[str, dict[str, Any]]] = deque(maxlen=history_limit)

    @property
    def history(self) -> list[tuple[str, dict[str, Any]]]:
        """The most recent emitted events, oldest first."""
        return list(self._history)

    def subscribe(self, event: str, handler: EventHandler) -> None:
        """Register a handler for an event name."""
        self._handlers[event].append(handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        """Remove a previously registered handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        """Deliver an event to every subscribed handler."""
        self._history.append((event, dict(payload)))
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(event, payload)
            except Exception as e:
                logger.error(f"Error in event handler for {event}: {e}")


__all__ = [
    "EventBus",
    "EventHandler",
    "EVENT_RECOVERED",
    "EVENT_RECOVERY_ISSUE",
    "HISTORY_LIMIT",
]
