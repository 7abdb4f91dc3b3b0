"""Publish-cycle notifications.

Observers (signing, mirroring, auditing...) register handlers for the
events fired around a full repository generation. Handlers run
synchronously, in registration order, on the publishing thread.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List

from .logger import get_logger

logger = get_logger("events")


class RepositoryEvent(Enum):
    """Extension points of a publish cycle."""

    PRE_BUILD = "repository.pre_build"
    POST_BUILD = "repository.post_build"


@dataclass
class RepositoryBuildEvent:
    """Payload delivered to publish-cycle handlers.

    ``repository`` is a snapshot of the descriptor being published and
    ``path`` the publish destination (directory or image reference).
    """

    event: RepositoryEvent
    repository: Any
    path: str


EventHandler = Callable[[RepositoryBuildEvent], None]


class EventBus:
    """Explicit list of handlers per event."""

    def __init__(self) -> None:
        self._handlers: Dict[RepositoryEvent, List[EventHandler]] = {}

    def subscribe(self, event: RepositoryEvent, handler: EventHandler) -> None:
        """Register a handler for an event."""
        self._handlers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: RepositoryEvent, handler: EventHandler) -> None:
        """Remove a previously registered handler, if present."""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: RepositoryEvent, repository: Any, path: str) -> None:
        """Deliver an event to every handler registered for it.

        A handler raising propagates to the publisher and aborts the
        publish cycle.
        """
        payload = RepositoryBuildEvent(event=event, repository=repository, path=path)
        handlers = list(self._handlers.get(event, []))
        logger.debug(f"Publishing {event.value} to {len(handlers)} handler(s)")
        for handler in handlers:
            handler(payload)
