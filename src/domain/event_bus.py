"""
In-process event bus for care-team events.

Handlers run after the producing unit of work has committed. A failing
handler is logged and never undoes or blocks the committed write.
"""

import inspect
import logging
from typing import Callable, Dict, List, Optional, Type

from .events import DomainEvent


logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], object]


class EventBus:
    """
    Delivers each published event to the handlers of its type, then to
    the catch-all handlers.

    A handler may be a plain callable or a coroutine function; awaitable
    results are awaited in subscription order.
    """

    def __init__(self):
        self._by_type: Dict[Type[DomainEvent], List[Handler]] = {}
        self._catch_all: List[Handler] = []

    def subscribe(self, event_type: Type[DomainEvent], handler: Handler) -> None:
        """Call ``handler`` for every event of exactly ``event_type``."""
        self._by_type.setdefault(event_type, []).append(handler)
        logger.debug("Subscribed %r to %s", handler, event_type.__name__)

    def subscribe_all(self, handler: Handler) -> None:
        """Call ``handler`` for every event."""
        self._catch_all.append(handler)

    def handlers_for(self, event: DomainEvent) -> List[Handler]:
        return self._by_type.get(type(event), []) + self._catch_all

    async def publish_async(self, event: DomainEvent) -> None:
        for handler in self.handlers_for(event):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.error(
                    "Event handler failed for %s", event.event_type.value,
                    exc_info=True,
                    extra={"extra_data": {"event_id": str(event.event_id)}},
                )

    def clear(self) -> None:
        self._by_type.clear()
        self._catch_all.clear()


class LoggingEventHandler:
    """Writes one INFO line per committed event."""

    def __init__(self, logger_name: str = "domain.events"):
        self._logger = logging.getLogger(logger_name)

    def handle(self, event: DomainEvent) -> None:
        self._logger.info(
            "%s for client %s by %s",
            event.event_type.value, event.client_id, event.actor,
            extra={"extra_data": {
                "event_id": str(event.event_id),
                "occurred_at": event.occurred_at.isoformat(),
            }}
        )


_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Process-wide bus, created with the logging handler attached."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
        _event_bus.subscribe_all(LoggingEventHandler().handle)
    return _event_bus


def reset_event_bus() -> None:
    """Drop the process-wide bus (tests)."""
    global _event_bus
    _event_bus = None
