"""Event bus for build step progress.

A build step reports what it is doing (script written, interpreter chosen,
process finished) as events. Observers turn those events into build-log lines
or anything else the host wants. Publishing is synchronous: a step emits at
most a handful of events and observers only do quick I/O.

An observer that raises is logged and skipped, so a broken build-log sink can
never change a build's verdict.
"""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Type, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar('E')

EventHandler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe dispatcher keyed by event class.

    Example usage:
        bus = EventBus()
        bus.on(StepCompleted, lambda event: print(event.verdict))
        bus.emit(StepCompleted(script_path="build.ps1", exit_code=0,
                               verdict=Verdict.SUCCESS, duration_ms=12.0))
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type, List[EventHandler]] = defaultdict(list)

    def on(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        """Subscribe handler to events of exactly event_type."""
        self._handlers[event_type].append(handler)

    def off(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        """Unsubscribe handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event: Any) -> None:
        """Deliver event to every handler registered for its type.

        Args:
            event: The event instance to dispatch
        """
        event_type = type(event)
        # Copy so handlers may unsubscribe while being called
        for handler in list(self._handlers.get(event_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler {getattr(handler, '__name__', handler)!r} raised "
                    f"exception for {event_type.__name__}: {e}",
                    exc_info=True
                )

    def has_handlers(self, event_type: Type) -> bool:
        return bool(self._handlers.get(event_type))

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()
