"""Simple synchronous in-process event bus."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable


class EventBus:
    """Publish/subscribe bus for domain events.

    The topic of a published event is its type. Handlers are called
    synchronously in registration order.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Callable) -> Callable[[], None]:
        """Register *handler* and return a callable that removes it again."""
        self._subscribers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: Any) -> None:
        # Copy so a handler may unsubscribe itself while being called.
        for handler in list(self._subscribers.get(type(event), [])):
            handler(event)
