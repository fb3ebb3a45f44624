from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class InternalEvent:
    name: str
    payload: dict[str, Any]


EventHandler = Callable[[InternalEvent], None]
Unsubscribe = Callable[[], None]


class InProcessEventBus:
    """Synchronous fan-out; handlers run in subscription order on the publishing thread."""

    def __init__(self) -> None:
        self._handlers: defaultdict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> Unsubscribe:
        handlers = self._handlers[event_name]
        if handler not in handlers:
            handlers.append(handler)
        return lambda: self.unsubscribe(event_name, handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def publish(self, event_name: str, payload: dict[str, Any]) -> int:
        event = InternalEvent(name=event_name, payload=payload)
        handlers = tuple(self._handlers.get(event_name, ()))
        for handler in handlers:
            handler(event)
        return len(handlers)


event_bus = InProcessEventBus()
