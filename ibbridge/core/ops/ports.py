from __future__ import annotations

from typing import Awaitable, Callable, Protocol, TypeVar

EventT = TypeVar("EventT")
EventHandler = Callable[[EventT], Awaitable[None] | None]


class EventBus(Protocol):
    """Sink for domain events (orders, quotes, session lifecycle).

    Services only publish; journals and observers subscribe by event type.
    """

    def publish(self, event: object) -> None:
        raise NotImplementedError

    def subscribe(self, event_type: type[EventT], handler: EventHandler[EventT]) -> Callable[[], None]:
        """Register ``handler`` for ``event_type`` and its subclasses; returns an unsubscribe callable."""
        raise NotImplementedError
