from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from ibbridge.core.ops.ports import EventHandler, EventT


@dataclass(frozen=True, eq=False)
class _Subscription:
    event_type: type
    handler: EventHandler

    @property
    def name(self) -> str:
        return getattr(self.handler, "__qualname__", None) or type(self.handler).__name__

    def accepts(self, event: object) -> bool:
        return isinstance(event, self.event_type)


class InProcessEventBus:
    """Type-filtered fan-out of domain events to journals and observers.

    Inside a running loop handlers are scheduled with ``call_soon`` so a
    publisher (e.g. the bracket service mid-order) never runs handler code
    inline. A failing handler is logged and never reaches the publisher.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def subscribe(self, event_type: type[EventT], handler: EventHandler[EventT]) -> Callable[[], None]:
        subscription = _Subscription(event_type, handler)
        self._subscriptions.append(subscription)

        def _unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return _unsubscribe

    def publish(self, event: object) -> None:
        targets = [s for s in self._subscriptions if s.accepts(event)]
        if not targets:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        for subscription in targets:
            if loop is not None:
                loop.call_soon(_deliver, subscription, event)
            else:
                _deliver(subscription, event)


def _deliver(subscription: _Subscription, event: object) -> None:
    try:
        result = subscription.handler(event)
    except Exception as exc:
        logger.opt(exception=exc).error(
            f"Event handler {subscription.name} failed on {type(event).__name__}"
        )
        return
    if not inspect.isawaitable(result):
        return
    try:
        task = asyncio.ensure_future(result)
    except RuntimeError:
        asyncio.run(result)
        return

    def _report(done: asyncio.Future) -> None:
        if not done.cancelled() and done.exception() is not None:
            logger.opt(exception=done.exception()).error(
                f"Async event handler {subscription.name} failed on {type(event).__name__}"
            )

    task.add_done_callback(_report)
