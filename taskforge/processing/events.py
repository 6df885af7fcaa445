"""In-process event bus."""

import inspect
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from loguru import logger

EventHandler = Callable[[dict[str, Any]], Any]


class EventBus:
    """
    Minimal async publish/subscribe.

    Handlers may be plain functions or coroutine functions. They run in
    subscription order; a failing handler is logged and the remaining
    handlers still run.

    Example:
        >>> bus = EventBus()
        >>> bus.on("queue:item:added", lambda data: print(data["item_id"]))
        >>> await bus.emit("queue:item:added", {"item_id": "queue_1"})
        queue_1
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: EventHandler) -> bool:
        """Unsubscribe ``handler``; returns False if it was not subscribed."""
        handlers = self._handlers.get(event, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def once(self, event: str, handler: EventHandler) -> None:
        """Subscribe ``handler`` for the next emission only."""

        async def wrapper(data: dict[str, Any]) -> None:
            self.off(event, wrapper)
            result = handler(data)
            if inspect.isawaitable(result):
                await result

        self.on(event, wrapper)

    async def emit(self, event: str, data: dict[str, Any] | None = None) -> int:
        """
        Deliver ``data`` to every handler of ``event``.

        Returns:
            Number of handlers invoked.
        """
        handlers = list(self._handlers.get(event, []))
        payload = data or {}
        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Event handler for {event} failed: {e}")
        return len(handlers)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))
