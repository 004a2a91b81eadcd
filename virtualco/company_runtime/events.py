"""In-process event bus.

Producers (runners, tool executor, company service) publish typed
``CompanyEvent`` variants; UI layers subscribe without polling.

Two consumption styles:

- ``subscribe(callback)``: synchronous callback invoked inline on ``publish``.
  Returns an unsubscribe function.
- ``listen()``: async iterator backed by a per-listener queue, used by the
  SSE endpoint.

``publish`` never suspends, so it is safe to call from inside store-level
critical sections.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

from loguru import logger

from virtualco.company_runtime.models.events import CompanyEvent

EventCallback = Callable[[CompanyEvent], None]

_LISTENER_QUEUE_SIZE = 1000


class EventBus:
    def __init__(self) -> None:
        self._subscribers: list[EventCallback] = []
        self._queues: set[asyncio.Queue[CompanyEvent]] = set()

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: CompanyEvent) -> None:
        logger.debug("Event: {}", event.kind)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                # One broken subscriber must not stop delivery to the rest.
                logger.exception("Event subscriber failed on {}", event.kind)

        for queue in self._queues:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Event listener queue full, dropping {}", event.kind)

    async def listen(self) -> AsyncIterator[CompanyEvent]:
        """Yield every event published once iteration has begun, until the consumer stops."""
        queue: asyncio.Queue[CompanyEvent] = asyncio.Queue(maxsize=_LISTENER_QUEUE_SIZE)
        self._queues.add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._queues.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers) + len(self._queues)
