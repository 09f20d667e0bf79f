"""In-process event bus — best-effort fan-out, no durability.

Events published while nobody is subscribed are dropped. Anything that needs
guaranteed delivery must read the event store instead.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Union

from .errors import HandlerFailure
from .events import DomainEvent, EventType

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], Union[Awaitable[None], None]]


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventBus:
    """Publish/subscribe broker keyed by event type.

    Handlers are stored as tuples and replaced wholesale on every change, so
    ``publish`` always iterates a complete snapshot of the registry.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, tuple[EventHandler, ...]] = {}
        self._pending: set[asyncio.Task[None]] = set()
        self._closed = False

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> None:
        key = EventType(event_type)
        self._handlers[key] = self._handlers.get(key, ()) + (handler,)
        logger.debug("Subscribed %s to %s", _handler_name(handler), key.value)

    def unsubscribe(self, event_type: EventType | str, handler: EventHandler) -> None:
        key = EventType(event_type)
        current = list(self._handlers.get(key, ()))
        if handler not in current:
            return
        current.remove(handler)
        self._handlers[key] = tuple(current)
        logger.debug("Unsubscribed %s from %s", _handler_name(handler), key.value)

    def handlers(self, event_type: EventType | str) -> tuple[EventHandler, ...]:
        return self._handlers.get(EventType(event_type), ())

    async def publish(self, event: DomainEvent) -> None:
        """Invoke every handler registered for ``event.type``, in order.

        Coroutine handlers are scheduled as tasks; ``publish`` returns once
        every handler has been invoked, not once every handler has finished.
        Use :meth:`drain` to wait for completion.
        """
        if self._closed:
            logger.warning("Event bus closed, dropping %s", event.type.value)
            return

        handlers = self._handlers.get(event.type, ())
        if not handlers:
            logger.debug("No handlers for %s, event dropped", event.type.value)
            return

        for handler in handlers:
            try:
                result = handler(event)
            except Exception as e:
                self._report(HandlerFailure(_handler_name(handler), event, e))
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(
                    lambda t, h=handler: self._on_task_done(t, h, event)
                )

    def _on_task_done(
        self, task: asyncio.Task[None], handler: EventHandler, event: DomainEvent
    ) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("Handler %s cancelled on %s", _handler_name(handler), event.type.value)
            return
        exc = task.exception()
        if exc is not None:
            self._report(HandlerFailure(_handler_name(handler), event, exc))

    @staticmethod
    def _report(failure: HandlerFailure) -> None:
        logger.error("%s", failure, exc_info=failure.cause)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every scheduled handler task has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Stop accepting events, let in-flight handlers finish, drop handlers."""
        self._closed = True
        await self.drain()
        self._handlers.clear()
