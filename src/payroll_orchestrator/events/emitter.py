"""Event emitter for publishing payroll notifications.

The emitter provides:
- Handler registration per event type, in registration order
- Error isolation (handler failures don't break other handlers or the publisher)
- Fire-and-forget publishing with a per-handler timeout
- ``drain`` to wait for outstanding deliveries
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar, Union

from payroll_orchestrator.events.types import PayrollEvent

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=PayrollEvent)

EventHandler = Callable[[PayrollEvent], Union[None, Awaitable[None]]]


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: EventHandler
    event_types: set[str] | None  # None = all events
    is_async: bool


class AsyncEventEmitter:
    """Asynchronous event emitter.

    Publishes events to registered handlers. Handlers are isolated: a
    handler that raises or exceeds ``handler_timeout`` is logged and the
    remaining handlers still receive the event. Sync handlers run in a
    worker thread so a slow one cannot block the event loop.

    Usage:
        emitter = AsyncEventEmitter()

        async def notify(event: PayrollRunCompleted) -> None:
            await channel.send(...)

        emitter.on(PayrollRunCompleted, notify)

        # Awaited delivery, returns handler errors
        errors = await emitter.emit(event)

        # Fire-and-forget delivery
        emitter.publish(event)
        await emitter.drain()
    """

    def __init__(self, handler_timeout: float | None = 10.0) -> None:
        self._handlers: list[HandlerRegistration] = []
        self._handler_timeout = handler_timeout
        self._pending: set[asyncio.Task[list[Exception]]] = set()

    def on(
        self,
        event_type: type[T] | list[type[T]],
        handler: EventHandler,
    ) -> None:
        """Register handler for specific event type(s)."""
        if isinstance(event_type, list):
            types = {t.__name__ for t in event_type}
        else:
            types = {event_type.__name__}

        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types=types,
                is_async=_is_async_handler(handler),
            )
        )

    def on_all(self, handler: EventHandler) -> None:
        """Register handler for all events."""
        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types=None,
                is_async=_is_async_handler(handler),
            )
        )

    def off(self, handler: EventHandler) -> None:
        """Unregister a handler."""
        self._handlers = [
            reg for reg in self._handlers if reg.handler is not handler
        ]

    def handlers_for(self, event_type: type[PayrollEvent]) -> list[EventHandler]:
        """Handlers that would receive an event of this type, in order."""
        name = event_type.__name__
        return [
            reg.handler
            for reg in self._handlers
            if reg.event_types is None or name in reg.event_types
        ]

    async def emit(self, event: PayrollEvent) -> list[Exception]:
        """Deliver an event to all matching handlers and wait for them.

        Returns list of any exceptions raised by handlers.
        """
        return await self._dispatch(event)

    def publish(self, event: PayrollEvent) -> None:
        """Schedule delivery of an event without waiting for handlers."""
        task = asyncio.get_running_loop().create_task(self._dispatch(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait until every published event has been delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def _dispatch(self, event: PayrollEvent) -> list[Exception]:
        """Dispatch event to matching handlers."""
        errors: list[Exception] = []
        event_type = event.event_type

        tasks: list[asyncio.Task[None]] = []
        for reg in self._handlers:
            # Check type filter
            if reg.event_types and event_type not in reg.event_types:
                continue
            tasks.append(asyncio.create_task(self._call_handler(reg, event)))

        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    errors.append(result)

        return errors

    async def _call_handler(self, reg: HandlerRegistration, event: PayrollEvent) -> None:
        """Call one handler with timeout and error logging."""
        try:
            if reg.is_async:
                call: Awaitable[Any] = reg.handler(event)  # type: ignore[assignment]
            else:
                call = asyncio.to_thread(reg.handler, event)
            await asyncio.wait_for(call, timeout=self._handler_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Handler %s timed out after %ss for event %s",
                reg.handler,
                self._handler_timeout,
                event.event_type,
            )
            raise
        except Exception:
            logger.exception(
                "Handler %s failed for event %s",
                reg.handler,
                event.event_type,
            )
            raise


def _is_async_handler(handler: EventHandler) -> bool:
    if inspect.iscoroutinefunction(handler):
        return True
    call = getattr(handler, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)
