"""In-process async event bus.

Decouples the CRUD collaborator that publishes domain events from the
automation and agent listeners reacting to them. There is no history and
no redelivery: each subscribed handler sees each event at most once.
"""

import asyncio
from typing import Any, Callable, Coroutine, Dict, List, Optional, Set

import structlog

from ..utils.constants import DEFAULT_MAX_LISTENERS_WARNING
from .types import WILDCARD, DomainEvent

logger = structlog.get_logger()


EventHandler = Callable[[DomainEvent], Coroutine[Any, Any, None]]


class EventBus:
    """Async event bus with typed and wildcard subscriptions.

    ``emit`` is synchronous for the publisher: it schedules one task per
    matching handler, type-specific handlers first and wildcard handlers
    after, each group in registration order. Handlers run concurrently with
    each other and with the publisher, so a slow handler never delays
    delivery to the rest.
    """

    def __init__(self, max_listeners: int = DEFAULT_MAX_LISTENERS_WARNING) -> None:
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._max_listeners = max_listeners
        self._pending: Set[asyncio.Task[None]] = set()
        self._stopped = False

    @property
    def listener_count(self) -> int:
        return sum(len(handlers) for handlers in self._handlers.values())

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for an event type, or ``"*"`` for all events."""
        self._handlers.setdefault(event_type, []).append(handler)
        count = self.listener_count
        if count > self._max_listeners:
            logger.warning(
                "Event bus listener count exceeds threshold, possible leak",
                listener_count=count,
                threshold=self._max_listeners,
            )
        logger.debug(
            "Handler subscribed",
            event_type=event_type,
            handler=getattr(handler, "__qualname__", repr(handler)),
        )

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """Remove a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[event_type]

    def emit(self, event: DomainEvent) -> None:
        """Deliver an event to every matching handler.

        Must be called from within a running event loop.
        """
        if self._stopped:
            logger.warning(
                "Event dropped, bus is stopped",
                event_type=event.type,
                event_id=event.event_id,
            )
            return

        handlers = [
            *self._handlers.get(event.type, ()),
            *self._handlers.get(WILDCARD, ()),
        ]

        logger.info(
            "Event emitted",
            event_type=event.type,
            event_id=event.event_id,
            board_id=event.board_id,
            handlers=len(handlers),
        )

        for handler in handlers:
            task = asyncio.create_task(self._safe_call(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait until every in-flight delivery has finished."""
        while self._pending:
            await asyncio.wait(list(self._pending))

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Stop accepting events and wait for in-flight deliveries.

        Deliveries still running after ``timeout`` seconds are cancelled.
        """
        if self._stopped:
            return
        self._stopped = True
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            pending = list(self._pending)
            logger.warning(
                "Cancelling event deliveries still running at shutdown",
                pending=len(pending),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Event bus stopped")

    async def _safe_call(self, handler: EventHandler, event: DomainEvent) -> None:
        """Call handler with error isolation."""
        try:
            await handler(event)
        except Exception:
            logger.exception(
                "Unhandled error in event handler",
                handler=getattr(handler, "__qualname__", repr(handler)),
                event_type=event.type,
                event_id=event.event_id,
            )
