# =============================================================================
# Janus Python Client -- Event Emitter
# =============================================================================
#
# Fan-out publish/subscribe used by Session (keyed by janus verb) and by
# Handle (keyed by HandleEvent).  Emitting with no subscribers is a no-op.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from collections import defaultdict
from typing import Any, Awaitable, Callable, Generic, Hashable, TypeVar

from ._logging import logger as _default_logger

K = TypeVar("K", bound=Hashable)
E = TypeVar("E")

EventHandler = Callable[[E], Any]
AsyncEventHandler = Callable[[E], Awaitable[Any]]


class EventEmitter(Generic[K, E]):
    """Typed event fan-out with sync and async handlers.

    Handler exceptions are logged and swallowed so one faulty subscriber
    cannot break delivery to the others, or the dispatch path that emitted.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._handlers: dict[K, list[EventHandler | AsyncEventHandler]] = defaultdict(
            list
        )
        self._wildcard_handlers: list[EventHandler | AsyncEventHandler] = []
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._logger = logger or _default_logger

    def on(
        self, kind: K
    ) -> Callable[[EventHandler | AsyncEventHandler], EventHandler | AsyncEventHandler]:
        """Decorator to register a handler for one event kind.

        Example::

            @session.events.on("timeout")
            def expired(event: JanusEvent):
                ...
        """

        def decorator(
            fn: EventHandler | AsyncEventHandler,
        ) -> EventHandler | AsyncEventHandler:
            self._handlers[kind].append(fn)
            return fn

        return decorator

    def on_any(
        self, fn: EventHandler | AsyncEventHandler
    ) -> EventHandler | AsyncEventHandler:
        """Register a wildcard handler that receives every event."""
        self._wildcard_handlers.append(fn)
        return fn

    def off(self, kind: K, fn: EventHandler | AsyncEventHandler) -> None:
        """Remove a specific handler."""
        handlers = self._handlers.get(kind, [])
        if fn in handlers:
            handlers.remove(fn)

    def off_any(self, fn: EventHandler | AsyncEventHandler) -> None:
        """Remove a wildcard handler."""
        if fn in self._wildcard_handlers:
            self._wildcard_handlers.remove(fn)

    def listener_count(self, kind: K | None = None) -> int:
        if kind is None:
            return sum(len(h) for h in self._handlers.values()) + len(
                self._wildcard_handlers
            )
        return len(self._handlers.get(kind, []))

    def emit(self, kind: K, event: E) -> int:
        """Deliver *event* to every handler for *kind*.  Returns handler count."""
        handlers = self._handlers.get(kind, []) + self._wildcard_handlers
        for handler in handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    self._fire_task(result)
            except Exception as exc:
                self._logger.error("Handler error for '%s': %s", kind, exc)
        return len(handlers)

    def clear(self) -> None:
        self._handlers.clear()
        self._wildcard_handlers.clear()

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("Async handler error: %s", exc)
