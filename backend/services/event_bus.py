"""
Event Bus - fire-and-forget pub/sub for registry and execution lifecycle events.

Publishing never blocks the publisher. Inside a running event loop each
delivery is scheduled as a task; outside a loop subscribers are called
immediately. Every subscriber call is isolated: its exceptions are logged
and never reach the publisher or the other subscribers.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventBus:
    """In-process publish/subscribe channel with a bound on in-flight deliveries."""

    def __init__(self, max_pending: int = 1000, max_listeners: int = 100):
        self._handlers: Dict[str, List[Handler]] = {}
        self._pending: Set[asyncio.Task] = set()
        self._lock = threading.Lock()
        self.max_pending = max_pending
        self.max_listeners = max_listeners
        self.dropped = 0

    # ── Subscription ────────────────────────────────────────────────

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register handler for event. Returns a callable that unsubscribes it."""
        with self._lock:
            handlers = self._handlers.setdefault(event, [])
            handlers.append(handler)
            count = len(handlers)

        if count > self.max_listeners:
            logger.warning(
                "EventBus: %d listeners on '%s' exceeds %d, possible leak",
                count,
                event,
                self.max_listeners,
            )
        return lambda: self.unsubscribe(event, handler)

    on = subscribe

    def unsubscribe(self, event: str, handler: Handler) -> bool:
        with self._lock:
            handlers = self._handlers.get(event)
            if not handlers or handler not in handlers:
                return False
            handlers.remove(handler)
            if not handlers:
                del self._handlers[event]
        return True

    off = unsubscribe

    def once(self, event: str, handler: Handler) -> Callable[[], None]:
        """Subscribe for a single delivery."""

        def wrapper(payload: Any) -> Any:
            self.unsubscribe(event, wrapper)
            return handler(payload)

        return self.subscribe(event, wrapper)

    async def wait_for(self, event: str, timeout: Optional[float] = None) -> Any:
        """Wait for the next payload of event. Always unsubscribes, even on timeout."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def _resolve(payload: Any) -> None:
            if not future.done():
                future.set_result(payload)

        unsubscribe = self.subscribe(event, _resolve)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise asyncio.TimeoutError(
                f"Timed out after {timeout}s waiting for event '{event}'"
            ) from None
        finally:
            unsubscribe()

    def remove_all_listeners(self, event: Optional[str] = None) -> None:
        with self._lock:
            if event is None:
                self._handlers.clear()
            else:
                self._handlers.pop(event, None)

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._handlers.get(event, ()))

    def has_listeners(self, event: str) -> bool:
        return self.listener_count(event) > 0

    def event_names(self) -> List[str]:
        with self._lock:
            return list(self._handlers.keys())

    # ── Publishing ──────────────────────────────────────────────────

    def publish(self, event: str, payload: Any = None) -> None:
        """Deliver payload to the subscribers registered right now."""
        with self._lock:
            snapshot = list(self._handlers.get(event, ()))
        if not snapshot:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            for handler in snapshot:
                self._call_sync(event, handler, payload)
            return

        if len(self._pending) >= self.max_pending:
            self.dropped += 1
            logger.warning(
                "EventBus: %d deliveries in flight, dropping '%s'",
                len(self._pending),
                event,
            )
            return

        task = loop.create_task(self._deliver(event, snapshot, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    emit = publish

    async def drain(self) -> None:
        """Wait until every scheduled delivery has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, event: str, handlers: List[Handler], payload: Any) -> None:
        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("EventBus: subscriber for '%s' failed: %s", event, exc)

    def _call_sync(self, event: str, handler: Handler, payload: Any) -> None:
        try:
            result = handler(payload)
            if inspect.isawaitable(result):
                # No loop to await on; run the coroutine to completion here.
                asyncio.run(_await(result))
        except Exception as exc:
            logger.error("EventBus: subscriber for '%s' failed: %s", event, exc)


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable
