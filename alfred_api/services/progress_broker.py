"""
Progress broker.

At most one live subscription per request id. Events published while nobody
listens are discarded. Each subscription buffers into a bounded queue that
drops its oldest event when full, so a slow reader never blocks a run. A
listener that receives nothing for ``idle_timeout`` seconds is ended.
"""

import asyncio
import logging
from typing import Any, AsyncIterator

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = frozenset({"complete", "error"})

_CLOSED = object()


def is_terminal(event: dict[str, Any]) -> bool:
    return event.get("type") in TERMINAL_EVENTS


class Subscription:
    """One listener's event buffer."""

    def __init__(self, request_id: str, maxsize: int = 256, idle_timeout: float | None = None):
        self.request_id = request_id
        self.idle_timeout = idle_timeout
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, item: Any) -> None:
        """Enqueue without blocking, evicting the oldest event when full."""
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except asyncio.QueueEmpty:
                    pass

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.offer(_CLOSED)

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        """Yield events until a terminal event arrives or the subscription closes or idles out."""
        while True:
            try:
                item = await asyncio.wait_for(self._queue.get(), timeout=self.idle_timeout)
            except asyncio.TimeoutError:
                logger.info(f"No progress for {self.request_id} in {self.idle_timeout}s, ending stream")
                return
            if item is _CLOSED:
                return
            yield item
            if is_terminal(item):
                return


class ProgressBroker:
    """
    Request-scoped pub/sub for run progress.

    Usage:
        ```python
        sub = broker.register(request_id)
        async for event in sub.events():
            ...

        broker.publish(request_id, {"type": "step", ...})
        ```
    """

    def __init__(self, maxsize: int = 256, idle_timeout: float | None = None):
        self._maxsize = maxsize
        self._idle_timeout = idle_timeout
        self._subscriptions: dict[str, Subscription] = {}

    def register(self, request_id: str) -> Subscription:
        """Attach a listener, replacing and closing any previous one."""
        previous = self._subscriptions.pop(request_id, None)
        if previous is not None:
            logger.info(f"Replacing progress listener for {request_id}")
            previous.close()

        subscription = Subscription(request_id, maxsize=self._maxsize, idle_timeout=self._idle_timeout)
        self._subscriptions[request_id] = subscription
        return subscription

    def unregister(self, request_id: str, subscription: Subscription | None = None) -> None:
        """Detach the listener. With ``subscription`` given, only if it is still the current one."""
        current = self._subscriptions.get(request_id)
        if current is None:
            return
        if subscription is not None and current is not subscription:
            return
        del self._subscriptions[request_id]
        current.close()

    def has_listener(self, request_id: str) -> bool:
        return request_id in self._subscriptions

    def publish(self, request_id: str, event: dict[str, Any]) -> bool:
        """Deliver ``event``. Returns False when nobody is listening."""
        subscription = self._subscriptions.get(request_id)
        if subscription is None:
            return False

        subscription.offer(event)
        if is_terminal(event):
            self._subscriptions.pop(request_id, None)
        return True

    async def shutdown(self) -> None:
        for subscription in self._subscriptions.values():
            subscription.close()
        self._subscriptions.clear()
