"""Publish/subscribe registry for live task changes."""

import asyncio
import logging
import queue
import threading
from typing import Any

logger = logging.getLogger(__name__)


class Subscription:
    """
    One listener's view of the broadcast.

    Messages queue up to `maxsize`; when the listener falls behind, newer
    messages are dropped for it alone. Close it (or leave its `with` block)
    when the stream ends so the broadcaster forgets it.

    A subscription bound to an event loop is read with `await next()`, which
    waits on the loop rather than in a worker thread. Publishers on other
    threads wake it with `call_soon_threadsafe`.
    """

    def __init__(
        self,
        broadcaster: "ChangeBroadcaster",
        maxsize: int,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self._broadcaster = broadcaster
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._loop = loop
        self._ready = asyncio.Event() if loop is not None else None
        self.dropped = 0
        self.closed = False

    def offer(self, message: Any) -> bool:
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self.dropped += 1
            return False
        if self._loop is not None and not self.closed:
            try:
                self._loop.call_soon_threadsafe(self._ready.set)
            except RuntimeError:
                # Loop already closed; the stream is going away
                logger.debug("Listener loop closed, not waking it")
        return True

    def get(self, timeout: float | None = None) -> Any | None:
        """Next message, or None if nothing arrived within `timeout` seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    async def next(self, timeout: float | None = None) -> Any | None:
        """Async `get` for a loop-bound subscription."""
        if self._ready is None:
            raise RuntimeError("Subscription is not bound to an event loop")
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            pass
        self._ready.clear()
        # Re-check after clearing so a message offered in between isn't missed
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            pass
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return None
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._broadcaster.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ChangeBroadcaster:
    """Fan-out of change batches to any number of live listeners."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self, loop: asyncio.AbstractEventLoop | None = None) -> Subscription:
        """Register a listener; pass the running `loop` to read it with `await next()`."""
        sub = Subscription(self, self.queue_size, loop)
        with self._lock:
            self._subscriptions.append(sub)
        logger.debug(f"Listener subscribed ({self.listener_count} active)")
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)
        sub.closed = True
        logger.debug(f"Listener unsubscribed ({self.listener_count} active)")

    def publish(self, message: Any) -> int:
        """Offer `message` to every listener without blocking; returns how many took it."""
        with self._lock:
            targets = list(self._subscriptions)

        delivered = 0
        for sub in targets:
            if sub.offer(message):
                delivered += 1
            else:
                logger.warning(f"Listener queue full, dropped message ({sub.dropped} dropped so far)")
        return delivered
