"""Broadcast channel for connectivity status changes.

Fan-out to zero or more listeners with no replay buffer: a listener only
sees values published after it subscribed. Listeners are either plain
callbacks (:meth:`StatusBroadcaster.listen`) or async iterators
(:meth:`StatusBroadcaster.stream`).
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from offline_sync.network.connectivity import ConnectivityStatus, Subscription

logger = logging.getLogger(__name__)

StatusCallback = Callable[[ConnectivityStatus], None]

_CLOSED = object()


class StatusBroadcaster:
    """Multi-subscriber publish/subscribe channel for :class:`ConnectivityStatus`.

    Example
    -------
    ::

        broadcaster = StatusBroadcaster()
        sub = broadcaster.listen(lambda status: print(status.value))
        broadcaster.publish(ConnectivityStatus.ONLINE)
        sub.cancel()
    """

    def __init__(self) -> None:
        self._callbacks: list[StatusCallback] = []
        self._queues: list[asyncio.Queue[object]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def listener_count(self) -> int:
        """Return the number of callback and stream listeners."""
        return len(self._callbacks) + len(self._queues)

    def listen(self, callback: StatusCallback) -> Subscription:
        """Register *callback* for future status values.

        Raises
        ------
        RuntimeError
            If the broadcaster has been closed.
        """
        if self._closed:
            raise RuntimeError("StatusBroadcaster is closed.")
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return Subscription(_remove)

    def stream(self) -> "StatusStream":
        """Return an async iterator over statuses published after this call.

        The listener is registered immediately, before the first
        ``__anext__``, so no value published in between is missed. The
        iterator ends when the broadcaster is closed. Call
        :meth:`StatusStream.aclose` to detach early; a stream that is
        dropped without being closed detaches when it is garbage collected.
        """
        queue: asyncio.Queue[object] = asyncio.Queue()
        if self._closed:
            queue.put_nowait(_CLOSED)
        else:
            self._queues.append(queue)
        return StatusStream(self, queue)

    def _discard(self, queue: asyncio.Queue[object]) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def publish(self, status: ConnectivityStatus) -> None:
        """Deliver *status* to every current listener, in registration order.

        Exceptions raised by callbacks are logged and do not prevent
        delivery to the remaining listeners. Publishing after close is a
        no-op.
        """
        if self._closed:
            return
        for callback in list(self._callbacks):
            try:
                callback(status)
            except Exception:
                logger.exception("Status listener %r raised", callback)
        for queue in list(self._queues):
            queue.put_nowait(status)

    def close(self) -> None:
        """Detach every listener and end all active streams. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._callbacks.clear()
        for queue in self._queues:
            queue.put_nowait(_CLOSED)
        self._queues.clear()


class StatusStream:
    """Async iterator over one listener queue of a :class:`StatusBroadcaster`."""

    def __init__(self, broadcaster: StatusBroadcaster, queue: asyncio.Queue[object]) -> None:
        self._broadcaster = broadcaster
        self._queue = queue
        self._done = False

    @property
    def closed(self) -> bool:
        return self._done

    def __aiter__(self) -> "StatusStream":
        return self

    async def __anext__(self) -> ConnectivityStatus:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._detach()
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def aclose(self) -> None:
        """Detach from the broadcaster. Idempotent."""
        self._detach()

    def _detach(self) -> None:
        if self._done:
            return
        self._done = True
        self._broadcaster._discard(self._queue)

    def __del__(self) -> None:
        # Partially constructed instances have no queue to release.
        if getattr(self, "_queue", None) is not None:
            self._detach()


__all__ = ["StatusBroadcaster", "StatusCallback", "StatusStream"]
