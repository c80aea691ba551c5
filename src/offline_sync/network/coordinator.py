"""Offline coordination.

The :class:`OfflineCoordinator` owns the connectivity status, the manual
offline-mode override, the last-online timestamp, and one
:class:`~offline_sync.network.retry_queue.RetryQueue`. It exposes a single
gate, ``can_go_online``, which is always computed as::

    status == ConnectivityStatus.ONLINE and not manual_override

Network states
--------------
ONLINE_ALLOWED : connected and not overridden; the queue drains.
ONLINE_BLOCKED : connected but forced offline by the user or app.
OFFLINE        : the platform reports no usable link.
UNKNOWN        : no information yet, or the platform reported nothing.

A transition into ONLINE records ``last_online_at`` and, unless the
override is set, triggers an immediate drain. Turning the override off
while connected triggers a drain as well.
"""
from __future__ import annotations

import asyncio
import datetime
import logging
from enum import Enum
from typing import Callable, Sequence, Union

from offline_sync.network.broadcast import StatusBroadcaster, StatusCallback, StatusStream
from offline_sync.network.connectivity import (
    ConnectivityObserver,
    ConnectivityResult,
    ConnectivityStatus,
    Subscription,
    map_results,
)
from offline_sync.network.retry_queue import (
    DrainReport,
    FailureCallback,
    Operation,
    RetryQueue,
)
from offline_sync.storage.local_storage import LocalStorage

logger = logging.getLogger(__name__)

OFFLINE_MODE_KEY = "app_offline_mode"
LAST_ONLINE_KEY = "network_last_online_ts"

DEFAULT_DRAIN_DEBOUNCE_SECONDS = 0.25


class NetworkState(str, Enum):
    """Explicit form of the ``(status, manual_override)`` pair."""

    ONLINE_ALLOWED = "online_allowed"
    ONLINE_BLOCKED = "online_blocked"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class CoordinatorDisposedError(RuntimeError):
    """Raised when a disposed :class:`OfflineCoordinator` is asked to do work."""


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class OfflineCoordinator:
    """Connectivity-aware owner of the retry queue.

    Must be used from inside a running asyncio event loop; all state is
    mutated on that loop only.

    Parameters
    ----------
    storage:
        :class:`LocalStorage` used to persist the override flag and the
        last-online timestamp.
    observer:
        :class:`ConnectivityObserver` wrapping the platform connectivity API.
    queue:
        The :class:`RetryQueue` to drive. A default queue is created when
        omitted.
    drain_debounce_seconds:
        Delay used by non-immediate drain schedules to coalesce bursts.
    clock:
        Callable returning the current UTC time.

    Example
    -------
    ::

        coordinator = OfflineCoordinator(storage, ConnectivityObserver(provider))
        await coordinator.init()
        coordinator.enqueue(lambda: api.post_review(review), task_id="review-7")
        ...
        await coordinator.dispose()
    """

    def __init__(
        self,
        storage: LocalStorage,
        observer: ConnectivityObserver,
        queue: RetryQueue | None = None,
        drain_debounce_seconds: float = DEFAULT_DRAIN_DEBOUNCE_SECONDS,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        if drain_debounce_seconds < 0:
            raise ValueError(
                f"drain_debounce_seconds must be >= 0, got {drain_debounce_seconds}"
            )
        self._storage = storage
        self._observer = observer
        self._queue = queue if queue is not None else RetryQueue()
        self._debounce = drain_debounce_seconds
        self._clock = clock or _utc_now
        self._broadcaster = StatusBroadcaster()

        self._status = ConnectivityStatus.UNKNOWN
        self._offline_mode = False
        self._last_online_at: datetime.datetime | None = None

        self._subscription: Subscription | None = None
        self._drain_timer: asyncio.Task[None] | None = None
        self._drain_tasks: set[asyncio.Task[None]] = set()
        self._initialized = False
        self._disposed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Restore persisted state, read connectivity, and start listening.

        Idempotent once it has succeeded. Errors raised by the connectivity
        provider propagate and leave the coordinator uninitialised.

        Raises
        ------
        CoordinatorDisposedError
            If called after :meth:`dispose`.
        """
        self._ensure_not_disposed()
        if self._initialized:
            return

        self._offline_mode = self._storage.get_bool(OFFLINE_MODE_KEY) or False
        self._last_online_at = self._storage.get_cache_timestamp(LAST_ONLINE_KEY)

        results = await self._observer.check_now()
        if self._initialized or self._disposed:
            # A concurrent init() or dispose() won the race while we awaited.
            return
        self._apply_status(map_results(results))
        self._subscription = self._observer.subscribe(self.on_connectivity_changed)
        self._initialized = True
        logger.info(
            "OfflineCoordinator initialized. Status: %s, offline mode: %s",
            self._status.value,
            self._offline_mode,
        )

    async def dispose(self) -> None:
        """Stop listening, cancel any pending drain, and close the status channel.

        A drain pass already running finishes its current task and then
        stops. Calling this more than once is a no-op.
        """
        if self._disposed:
            return
        self._disposed = True
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self._cancel_drain_timer()
        self._broadcaster.close()
        logger.debug("OfflineCoordinator disposed")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectivityStatus:
        return self._status

    @property
    def can_go_online(self) -> bool:
        """True when connectivity is ONLINE and offline mode is off."""
        return self._status == ConnectivityStatus.ONLINE and not self._offline_mode

    @property
    def is_offline_mode(self) -> bool:
        return self._offline_mode

    @property
    def last_online_at(self) -> datetime.datetime | None:
        return self._last_online_at

    @property
    def state(self) -> NetworkState:
        """Return the explicit :class:`NetworkState` for the current fields."""
        if self._status == ConnectivityStatus.ONLINE:
            if self._offline_mode:
                return NetworkState.ONLINE_BLOCKED
            return NetworkState.ONLINE_ALLOWED
        if self._status == ConnectivityStatus.OFFLINE:
            return NetworkState.OFFLINE
        return NetworkState.UNKNOWN

    @property
    def queue(self) -> RetryQueue:
        return self._queue

    @property
    def pending_count(self) -> int:
        return self._queue.pending_count

    @property
    def drain_scheduled(self) -> bool:
        """True while a drain timer is armed and has not fired yet."""
        return self._drain_timer is not None and not self._drain_timer.done()

    def listen(self, callback: StatusCallback) -> Subscription:
        """Register *callback* for future status changes (no replay)."""
        return self._broadcaster.listen(callback)

    def status_stream(self) -> StatusStream:
        """Async iterator over future status changes; ends on :meth:`dispose` or ``aclose()``."""
        return self._broadcaster.stream()

    async def set_offline_mode(self, value: bool) -> None:
        """Set and persist the manual offline override.

        If the coordinator is allowed online afterwards, an immediate drain
        is scheduled.

        Raises
        ------
        CoordinatorDisposedError
            If called after :meth:`dispose`.
        """
        self._ensure_not_disposed()
        value = bool(value)
        if value != self._offline_mode:
            logger.info("Offline mode: %s -> %s", self._offline_mode, value)
        self._offline_mode = value
        self._storage.set_bool(OFFLINE_MODE_KEY, value)
        if self.can_go_online:
            self.schedule_drain(immediate=True)

    def is_stale(self, max_age: datetime.timedelta) -> bool:
        """Return True when the stored last-online time is missing or older than *max_age*."""
        timestamp = self._storage.get_cache_timestamp(LAST_ONLINE_KEY)
        if timestamp is None:
            return True
        return self._clock() - timestamp > max_age

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def on_connectivity_changed(
        self,
        change: Union[ConnectivityStatus, Sequence[ConnectivityResult]],
    ) -> None:
        """Apply a platform notification.

        Parameters
        ----------
        change:
            Either the raw technology list from the platform or an already
            mapped :class:`ConnectivityStatus`.

        Notifications arriving after :meth:`dispose` are ignored.
        """
        if self._disposed:
            return
        if isinstance(change, ConnectivityStatus):
            status = change
        else:
            status = map_results(list(change))
        self._apply_status(status)

    def _apply_status(self, status: ConnectivityStatus) -> None:
        was_online = self._status == ConnectivityStatus.ONLINE
        if status != self._status:
            logger.info("Connectivity status changed: %s -> %s", self._status.value, status.value)
        self._status = status
        self._broadcaster.publish(status)

        if status == ConnectivityStatus.ONLINE and not was_online:
            self._record_online()
            if not self._offline_mode:
                self.schedule_drain(immediate=True)

    def _record_online(self) -> None:
        self._last_online_at = self._clock()
        self._storage.set_cache_timestamp(LAST_ONLINE_KEY, self._last_online_at)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def enqueue(
        self,
        operation: Operation,
        task_id: str | None = None,
        max_attempts: int | None = None,
        timeout_seconds: float | None = None,
        on_failure: FailureCallback | None = None,
    ) -> str:
        """Queue *operation* for execution while online and schedule a debounced drain.

        Returns
        -------
        str
            The task ID.

        Raises
        ------
        CoordinatorDisposedError
            If called after :meth:`dispose`.
        ValueError
            Propagated from :meth:`RetryQueue.enqueue` for invalid arguments.
        """
        self._ensure_not_disposed()
        task_id = self._queue.enqueue(
            operation,
            task_id=task_id,
            max_attempts=max_attempts,
            timeout_seconds=timeout_seconds,
            on_failure=on_failure,
        )
        self.schedule_drain(immediate=False)
        return task_id

    def schedule_drain(self, immediate: bool = False) -> None:
        """Replace any armed drain timer with a new one.

        The timer fires after 0 seconds when *immediate* is set, otherwise
        after the debounce delay. When the coordinator cannot go online the
        pending timer is still cancelled but no new one is armed.
        """
        self._cancel_drain_timer()
        if self._disposed or not self.can_go_online:
            return
        delay = 0.0 if immediate else self._debounce
        loop = asyncio.get_running_loop()
        self._drain_timer = loop.create_task(self._drain_after(delay))

    async def drain_now(self) -> DrainReport:
        """Cancel any armed timer and run a drain pass in the caller's task."""
        self._cancel_drain_timer()
        return await self._queue.drain(self._drain_gate)

    async def wait_idle(self) -> None:
        """Wait until no drain timer is armed and no drain pass is running."""
        while True:
            pending = [t for t in self._drain_tasks if not t.done()]
            if self.drain_scheduled:
                pending.append(self._drain_timer)  # type: ignore[arg-type]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _drain_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        current = asyncio.current_task()
        # Past this point the pass is in flight and no longer cancellable by rescheduling.
        if self._drain_timer is current:
            self._drain_timer = None
        if current is not None:
            self._drain_tasks.add(current)  # type: ignore[arg-type]
        try:
            await self._queue.drain(self._drain_gate)
        finally:
            if current is not None:
                self._drain_tasks.discard(current)  # type: ignore[arg-type]

    def _drain_gate(self) -> bool:
        return not self._disposed and self.can_go_online

    def _cancel_drain_timer(self) -> None:
        if self._drain_timer is not None:
            self._drain_timer.cancel()
            self._drain_timer = None

    def _ensure_not_disposed(self) -> None:
        if self._disposed:
            raise CoordinatorDisposedError("OfflineCoordinator has been disposed.")


__all__ = [
    "CoordinatorDisposedError",
    "LAST_ONLINE_KEY",
    "NetworkState",
    "OFFLINE_MODE_KEY",
    "OfflineCoordinator",
]
