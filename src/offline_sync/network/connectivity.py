"""Connectivity observation.

Translates platform-reported network technologies into a tri-state
:class:`ConnectivityStatus` and delivers change notifications to a single
owner through a cancellable :class:`Subscription`.

Mapping
-------
- empty list                         -> UNKNOWN
- exactly one entry, and it is NONE  -> OFFLINE
- anything else                      -> ONLINE (a real link wins over a
  spurious NONE in the same batch)
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Callable, Sequence

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ConnectivityResult(str, Enum):
    """Network technology tag reported by the platform."""

    WIFI = "wifi"
    CELLULAR = "cellular"
    ETHERNET = "ethernet"
    BLUETOOTH = "bluetooth"
    VPN = "vpn"
    OTHER = "other"
    NONE = "none"


class ConnectivityStatus(str, Enum):
    """Simplified connectivity status used by application logic."""

    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


def map_results(results: Sequence[ConnectivityResult]) -> ConnectivityStatus:
    """Map a batch of technology tags onto a :class:`ConnectivityStatus`.

    Parameters
    ----------
    results:
        Technologies currently reported as active by the platform.

    Returns
    -------
    ConnectivityStatus
        UNKNOWN for an empty batch, OFFLINE for a lone NONE entry,
        ONLINE otherwise.
    """
    if not results:
        return ConnectivityStatus.UNKNOWN
    if len(results) == 1 and results[0] == ConnectivityResult.NONE:
        return ConnectivityStatus.OFFLINE
    return ConnectivityStatus.ONLINE


ResultsCallback = Callable[[list[ConnectivityResult]], None]


# ---------------------------------------------------------------------------
# Subscription handle
# ---------------------------------------------------------------------------


class Subscription:
    """Handle returned by ``subscribe``; call :meth:`cancel` to stop delivery.

    Cancelling twice is harmless.
    """

    def __init__(self, on_cancel: Callable[[], None]) -> None:
        self._on_cancel = on_cancel
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._on_cancel()


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class ConnectivityProvider:
    """Protocol-like base for a platform connectivity API.

    Subclass this and implement :meth:`check_connectivity` and
    :meth:`subscribe`. Exceptions raised by ``check_connectivity`` are
    left to propagate to the caller.
    """

    async def check_connectivity(self) -> list[ConnectivityResult]:
        """Return the technologies currently active."""
        raise NotImplementedError

    def subscribe(self, callback: ResultsCallback) -> Subscription:
        """Register *callback* for every platform change notification."""
        raise NotImplementedError


class ManualConnectivityProvider(ConnectivityProvider):
    """Provider whose results are pushed programmatically.

    Useful when the host application already receives platform
    notifications, and for simulating connectivity in tests.

    Parameters
    ----------
    initial:
        Results returned by :meth:`check_connectivity` until the first
        :meth:`emit`. Defaults to an empty list (UNKNOWN).
    """

    def __init__(self, initial: Sequence[ConnectivityResult] | None = None) -> None:
        self._current: list[ConnectivityResult] = list(initial or [])
        self._callbacks: list[ResultsCallback] = []

    @property
    def current(self) -> list[ConnectivityResult]:
        return list(self._current)

    @property
    def listener_count(self) -> int:
        return len(self._callbacks)

    async def check_connectivity(self) -> list[ConnectivityResult]:
        return list(self._current)

    def subscribe(self, callback: ResultsCallback) -> Subscription:
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return Subscription(_remove)

    def emit(self, results: Sequence[ConnectivityResult]) -> None:
        """Record *results* as current and notify every subscriber in order."""
        self._current = list(results)
        for callback in list(self._callbacks):
            callback(list(self._current))

    def go_online(self, technology: ConnectivityResult = ConnectivityResult.WIFI) -> None:
        self.emit([technology])

    def go_offline(self) -> None:
        self.emit([ConnectivityResult.NONE])


class SocketProbeProvider(ConnectivityProvider):
    """Provider that infers connectivity from a TCP probe.

    A successful connection to ``host:port`` is reported as ``[OTHER]``,
    a failure as ``[NONE]``. While at least one subscriber is registered a
    background task re-probes every *interval_seconds* and emits only when
    the result differs from the previous probe, including the one made by
    :meth:`check_connectivity`. Listener and probe errors are logged and
    polling carries on.

    Parameters
    ----------
    host:
        Hostname or address to connect to (default: "8.8.8.8").
    port:
        TCP port to connect to (default: 53).
    timeout_seconds:
        Timeout for each probe (default: 2).
    interval_seconds:
        Delay between background probes (default: 10).
    """

    def __init__(
        self,
        host: str = "8.8.8.8",
        port: int = 53,
        timeout_seconds: float = 2.0,
        interval_seconds: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout_seconds
        self._interval = interval_seconds
        self._callbacks: list[ResultsCallback] = []
        self._poll_task: asyncio.Task[None] | None = None
        self._last: list[ConnectivityResult] | None = None

    async def check_connectivity(self) -> list[ConnectivityResult]:
        """Probe once and remember the result as the polling baseline."""
        results = await self._probe()
        self._last = results
        return list(results)

    async def _probe(self) -> list[ConnectivityResult]:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port),
                timeout=self._timeout,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.debug("Probe %s:%s failed: %s", self._host, self._port, exc)
            return [ConnectivityResult.NONE]
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return [ConnectivityResult.OTHER]

    def subscribe(self, callback: ResultsCallback) -> Subscription:
        self._callbacks.append(callback)
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll())

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
            if not self._callbacks and self._poll_task is not None:
                self._poll_task.cancel()
                self._poll_task = None

        return Subscription(_remove)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                results = await self._probe()
            except Exception:
                logger.exception("Probe %s:%s raised", self._host, self._port)
                continue
            if results == self._last:
                continue
            self._last = results
            for callback in list(self._callbacks):
                try:
                    callback(list(results))
                except Exception:
                    logger.exception("Connectivity listener %r raised", callback)


# ---------------------------------------------------------------------------
# Observer
# ---------------------------------------------------------------------------


class ConnectivityObserver:
    """Thin wrapper exposing a provider in terms of :class:`ConnectivityStatus`.

    Parameters
    ----------
    provider:
        The :class:`ConnectivityProvider` to observe.
    """

    def __init__(self, provider: ConnectivityProvider) -> None:
        self._provider = provider

    @property
    def provider(self) -> ConnectivityProvider:
        return self._provider

    async def check_now(self) -> list[ConnectivityResult]:
        """One-shot query of the active technologies."""
        return await self._provider.check_connectivity()

    async def check_status(self) -> ConnectivityStatus:
        """One-shot query mapped onto a :class:`ConnectivityStatus`."""
        return map_results(await self.check_now())

    def subscribe(self, on_change: ResultsCallback) -> Subscription:
        """Forward every platform notification to *on_change*.

        The caller owns the returned :class:`Subscription` and must cancel
        it when done.
        """
        return self._provider.subscribe(on_change)

    @staticmethod
    def to_status(results: Sequence[ConnectivityResult]) -> ConnectivityStatus:
        return map_results(results)


__all__ = [
    "ConnectivityObserver",
    "ConnectivityProvider",
    "ConnectivityResult",
    "ConnectivityStatus",
    "ManualConnectivityProvider",
    "SocketProbeProvider",
    "Subscription",
    "map_results",
]
