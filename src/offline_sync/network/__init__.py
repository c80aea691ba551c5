"""Network sub-package for offline-sync.

Provides connectivity observation, the status broadcast channel, the
sequential retry queue, and the offline coordinator that ties them
together.
"""
from __future__ import annotations

from offline_sync.network.broadcast import StatusBroadcaster, StatusStream
from offline_sync.network.connectivity import (
    ConnectivityObserver,
    ConnectivityProvider,
    ConnectivityResult,
    ConnectivityStatus,
    ManualConnectivityProvider,
    SocketProbeProvider,
    Subscription,
    map_results,
)
from offline_sync.network.coordinator import (
    CoordinatorDisposedError,
    NetworkState,
    OfflineCoordinator,
)
from offline_sync.network.retry_queue import BackoffPolicy, DrainReport, QueuedTask, RetryQueue

__all__ = [
    "BackoffPolicy",
    "ConnectivityObserver",
    "ConnectivityProvider",
    "ConnectivityResult",
    "ConnectivityStatus",
    "CoordinatorDisposedError",
    "DrainReport",
    "ManualConnectivityProvider",
    "NetworkState",
    "OfflineCoordinator",
    "QueuedTask",
    "RetryQueue",
    "SocketProbeProvider",
    "StatusBroadcaster",
    "StatusStream",
    "Subscription",
    "map_results",
]
