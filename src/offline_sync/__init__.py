"""offline-sync: offline coordination and retry queue for connected apps.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import offline_sync
>>> offline_sync.__version__
'0.1.0'

Connectivity
------------
>>> from offline_sync import ConnectivityResult, ConnectivityStatus, map_results
>>> map_results([ConnectivityResult.NONE])
<ConnectivityStatus.OFFLINE: 'offline'>
>>> map_results([ConnectivityResult.WIFI, ConnectivityResult.NONE])
<ConnectivityStatus.ONLINE: 'online'>

Retry queue
-----------
>>> from offline_sync import BackoffPolicy
>>> BackoffPolicy().delays(6)
[0.2, 0.4, 0.8, 1.6, 3.2, 4.0]

Coordinator
-----------
>>> from offline_sync import OfflineContext, OfflineCoordinator, LocalStorage

Storage
-------
>>> from offline_sync import JsonFileBackend, MemoryBackend
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
from offline_sync.storage.local_storage import (
    JsonFileBackend,
    LocalStorage,
    MemoryBackend,
    StorageBackend,
)

# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------
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
    LAST_ONLINE_KEY,
    OFFLINE_MODE_KEY,
    CoordinatorDisposedError,
    NetworkState,
    OfflineCoordinator,
)
from offline_sync.network.retry_queue import BackoffPolicy, DrainReport, QueuedTask, RetryQueue

# ---------------------------------------------------------------------------
# Configuration / context
# ---------------------------------------------------------------------------
from offline_sync.config import OfflineConfig, load_config
from offline_sync.convenience import OfflineContext

__all__ = [
    # Version
    "__version__",
    # Storage
    "JsonFileBackend",
    "LocalStorage",
    "MemoryBackend",
    "StorageBackend",
    # Network: connectivity
    "ConnectivityObserver",
    "ConnectivityProvider",
    "ConnectivityResult",
    "ConnectivityStatus",
    "ManualConnectivityProvider",
    "SocketProbeProvider",
    "Subscription",
    "map_results",
    # Network: broadcast
    "StatusBroadcaster",
    "StatusStream",
    # Network: retry queue
    "BackoffPolicy",
    "DrainReport",
    "QueuedTask",
    "RetryQueue",
    # Network: coordinator
    "CoordinatorDisposedError",
    "LAST_ONLINE_KEY",
    "NetworkState",
    "OFFLINE_MODE_KEY",
    "OfflineCoordinator",
    # Configuration / context
    "OfflineConfig",
    "OfflineContext",
    "load_config",
]
