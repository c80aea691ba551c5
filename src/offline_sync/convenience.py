"""Convenience API for offline-sync: explicit startup context.

Example
-------
::

    from offline_sync import OfflineContext

    context = OfflineContext.from_config(load_config("offline.yaml"))
    await context.start()
    context.coordinator.enqueue(upload_review, task_id="review-1")
    ...
    await context.stop()

"""
from __future__ import annotations

import logging

from offline_sync.config import OfflineConfig
from offline_sync.network.connectivity import (
    ConnectivityObserver,
    ConnectivityProvider,
    SocketProbeProvider,
)
from offline_sync.network.coordinator import OfflineCoordinator
from offline_sync.network.retry_queue import RetryQueue, SleepFunc
from offline_sync.storage.local_storage import JsonFileBackend, LocalStorage, MemoryBackend

logger = logging.getLogger(__name__)


class OfflineContext:
    """Owns one storage, observer, queue and coordinator for the whole process.

    Build it once at startup and pass it (or its members) to the code that
    needs them, instead of reaching for module-level singletons.

    Parameters
    ----------
    config:
        The :class:`OfflineConfig` the context was built from.
    storage:
        Persistent key/value store.
    coordinator:
        The offline coordinator driving the retry queue.
    """

    def __init__(
        self,
        config: OfflineConfig,
        storage: LocalStorage,
        coordinator: OfflineCoordinator,
    ) -> None:
        self.config = config
        self.storage = storage
        self.coordinator = coordinator
        self._started = False

    @classmethod
    def from_config(
        cls,
        config: OfflineConfig | None = None,
        provider: ConnectivityProvider | None = None,
        sleep: SleepFunc | None = None,
    ) -> "OfflineContext":
        """Wire up every component described by *config*.

        Parameters
        ----------
        config:
            Settings to use. Defaults to ``OfflineConfig()``.
        provider:
            Connectivity provider. Defaults to a :class:`SocketProbeProvider`
            built from the probe settings.
        sleep:
            Optional backoff sleep override forwarded to the queue.
        """
        config = config or OfflineConfig()
        path = config.resolved_storage_path()
        backend = JsonFileBackend(path) if path is not None else MemoryBackend()
        storage = LocalStorage(backend, prefix=config.key_prefix)

        if provider is None:
            provider = SocketProbeProvider(
                host=config.probe_host,
                port=config.probe_port,
                timeout_seconds=config.probe_timeout_seconds,
                interval_seconds=config.probe_interval_seconds,
            )
        queue = RetryQueue(
            backoff=config.backoff_policy(),
            default_max_attempts=config.default_max_attempts,
            default_timeout_seconds=config.task_timeout_seconds,
            sleep=sleep,
        )
        coordinator = OfflineCoordinator(
            storage,
            ConnectivityObserver(provider),
            queue=queue,
            drain_debounce_seconds=config.drain_debounce_seconds,
        )
        return cls(config=config, storage=storage, coordinator=coordinator)

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Initialise the coordinator and apply ``offline_mode_default``.

        Errors from the connectivity provider propagate to the caller.
        """
        if self._started:
            return
        await self.coordinator.init()
        if self.config.offline_mode_default:
            await self.coordinator.set_offline_mode(True)
        self._started = True
        logger.info("OfflineContext started (state=%s)", self.coordinator.state.value)

    async def stop(self) -> None:
        """Dispose the coordinator."""
        await self.coordinator.dispose()
        self._started = False

    async def __aenter__(self) -> "OfflineContext":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def __repr__(self) -> str:
        return (
            f"OfflineContext(state={self.coordinator.state.value!r}, "
            f"pending={self.coordinator.pending_count})"
        )
