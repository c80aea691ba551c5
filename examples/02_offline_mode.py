#!/usr/bin/env python3
"""Example: Manual offline mode and staleness checks

Shows the persisted offline override blocking the queue while the link is
up, and the last-online timestamp surviving a restart.

Usage:
    python examples/02_offline_mode.py

Requirements:
    pip install offline-sync
"""
from __future__ import annotations

import asyncio
import datetime
import tempfile
from pathlib import Path

from offline_sync import (
    ConnectivityResult,
    ManualConnectivityProvider,
    OfflineConfig,
    OfflineContext,
)


async def main() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        config = OfflineConfig(storage_path=Path(tmp) / "offline.json")
        provider = ManualConnectivityProvider([ConnectivityResult.WIFI])

        # Step 1: turn offline mode on while connected
        async with OfflineContext.from_config(config, provider=provider) as context:
            await context.coordinator.set_offline_mode(True)
            context.coordinator.enqueue(lambda: print("  synced booking"), task_id="booking-9")
            await asyncio.sleep(0.5)
            print(f"State: {context.coordinator.state.value}, pending: {context.coordinator.pending_count}")

        # Step 2: a fresh context restores the override and last-online time
        async with OfflineContext.from_config(config, provider=provider) as context:
            coordinator = context.coordinator
            print(f"Restored offline mode: {coordinator.is_offline_mode}")
            print(f"Last online: {coordinator.last_online_at}")
            print(f"Stale after 1h? {coordinator.is_stale(datetime.timedelta(hours=1))}")


if __name__ == "__main__":
    asyncio.run(main())
