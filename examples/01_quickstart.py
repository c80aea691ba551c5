#!/usr/bin/env python3
"""Example: Quickstart for offline-sync

Queue two uploads while the device is offline, then reconnect and watch
the retry queue deliver them in order, retrying the flaky one.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install offline-sync
"""
from __future__ import annotations

import asyncio

import offline_sync
from offline_sync import (
    ConnectivityResult,
    ManualConnectivityProvider,
    OfflineConfig,
    OfflineContext,
)


async def main() -> None:
    print(f"offline-sync version: {offline_sync.__version__}")

    provider = ManualConnectivityProvider([ConnectivityResult.NONE])
    attempts = {"review-2": 0}

    async def upload_review(review_id: str) -> None:
        if review_id in attempts:
            attempts[review_id] += 1
            if attempts[review_id] < 2:
                raise ConnectionError("server busy")
        print(f"  uploaded {review_id}")

    config = OfflineConfig(drain_debounce_seconds=0.05)
    async with OfflineContext.from_config(config, provider=provider) as context:
        coordinator = context.coordinator
        coordinator.listen(lambda status: print(f"  status -> {status.value}"))
        print(f"Start state: {coordinator.state.value}")

        # Step 1: queue work while offline
        coordinator.enqueue(lambda: upload_review("review-1"), task_id="review-1")
        coordinator.enqueue(lambda: upload_review("review-2"), task_id="review-2")
        print(f"Pending while offline: {coordinator.pending_count}")

        # Step 2: reconnect and let the queue drain
        provider.go_online()
        await coordinator.wait_idle()

        report = coordinator.queue.last_drain_report
        print(f"Pending after drain: {coordinator.pending_count}")
        if report is not None:
            print(f"  succeeded={report.succeeded} retried={report.retried}")


if __name__ == "__main__":
    asyncio.run(main())
