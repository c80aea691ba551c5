"""Benchmark: Retry queue drain throughput in tasks per second.

Measures how many no-op tasks RetryQueue.drain() can execute per second
in a single pass with the gate open.
"""
from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path

from offline_sync.network.retry_queue import RetryQueue

_ITERATIONS: int = 20_000


async def _noop() -> None:
    return None


def bench_drain_throughput() -> dict[str, object]:
    """Benchmark RetryQueue.drain() throughput.

    Returns
    -------
    dict with keys: operation, iterations, total_seconds, ops_per_second,
    avg_latency_ms.
    """
    queue = RetryQueue()
    for _ in range(_ITERATIONS):
        queue.enqueue(_noop)

    start = time.perf_counter()
    report = asyncio.run(queue.drain())
    total = time.perf_counter() - start

    result: dict[str, object] = {
        "operation": "drain_throughput",
        "iterations": len(report.succeeded),
        "total_seconds": round(total, 4),
        "ops_per_second": round(_ITERATIONS / total, 1),
        "avg_latency_ms": round(total / _ITERATIONS * 1000, 4),
    }
    print(
        f"[bench_drain_throughput] {result['operation']}: "
        f"{result['ops_per_second']:,.0f} ops/sec  "
        f"avg {result['avg_latency_ms']:.4f} ms"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_drain_throughput()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "drain_baseline.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")
