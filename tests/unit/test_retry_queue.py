"""Tests for RetryQueue, BackoffPolicy, QueuedTask."""
from __future__ import annotations

import asyncio

import pytest

from offline_sync.network.retry_queue import (
    BackoffPolicy,
    DrainReport,
    QueuedTask,
    RetryQueue,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FlakyOperation:
    """Async operation that fails *failures* times, then succeeds."""

    def __init__(self, name: str, log: list[str], failures: int = 0) -> None:
        self.name = name
        self.log = log
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1
        self.log.append(self.name)
        if self.calls <= self.failures:
            raise ConnectionError(f"{self.name} failed attempt {self.calls}")


@pytest.fixture()
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def queue(sleeper: RecordingSleep) -> RetryQueue:
    return RetryQueue(sleep=sleeper)


# ---------------------------------------------------------------------------
# BackoffPolicy
# ---------------------------------------------------------------------------


class TestBackoffPolicy:
    def test_default_delay_sequence_is_capped(self) -> None:
        assert BackoffPolicy().delays(8) == pytest.approx(
            [0.2, 0.4, 0.8, 1.6, 3.2, 4.0, 4.0, 4.0]
        )

    def test_next_delay_never_exceeds_cap(self) -> None:
        policy = BackoffPolicy(initial_seconds=1.0, max_seconds=3.0)
        assert policy.next_delay(2.5) == 3.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"initial_seconds": 0},
            {"initial_seconds": 1.0, "max_seconds": 0.5},
            {"multiplier": 0.5},
        ],
    )
    def test_invalid_values_raise(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(ValueError):
            BackoffPolicy(**kwargs)


# ---------------------------------------------------------------------------
# Enqueue
# ---------------------------------------------------------------------------


class TestEnqueue:
    def test_returns_supplied_id(self, queue: RetryQueue) -> None:
        assert queue.enqueue(lambda: None, task_id="booking-1") == "booking-1"

    def test_generates_unique_ids(self, queue: RetryQueue) -> None:
        ids = {queue.enqueue(lambda: None) for _ in range(50)}
        assert len(ids) == 50

    def test_preserves_insertion_order(self, queue: RetryQueue) -> None:
        for name in ("a", "b", "c"):
            queue.enqueue(lambda: None, task_id=name)
        assert queue.pending_ids() == ["a", "b", "c"]
        assert len(queue) == 3
        peeked = queue.peek()
        assert isinstance(peeked, QueuedTask)
        assert peeked.task_id == "a"

    def test_uses_queue_defaults(self) -> None:
        queue = RetryQueue(default_max_attempts=5, default_timeout_seconds=1.5)
        queue.enqueue(lambda: None, task_id="t")
        task = queue.peek()
        assert task is not None
        assert task.max_attempts == 5
        assert task.timeout_seconds == 1.5
        assert task.attempts == 0

    def test_empty_task_id_rejected(self, queue: RetryQueue) -> None:
        with pytest.raises(ValueError):
            queue.enqueue(lambda: None, task_id="")

    def test_negative_max_attempts_rejected(self, queue: RetryQueue) -> None:
        with pytest.raises(ValueError):
            queue.enqueue(lambda: None, max_attempts=-1)

    def test_clear(self, queue: RetryQueue) -> None:
        queue.enqueue(lambda: None)
        queue.enqueue(lambda: None)
        assert queue.clear() == 2
        assert queue.peek() is None


# ---------------------------------------------------------------------------
# Drain
# ---------------------------------------------------------------------------


class TestDrainOrdering:
    @pytest.mark.asyncio
    async def test_fifo_order(self, queue: RetryQueue) -> None:
        log: list[str] = []
        for name in ("A", "B", "C"):
            queue.enqueue(FlakyOperation(name, log), task_id=name)

        report = await queue.drain()

        assert log == ["A", "B", "C"]
        assert report.succeeded == ["A", "B", "C"]
        assert len(queue) == 0
        assert queue.last_drain_report is report

    @pytest.mark.asyncio
    async def test_sync_operations_supported(self, queue: RetryQueue) -> None:
        log: list[str] = []
        queue.enqueue(lambda: log.append("sync"), task_id="s")
        await queue.drain()
        assert log == ["sync"]

    @pytest.mark.asyncio
    async def test_tasks_enqueued_during_drain_run_in_same_pass(self, queue: RetryQueue) -> None:
        log: list[str] = []

        async def _first() -> None:
            log.append("first")
            queue.enqueue(FlakyOperation("late", log), task_id="late")

        queue.enqueue(_first, task_id="first")
        report = await queue.drain()

        assert log == ["first", "late"]
        assert report.succeeded == ["first", "late"]

    @pytest.mark.asyncio
    async def test_concurrent_drain_returns_immediately(self, queue: RetryQueue) -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        async def _slow() -> None:
            started.set()
            await release.wait()

        queue.enqueue(_slow, task_id="slow")
        first = asyncio.ensure_future(queue.drain())
        await started.wait()

        second = await queue.drain()
        assert second.already_running
        assert queue.is_draining

        release.set()
        report = await first
        assert report.succeeded == ["slow"]
        assert not queue.is_draining


class TestDrainBackoff:
    @pytest.mark.asyncio
    async def test_delays_grow_and_cap(self, queue: RetryQueue, sleeper: RecordingSleep) -> None:
        log: list[str] = []
        queue.enqueue(FlakyOperation("x", log, failures=100), task_id="x", max_attempts=8)

        report = await queue.drain()

        assert sleeper.delays == pytest.approx([0.2, 0.4, 0.8, 1.6, 3.2, 4.0, 4.0])
        assert max(sleeper.delays) <= 4.0
        assert report.dropped == ["x"]
        assert len(log) == 8

    @pytest.mark.asyncio
    async def test_drop_after_max_attempts(self, queue: RetryQueue, sleeper: RecordingSleep) -> None:
        log: list[str] = []
        op = FlakyOperation("doomed", log, failures=100)
        queue.enqueue(op, task_id="doomed", max_attempts=3)

        report = await queue.drain()
        assert op.calls == 3
        assert report.dropped == ["doomed"]
        assert report.retried == ["doomed", "doomed"]
        assert sleeper.delays == pytest.approx([0.2, 0.4])

        await queue.drain()
        assert op.calls == 3
        assert queue.pending_ids() == []

    @pytest.mark.asyncio
    async def test_success_resets_backoff(self, queue: RetryQueue, sleeper: RecordingSleep) -> None:
        log: list[str] = []
        queue.enqueue(FlakyOperation("first", log, failures=3), task_id="first", max_attempts=5)
        queue.enqueue(FlakyOperation("second", log, failures=1), task_id="second")

        report = await queue.drain()

        # first: 0.2, 0.4, 0.8 then success; second restarts at 0.2
        assert sleeper.delays == pytest.approx([0.2, 0.4, 0.8, 0.2])
        assert report.succeeded == ["first", "second"]

    @pytest.mark.asyncio
    async def test_failed_task_stays_at_head(self, queue: RetryQueue) -> None:
        log: list[str] = []
        queue.enqueue(FlakyOperation("head", log, failures=2), task_id="head")
        queue.enqueue(FlakyOperation("tail", log), task_id="tail")

        await queue.drain()

        assert log == ["head", "head", "head", "tail"]

    @pytest.mark.parametrize("max_attempts", [0, 1])
    @pytest.mark.asyncio
    async def test_zero_or_one_attempt_means_no_retry(
        self, queue: RetryQueue, sleeper: RecordingSleep, max_attempts: int
    ) -> None:
        log: list[str] = []
        op = FlakyOperation("once", log, failures=100)
        queue.enqueue(op, task_id="once", max_attempts=max_attempts)

        report = await queue.drain()

        assert op.calls == 1
        assert report.dropped == ["once"]
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_sync_and_async_failures_handled_alike(
        self, queue: RetryQueue, sleeper: RecordingSleep
    ) -> None:
        def _sync_boom() -> None:
            raise ValueError("sync")

        async def _async_boom() -> None:
            raise ValueError("async")

        queue.enqueue(_sync_boom, task_id="sync", max_attempts=2)
        queue.enqueue(_async_boom, task_id="async", max_attempts=2)

        report = await queue.drain()

        assert report.dropped == ["sync", "async"]
        assert report.retried == ["sync", "async"]
        assert sleeper.delays == pytest.approx([0.2, 0.4])


class TestDrainGate:
    @pytest.mark.asyncio
    async def test_closed_gate_runs_nothing(self, queue: RetryQueue) -> None:
        log: list[str] = []
        queue.enqueue(FlakyOperation("a", log), task_id="a")
        report = await queue.drain(lambda: False)
        assert log == []
        assert report.halted
        assert queue.pending_ids() == ["a"]

    @pytest.mark.asyncio
    async def test_gate_closing_mid_drain_halts_before_next_task(self, queue: RetryQueue) -> None:
        log: list[str] = []
        online = {"value": True}

        async def _then_disconnect() -> None:
            log.append("a")
            online["value"] = False

        queue.enqueue(_then_disconnect, task_id="a")
        queue.enqueue(FlakyOperation("b", log), task_id="b")

        report = await queue.drain(lambda: online["value"])

        assert log == ["a"]
        assert report.succeeded == ["a"]
        assert report.halted
        assert queue.pending_ids() == ["b"]

        online["value"] = True
        await queue.drain(lambda: online["value"])
        assert log == ["a", "b"]


class TestFailureHandling:
    @pytest.mark.asyncio
    async def test_on_failure_called_once_on_drop(self, queue: RetryQueue) -> None:
        failures: list[tuple[str, str]] = []

        def _record(task: QueuedTask, exc: BaseException) -> None:
            failures.append((task.task_id, str(exc)))

        async def _boom() -> None:
            raise ConnectionError("server down")

        queue.enqueue(_boom, task_id="review-7", max_attempts=2, on_failure=_record)
        await queue.drain()

        assert failures == [("review-7", "server down")]

    @pytest.mark.asyncio
    async def test_async_on_failure_awaited(self, queue: RetryQueue) -> None:
        failures: list[str] = []

        async def _record(task: QueuedTask, exc: BaseException) -> None:
            failures.append(task.task_id)

        queue.enqueue(lambda: 1 / 0, task_id="t", max_attempts=1, on_failure=_record)
        await queue.drain()
        assert failures == ["t"]

    @pytest.mark.asyncio
    async def test_failing_on_failure_does_not_stop_queue(self, queue: RetryQueue) -> None:
        log: list[str] = []

        def _bad_callback(task: QueuedTask, exc: BaseException) -> None:
            raise RuntimeError("callback bug")

        queue.enqueue(lambda: 1 / 0, task_id="bad", max_attempts=1, on_failure=_bad_callback)
        queue.enqueue(FlakyOperation("good", log), task_id="good")

        report = await queue.drain()
        assert report.dropped == ["bad"]
        assert report.succeeded == ["good"]

    @pytest.mark.asyncio
    async def test_last_error_recorded(self, queue: RetryQueue) -> None:
        captured: list[QueuedTask] = []
        queue.enqueue(
            lambda: 1 / 0,
            task_id="t",
            max_attempts=1,
            on_failure=lambda task, exc: captured.append(task),
        )
        await queue.drain()
        assert captured[0].attempts == 1
        assert "ZeroDivisionError" in (captured[0].last_error or "")

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, queue: RetryQueue) -> None:
        async def _hang() -> None:
            await asyncio.sleep(10)

        queue.enqueue(_hang, task_id="hung", max_attempts=1, timeout_seconds=0.01)
        report = await queue.drain()
        assert report.dropped == ["hung"]


class TestDrainReport:
    def test_attempts_total(self) -> None:
        report = DrainReport(succeeded=["a"], retried=["b", "b"], dropped=["b"])
        assert report.attempts == 4
