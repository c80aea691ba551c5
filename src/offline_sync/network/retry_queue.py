"""Sequential retry queue for deferred network work.

Holds an ordered list of :class:`QueuedTask` and drains it head-first,
one task at a time, while an externally supplied gate allows it. Failed
tasks stay at the head and are retried after an exponential backoff;
tasks that exhaust their attempts are dropped.

Backoff
-------
The first retry waits ``initial_seconds`` (200 ms by default); each further
failure doubles the wait up to ``max_seconds`` (4 s). Any success resets
the wait back to ``initial_seconds``.

The queue knows nothing about connectivity. The owner passes a
``can_continue`` callable to :meth:`RetryQueue.drain`, which is re-checked
before every attempt.
"""
from __future__ import annotations

import asyncio
import datetime
import inspect
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Union

logger = logging.getLogger(__name__)

Operation = Callable[[], Union[Awaitable[None], None]]
FailureCallback = Callable[["QueuedTask", BaseException], Union[Awaitable[None], None]]
SleepFunc = Callable[[float], Awaitable[None]]


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff settings for the drain loop.

    Attributes
    ----------
    initial_seconds:
        Wait before the first retry, and the value restored after a success.
    max_seconds:
        Upper bound for any single wait.
    multiplier:
        Growth factor applied after every failed attempt.
    """

    initial_seconds: float = 0.2
    max_seconds: float = 4.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.initial_seconds <= 0:
            raise ValueError(f"initial_seconds must be > 0, got {self.initial_seconds}")
        if self.max_seconds < self.initial_seconds:
            raise ValueError(
                f"max_seconds ({self.max_seconds}) must be >= initial_seconds "
                f"({self.initial_seconds})"
            )
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, got {self.multiplier}")

    def next_delay(self, current: float) -> float:
        """Return the wait that follows *current*, capped at ``max_seconds``."""
        return min(current * self.multiplier, self.max_seconds)

    def delays(self, count: int) -> list[float]:
        """Return the first *count* waits of an uninterrupted failure run."""
        result: list[float] = []
        delay = self.initial_seconds
        for _ in range(count):
            result.append(delay)
            delay = self.next_delay(delay)
        return result


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class QueuedTask:
    """A unit of deferred work.

    Attributes
    ----------
    task_id:
        Identifier used for logging and tracking.
    operation:
        Zero-argument callable. May return an awaitable or ``None``; raising,
        either synchronously or from the awaitable, counts as a failure.
    max_attempts:
        Attempts allowed before the task is dropped. 0 and 1 both mean a
        single attempt with no retry.
    attempts:
        Failed attempts so far.
    timeout_seconds:
        Optional bound on a single attempt. A timeout counts as a failure.
    on_failure:
        Optional callback invoked once with ``(task, exc)`` when the task
        is dropped.
    enqueued_at:
        UTC timestamp of when the task was queued.
    last_error:
        ``repr`` of the most recent failure, or None.
    """

    task_id: str
    operation: Operation
    max_attempts: int = 3
    attempts: int = 0
    timeout_seconds: float | None = None
    on_failure: FailureCallback | None = None
    enqueued_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )
    last_error: str | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts


@dataclass
class DrainReport:
    """Outcome of one drain pass.

    Attributes
    ----------
    succeeded:
        IDs of tasks that completed, in execution order.
    retried:
        One entry per failed attempt that was followed by a backoff wait.
    dropped:
        IDs of tasks removed after exhausting their attempts.
    halted:
        True when the gate closed while tasks were still queued.
    already_running:
        True when the call returned immediately because another drain
        pass was active.
    """

    succeeded: list[str] = field(default_factory=list)
    retried: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    halted: bool = False
    already_running: bool = False

    @property
    def attempts(self) -> int:
        return len(self.succeeded) + len(self.retried) + len(self.dropped)


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


class RetryQueue:
    """FIFO queue of :class:`QueuedTask` drained sequentially with backoff.

    Parameters
    ----------
    backoff:
        The :class:`BackoffPolicy` applied between failed attempts.
    default_max_attempts:
        ``max_attempts`` used when :meth:`enqueue` is not given one.
    default_timeout_seconds:
        Per-attempt timeout used when :meth:`enqueue` is not given one.
        None disables timeouts.
    sleep:
        Coroutine function used for backoff waits. Defaults to
        :func:`asyncio.sleep`; tests substitute a recorder.

    Example
    -------
    ::

        queue = RetryQueue()
        queue.enqueue(upload_booking, task_id="booking-42")
        report = await queue.drain(lambda: coordinator.can_go_online)
    """

    def __init__(
        self,
        backoff: BackoffPolicy | None = None,
        default_max_attempts: int = 3,
        default_timeout_seconds: float | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        if default_max_attempts < 0:
            raise ValueError(f"default_max_attempts must be >= 0, got {default_max_attempts}")
        self._backoff = backoff or BackoffPolicy()
        self._default_max_attempts = default_max_attempts
        self._default_timeout = default_timeout_seconds
        self._sleep: SleepFunc = sleep or asyncio.sleep
        self._tasks: deque[QueuedTask] = deque()
        self._draining = False
        self._last_report: DrainReport | None = None

    # ------------------------------------------------------------------
    # Queue management
    # ------------------------------------------------------------------

    @property
    def backoff(self) -> BackoffPolicy:
        return self._backoff

    @property
    def is_draining(self) -> bool:
        return self._draining

    @property
    def last_drain_report(self) -> DrainReport | None:
        """Return the report of the most recent completed drain pass."""
        return self._last_report

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def pending_ids(self) -> list[str]:
        """Return queued task IDs, head first."""
        return [task.task_id for task in self._tasks]

    def peek(self) -> QueuedTask | None:
        """Return the head task without removing it, or None when empty."""
        return self._tasks[0] if self._tasks else None

    def enqueue(
        self,
        operation: Operation,
        task_id: str | None = None,
        max_attempts: int | None = None,
        timeout_seconds: float | None = None,
        on_failure: FailureCallback | None = None,
    ) -> str:
        """Append a task to the tail of the queue.

        Parameters
        ----------
        operation:
            The deferred action.
        task_id:
            Caller-supplied identifier. A UUID4 string is generated when
            omitted.
        max_attempts:
            Attempts before the task is dropped. Defaults to the queue's
            ``default_max_attempts``.
        timeout_seconds:
            Per-attempt timeout. Defaults to the queue's default.
        on_failure:
            Callback invoked once when the task is dropped.

        Returns
        -------
        str
            The task ID.

        Raises
        ------
        ValueError
            If *task_id* is an empty string or *max_attempts* is negative.
        """
        if task_id is not None and not task_id:
            raise ValueError("task_id must not be empty")
        attempts_allowed = self._default_max_attempts if max_attempts is None else max_attempts
        if attempts_allowed < 0:
            raise ValueError(f"max_attempts must be >= 0, got {attempts_allowed}")

        task = QueuedTask(
            task_id=task_id or str(uuid.uuid4()),
            operation=operation,
            max_attempts=attempts_allowed,
            timeout_seconds=self._default_timeout if timeout_seconds is None else timeout_seconds,
            on_failure=on_failure,
        )
        self._tasks.append(task)
        logger.debug("Enqueued task %s (max_attempts=%d)", task.task_id, task.max_attempts)
        return task.task_id

    def clear(self) -> int:
        """Remove every queued task and return how many were removed."""
        count = len(self._tasks)
        self._tasks.clear()
        return count

    # ------------------------------------------------------------------
    # Drain
    # ------------------------------------------------------------------

    async def drain(self, can_continue: Callable[[], bool] | None = None) -> DrainReport:
        """Run queued tasks head-first until the queue is empty or the gate closes.

        Only one pass runs at a time; a call made while another pass is
        active returns immediately with ``already_running`` set. Tasks
        enqueued during a pass are picked up by the same pass.

        Parameters
        ----------
        can_continue:
            Gate re-checked before every attempt. Defaults to always-open.

        Returns
        -------
        DrainReport
            What happened during this pass.
        """
        if self._draining:
            return DrainReport(already_running=True)

        gate = can_continue or (lambda: True)
        report = DrainReport()
        self._draining = True
        delay = self._backoff.initial_seconds
        try:
            while self._tasks and gate():
                task = self._tasks[0]
                try:
                    await self._run(task)
                except Exception as exc:
                    task.attempts += 1
                    task.last_error = repr(exc)
                    if task.exhausted:
                        self._remove(task)
                        report.dropped.append(task.task_id)
                        logger.error(
                            "Dropped task %s after %d attempts: %r",
                            task.task_id,
                            task.attempts,
                            exc,
                        )
                        await self._notify_failure(task, exc)
                    else:
                        report.retried.append(task.task_id)
                        logger.warning(
                            "Retry task %s attempt %d in %.3fs: %r",
                            task.task_id,
                            task.attempts,
                            delay,
                            exc,
                        )
                        await self._sleep(delay)
                        delay = self._backoff.next_delay(delay)
                else:
                    self._remove(task)
                    report.succeeded.append(task.task_id)
                    delay = self._backoff.initial_seconds
            report.halted = bool(self._tasks)
        finally:
            self._draining = False
            self._last_report = report

        logger.debug(
            "Drain pass finished: %d succeeded, %d retried, %d dropped, %d pending",
            len(report.succeeded),
            len(report.retried),
            len(report.dropped),
            len(self._tasks),
        )
        return report

    async def _run(self, task: QueuedTask) -> None:
        result = task.operation()
        if not inspect.isawaitable(result):
            return
        if task.timeout_seconds is None:
            await result
        else:
            await asyncio.wait_for(result, timeout=task.timeout_seconds)

    def _remove(self, task: QueuedTask) -> None:
        # The head may have been cleared while the task was running.
        if self._tasks and self._tasks[0] is task:
            self._tasks.popleft()
        elif task in self._tasks:
            self._tasks.remove(task)

    async def _notify_failure(self, task: QueuedTask, exc: BaseException) -> None:
        if task.on_failure is None:
            return
        try:
            outcome = task.on_failure(task, exc)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("on_failure callback for task %s raised", task.task_id)


__all__ = [
    "BackoffPolicy",
    "DrainReport",
    "QueuedTask",
    "RetryQueue",
]
