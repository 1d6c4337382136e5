"""Fixed-capacity task scheduler with strict FIFO dispatch."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any, Callable

from workcue.config import SchedulerConfig
from workcue.errors import MisconfigurationError
from workcue.futures import abandon, create_item, fail, invoke, succeed, validate
from workcue.hooks import Observable
from workcue.models import (
    SchedulerStats,
    WorkItem,
    WorkState,
    Worker,
    WorkerSnapshot,
    WorkerStatus,
)

logger = logging.getLogger(__name__)


class TaskScheduler(Observable):
    """
    Run work on a fixed pool of worker slots.

    Items are dispatched in exactly the order they were submitted, one per
    free slot. There is no retry: a handler's exception is delivered to the
    caller's future unchanged.

    All bookkeeping runs on the event loop thread. Each dispatch decision
    happens inside a single synchronous step, so two completing handlers can
    never both claim the same pending item.

    Example:
        scheduler = TaskScheduler(max_workers=2)

        async def sign(payload):
            return await signer.sign(payload)

        signature = await scheduler.add_task(sign, {"tx": "0x..."})
    """

    def __init__(
        self,
        max_workers: int | None = None,
        *,
        config: SchedulerConfig | None = None,
    ) -> None:
        super().__init__()
        if config is None:
            config = SchedulerConfig() if max_workers is None else SchedulerConfig(max_workers=max_workers)
        elif max_workers is not None:
            raise MisconfigurationError("Pass either max_workers or config, not both")
        self.config = config

        # Slot arena, indexed by worker id
        self._workers: list[Worker] = [Worker(id=i) for i in range(config.max_workers)]
        self._pending: deque[WorkItem] = deque()
        self._work_tasks: dict[str, asyncio.Task] = {}  # work_id -> task

        self._total = 0
        self._succeeded = 0
        self._failed = 0
        self._rejected = 0
        self._average_processing_time = 0.0

        logger.debug("Initialized %d workers", config.max_workers)

    @property
    def max_workers(self) -> int:
        return self.config.max_workers

    # --- Submission ---

    def add_task(self, handler: Callable[[Any], Any], data: Any = None) -> asyncio.Future:
        """
        Submit work to the scheduler.

        Args:
            handler: Callable invoked as ``handler(data)``. May be sync or async.
            data: Payload passed to the handler.

        Returns:
            Future resolving to the handler's result, or raising its error.
            A missing or non-callable handler yields a future that already
            holds a ValidationError; no slot is used.

        Raises:
            RuntimeError: If called without a running event loop.
        """
        item = create_item(handler, data)
        self._total += 1

        error = validate(item)
        if error is not None:
            self._rejected += 1
            fail(item, error)
            logger.debug("Rejected work %s: %s", item.id, error)
            return item.future

        # Anything already pending goes first
        worker = None if self._pending else self._idle_worker()
        if worker is None:
            self._pending.append(item)
            logger.debug("Queued work %s (%d pending)", item.id, len(self._pending))
        else:
            self._dispatch(worker, item)
        return item.future

    # --- Dispatch ---

    def _idle_worker(self) -> Worker | None:
        for worker in self._workers:
            if worker.status is WorkerStatus.IDLE:
                return worker
        return None

    def _dispatch(self, worker: Worker, item: WorkItem) -> None:
        now = time.time()
        worker.assign(item, now)
        item.transition(WorkState.RUNNING)
        item.started_at = now
        logger.debug("Assigned work %s to worker %d", item.id, worker.id)
        self._work_tasks[item.id] = asyncio.create_task(self._execute(worker, item))

    async def _execute(self, worker: Worker, item: WorkItem) -> None:
        self._emit(self._on_start_callback, item)
        start_time = time.time()

        try:
            result = await invoke(item.handler, item.data)
        except asyncio.CancelledError:
            self._release(worker, item, start_time)
            abandon(item)
            logger.debug("Work %s cancelled on worker %d", item.id, worker.id)
            self._advance(worker)
            raise
        except Exception as e:
            self._release(worker, item, start_time)
            self._failed += 1
            fail(item, e)
            logger.debug("Work %s failed on worker %d: %r", item.id, worker.id, e)
            self._emit(self._on_failure_callback, item, e)
        else:
            duration = self._release(worker, item, start_time)
            self._succeeded += 1
            self._average_processing_time += (
                duration - self._average_processing_time
            ) / self._succeeded
            succeed(item, result)
            logger.debug("Work %s completed in %.3fs", item.id, duration)
            self._emit(self._on_complete_callback, item, result, duration)

        self._advance(worker)

    def _release(self, worker: Worker, item: WorkItem, start_time: float) -> float:
        now = time.time()
        duration = now - start_time
        worker.release(now, duration)
        self._work_tasks.pop(item.id, None)
        return duration

    def _advance(self, worker: Worker) -> None:
        """Hand the oldest pending item to the slot that just freed up."""
        if self._pending and worker.status is WorkerStatus.IDLE:
            self._dispatch(worker, self._pending.popleft())

    # --- Introspection ---

    def workers(self) -> list[WorkerSnapshot]:
        """Snapshot of every worker slot."""
        return [
            WorkerSnapshot(
                id=w.id,
                status=w.status,
                work_id=w.current.id if w.current else None,
                tasks_completed=w.tasks_completed,
                total_processing_time=w.total_processing_time,
                last_activity=w.last_activity,
            )
            for w in self._workers
        ]

    def stats(self) -> SchedulerStats:
        busy = self.busy
        return SchedulerStats(
            total=self._total,
            succeeded=self._succeeded,
            failed=self._failed,
            rejected=self._rejected,
            average_processing_time=self._average_processing_time,
            busy=busy,
            pending=len(self._pending),
            utilization=busy / self.max_workers * 100,
        )

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def busy(self) -> int:
        return sum(1 for w in self._workers if w.status is WorkerStatus.BUSY)

    # --- Lifecycle ---

    async def join(self) -> None:
        """Wait until every admitted item has settled."""
        while self._work_tasks:
            await asyncio.gather(*list(self._work_tasks.values()), return_exceptions=True)
