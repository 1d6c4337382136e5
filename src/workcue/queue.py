"""Concurrency-bounded request queue with automatic retry."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any, Callable

from workcue.backoff import Backoff
from workcue.config import QueueConfig
from workcue.errors import ExhaustedRetriesError, MisconfigurationError
from workcue.futures import abandon, create_item, fail, invoke, succeed, validate
from workcue.hooks import Observable
from workcue.models import QueueStats, WorkItem, WorkState

logger = logging.getLogger(__name__)


class RequestQueue(Observable):
    """
    Admission-controlled execution of work that may fail transiently.

    At most ``max_concurrent`` items run at once. A failing handler is
    re-run until it has been invoked ``retry_attempts`` times in total;
    after that the caller's future raises ExhaustedRetriesError wrapping
    the last handler error.

    While an item waits out its retry delay it holds no slot. When the delay
    elapses it rejoins the tail of the waiting list, so first attempts are
    dispatched FIFO but retries are not ordered relative to other work.

    Example:
        queue = RequestQueue(max_concurrent=4, retry_attempts=3, retry_delay=0.5)

        async def broadcast(raw_tx):
            return await rpc.send_raw_transaction(raw_tx)

        tx_hash = await queue.add_request(broadcast, signed_tx)
    """

    def __init__(
        self,
        max_concurrent: int | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        *,
        backoff_factor: float | None = None,
        max_retry_delay: float | None = None,
        config: QueueConfig | None = None,
    ) -> None:
        super().__init__()
        options = {
            name: value
            for name, value in (
                ("max_concurrent", max_concurrent),
                ("retry_attempts", retry_attempts),
                ("retry_delay", retry_delay),
                ("backoff_factor", backoff_factor),
                ("max_retry_delay", max_retry_delay),
            )
            if value is not None
        }
        if config is None:
            config = QueueConfig(**options)
        elif options:
            raise MisconfigurationError("Pass either keyword options or config, not both")
        self.config = config
        self.backoff = Backoff.from_config(config)

        self._on_retry_callback: Callable | None = None

        self._waiting: deque[WorkItem] = deque()
        self._in_flight = 0
        self._work_tasks: dict[str, asyncio.Task] = {}  # work_id -> task
        self._backing_off: dict[str, asyncio.TimerHandle] = {}  # work_id -> retry timer
        self._outstanding = 0  # Admitted but not yet settled
        self._idle = asyncio.Event()
        self._idle.set()

        self._total = 0
        self._succeeded = 0
        self._failed = 0
        self._rejected = 0
        self._retries = 0
        self._average_processing_time = 0.0

    @property
    def max_concurrent(self) -> int:
        return self.config.max_concurrent

    @property
    def retry_attempts(self) -> int:
        return self.config.retry_attempts

    def on_retry(self, func):
        """
        Decorator to register retry callback.

        Called with (item, error, delay) when a failed item is scheduled to
        run again after ``delay`` seconds.
        """
        self._on_retry_callback = func
        return func

    # --- Submission ---

    def add_request(self, handler: Callable[[Any], Any], data: Any = None) -> asyncio.Future:
        """
        Submit work to the queue.

        Args:
            handler: Callable invoked as ``handler(data)``. May be sync or async.
            data: Payload passed to the handler.

        Returns:
            Future resolving to the handler's result. Rejected with
            ValidationError for a malformed item (no attempt counted) or
            ExhaustedRetriesError once every attempt has failed.

        Raises:
            RuntimeError: If called without a running event loop.
        """
        item = create_item(handler, data, max_attempts=self.retry_attempts)
        self._total += 1

        error = validate(item)
        if error is not None:
            self._rejected += 1
            fail(item, error)
            logger.debug("Rejected request %s: %s", item.id, error)
            return item.future

        self._outstanding += 1
        self._idle.clear()
        self._waiting.append(item)
        logger.debug("Added request %s (%d waiting)", item.id, len(self._waiting))
        self._admit()
        return item.future

    # --- Dispatch ---

    def _admit(self) -> None:
        """Start waiting items, oldest first, while there is capacity."""
        while self._waiting and self._in_flight < self.max_concurrent:
            self._start(self._waiting.popleft())

    def _start(self, item: WorkItem) -> None:
        self._in_flight += 1
        item.transition(WorkState.RUNNING)
        item.started_at = time.time()
        logger.debug(
            "Processing request %s (attempt %d/%d)", item.id, item.attempt, item.max_attempts
        )
        self._work_tasks[item.id] = asyncio.create_task(self._execute(item))

    async def _execute(self, item: WorkItem) -> None:
        self._emit(self._on_start_callback, item)
        start_time = time.time()

        try:
            result = await invoke(item.handler, item.data)
        except asyncio.CancelledError:
            self._release(item)
            abandon(item)
            self._settled()
            logger.debug("Request %s cancelled", item.id)
            self._admit()
            raise
        except Exception as e:
            self._release(item)
            item.error = e
            if item.attempt < item.max_attempts:
                try:
                    self._schedule_retry(item, e)
                except Exception as retry_error:
                    # Item is still RUNNING here
                    logger.exception("Could not schedule retry for request %s", item.id)
                    self._give_up(item, retry_error)
            else:
                error = ExhaustedRetriesError(item.id, item.attempt, e)
                logger.debug("Request %s exhausted %d attempts: %r", item.id, item.attempt, e)
                self._give_up(item, error)
        else:
            duration = time.time() - start_time
            self._release(item)
            self._succeeded += 1
            self._average_processing_time += (
                duration - self._average_processing_time
            ) / self._succeeded
            succeed(item, result)
            self._settled()
            logger.debug("Request %s completed in %.3fs", item.id, duration)
            self._emit(self._on_complete_callback, item, result, duration)

        self._admit()

    def _release(self, item: WorkItem) -> None:
        self._in_flight -= 1
        self._work_tasks.pop(item.id, None)

    def _settled(self) -> None:
        self._outstanding -= 1
        if self._outstanding == 0:
            self._idle.set()

    def _give_up(self, item: WorkItem, error: Exception) -> None:
        self._failed += 1
        fail(item, error)
        self._settled()
        self._emit(self._on_failure_callback, item, error)

    # --- Retry ---

    def _schedule_retry(self, item: WorkItem, error: Exception) -> None:
        # Everything that can raise happens before the item leaves RUNNING
        delay = self.backoff.delay_for(item.attempt)
        loop = asyncio.get_running_loop()
        timer = loop.call_later(delay, self._retry_ready, item)
        item.transition(WorkState.WAITING)
        self._retries += 1
        self._backing_off[item.id] = timer
        logger.debug(
            "Retrying request %s in %.3fs (attempt %d failed: %r)",
            item.id, delay, item.attempt, error,
        )
        self._emit(self._on_retry_callback, item, error, delay)

    def _retry_ready(self, item: WorkItem) -> None:
        self._backing_off.pop(item.id, None)
        item.transition(WorkState.QUEUED)
        self._waiting.append(item)
        self._admit()

    # --- Introspection ---

    def stats(self) -> QueueStats:
        return QueueStats(
            total=self._total,
            succeeded=self._succeeded,
            failed=self._failed,
            rejected=self._rejected,
            retries=self._retries,
            average_processing_time=self._average_processing_time,
            in_flight=self._in_flight,
            waiting=len(self._waiting),
            backing_off=len(self._backing_off),
        )

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def waiting(self) -> int:
        return len(self._waiting)

    # --- Lifecycle ---

    async def join(self) -> None:
        """Wait until every admitted request has settled, retries included."""
        await self._idle.wait()
