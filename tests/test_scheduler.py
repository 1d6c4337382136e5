"""TaskScheduler dispatch, concurrency and failure tests."""

import asyncio

import pytest

from workcue import TaskScheduler, ValidationError, WorkerStatus


class TestExecution:
    """Tests for basic task execution."""

    async def test_sync_handler_result(self):
        """A plain function's return value resolves the future."""
        scheduler = TaskScheduler(max_workers=2)

        result = await scheduler.add_task(lambda x: x * 2, 3)

        assert result == 6

    async def test_async_handler_result(self):
        scheduler = TaskScheduler(max_workers=2)

        async def double(x):
            await asyncio.sleep(0.01)
            return x * 2

        assert await scheduler.add_task(double, 21) == 42

    async def test_handler_returning_awaitable(self):
        """Plain callables returning a coroutine are awaited."""
        scheduler = TaskScheduler(max_workers=1)

        async def inner(x):
            return x + 1

        assert await scheduler.add_task(lambda x: inner(x), 1) == 2

    async def test_data_defaults_to_none(self):
        scheduler = TaskScheduler(max_workers=1)

        assert await scheduler.add_task(lambda d: d) is None

    async def test_dispatch_is_immediate(self):
        """With a free slot, the item is running as soon as add_task returns."""
        scheduler = TaskScheduler(max_workers=2)
        gate = asyncio.Event()

        async def wait_for_gate(_):
            await gate.wait()

        future = scheduler.add_task(wait_for_gate)
        workers = scheduler.workers()

        assert workers[0].status == WorkerStatus.BUSY
        assert workers[0].work_id is not None
        assert workers[1].status == WorkerStatus.IDLE
        assert scheduler.pending == 0

        gate.set()
        await future
        assert scheduler.workers()[0].status == WorkerStatus.IDLE

    def test_requires_running_loop(self):
        scheduler = TaskScheduler(max_workers=1)

        with pytest.raises(RuntimeError):
            scheduler.add_task(lambda x: x, 1)


class TestConcurrency:
    """Tests for the worker-count ceiling."""

    async def test_max_workers_respected(self):
        scheduler = TaskScheduler(max_workers=3)
        running = 0
        max_running = 0

        async def slow(_):
            nonlocal running, max_running
            running += 1
            max_running = max(max_running, running)
            await asyncio.sleep(0.02)
            running -= 1

        await asyncio.gather(*(scheduler.add_task(slow, i) for i in range(10)))

        assert max_running == 3

    async def test_single_worker_is_serial(self):
        scheduler = TaskScheduler(max_workers=1)
        running = 0
        max_running = 0

        async def task(_):
            nonlocal running, max_running
            running += 1
            max_running = max(max_running, running)
            await asyncio.sleep(0.005)
            running -= 1

        await asyncio.gather(*(scheduler.add_task(task, i) for i in range(4)))

        assert max_running == 1

    async def test_excess_work_is_pending(self):
        scheduler = TaskScheduler(max_workers=2)
        gate = asyncio.Event()

        async def blocked(_):
            await gate.wait()

        futures = [scheduler.add_task(blocked, i) for i in range(5)]

        stats = scheduler.stats()
        assert stats.busy == 2
        assert stats.pending == 3
        assert stats.utilization == 100.0

        gate.set()
        await asyncio.gather(*futures)
        assert scheduler.stats().pending == 0


class TestOrdering:
    """Dispatch follows submission order exactly."""

    async def test_fifo_dispatch(self):
        scheduler = TaskScheduler(max_workers=2)
        started = []

        async def record(i):
            started.append(i)
            # Uneven durations so slots free up out of order
            await asyncio.sleep(0.002 * (3 - i % 3))
            return i

        results = await asyncio.gather(*(scheduler.add_task(record, i) for i in range(12)))

        assert started == list(range(12))
        assert results == list(range(12))

    async def test_fifo_with_failures(self):
        """Failures free their slot and dispatch continues in order."""
        scheduler = TaskScheduler(max_workers=1)
        started = []

        def maybe_fail(i):
            started.append(i)
            if i % 2:
                raise ValueError(i)
            return i

        results = await asyncio.gather(
            *(scheduler.add_task(maybe_fail, i) for i in range(6)),
            return_exceptions=True,
        )

        assert started == list(range(6))
        assert [isinstance(r, ValueError) for r in results] == [False, True] * 3


class TestFailures:
    """Handler errors propagate without retry."""

    async def test_error_propagates_unchanged(self):
        scheduler = TaskScheduler(max_workers=2)
        error = RuntimeError("boom")
        calls = 0

        async def failing(_):
            nonlocal calls
            calls += 1
            raise error

        with pytest.raises(RuntimeError) as excinfo:
            await scheduler.add_task(failing)

        assert excinfo.value is error
        assert calls == 1

    async def test_failure_frees_slot(self):
        scheduler = TaskScheduler(max_workers=1)

        def failing(_):
            raise ValueError("nope")

        first = scheduler.add_task(failing)
        second = scheduler.add_task(lambda x: x, "ok")

        with pytest.raises(ValueError):
            await first
        assert await second == "ok"

    @pytest.mark.parametrize("handler", [None, 42, "not callable"])
    async def test_invalid_handler_rejected(self, handler):
        scheduler = TaskScheduler(max_workers=1)

        future = scheduler.add_task(handler, 1)

        assert future.done()
        with pytest.raises(ValidationError):
            await future
        stats = scheduler.stats()
        assert stats.busy == 0
        assert stats.rejected == 1

    async def test_invalid_handler_does_not_block_queue(self):
        scheduler = TaskScheduler(max_workers=1)

        bad = scheduler.add_task(None)
        good = scheduler.add_task(lambda x: x + 1, 1)

        with pytest.raises(ValidationError):
            await bad
        assert await good == 2


class TestIntrospection:
    """Tests for stats, worker snapshots and join."""

    async def test_stats_after_run(self):
        scheduler = TaskScheduler(max_workers=2)

        def handler(x):
            if x == 3:
                raise ValueError(x)
            return x

        await asyncio.gather(
            *(scheduler.add_task(handler, i) for i in range(5)),
            return_exceptions=True,
        )

        stats = scheduler.stats()
        assert stats.total == 5
        assert stats.succeeded == 4
        assert stats.failed == 1
        assert stats.busy == 0
        assert stats.utilization == 0.0
        assert stats.average_processing_time >= 0

    async def test_worker_counters(self):
        scheduler = TaskScheduler(max_workers=2)

        await asyncio.gather(*(scheduler.add_task(lambda x: x, i) for i in range(6)))

        workers = scheduler.workers()
        assert sum(w.tasks_completed for w in workers) == 6
        assert all(w.work_id is None for w in workers)

    async def test_join_waits_for_pending(self):
        scheduler = TaskScheduler(max_workers=2)
        done = []

        async def task(i):
            await asyncio.sleep(0.01)
            done.append(i)

        for i in range(5):
            scheduler.add_task(task, i)

        await scheduler.join()

        assert sorted(done) == list(range(5))
        assert scheduler.busy == 0
        assert scheduler.pending == 0

    async def test_join_when_idle(self):
        await TaskScheduler(max_workers=1).join()
