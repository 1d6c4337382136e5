"""RequestQueue admission, retry and backoff tests."""

import asyncio
import logging
import time

import pytest

from workcue import Backoff, ExhaustedRetriesError, RequestQueue, ValidationError, WorkState


class TestExecution:
    """Tests for basic request execution."""

    async def test_async_handler_result(self):
        queue = RequestQueue(max_concurrent=2, retry_attempts=2, retry_delay=0.01)

        async def increment(d):
            return d + 1

        assert await queue.add_request(increment, 1) == 2

    async def test_sync_handler_result(self):
        queue = RequestQueue(max_concurrent=1, retry_attempts=1, retry_delay=0)

        assert await queue.add_request(lambda d: d * 3, 3) == 9

    async def test_starts_immediately_with_capacity(self):
        queue = RequestQueue(max_concurrent=2, retry_attempts=1, retry_delay=0)
        gate = asyncio.Event()

        async def blocked(_):
            await gate.wait()

        futures = [queue.add_request(blocked) for _ in range(3)]

        assert queue.in_flight == 2
        assert queue.waiting == 1

        gate.set()
        await asyncio.gather(*futures)
        assert queue.in_flight == 0
        assert queue.waiting == 0

    def test_requires_running_loop(self):
        queue = RequestQueue(max_concurrent=1)

        with pytest.raises(RuntimeError):
            queue.add_request(lambda d: d)


class TestConcurrency:
    """Tests for the in-flight ceiling."""

    async def test_max_concurrent_respected(self):
        queue = RequestQueue(max_concurrent=2, retry_attempts=1, retry_delay=0)
        running = 0
        max_running = 0

        async def slow(_):
            nonlocal running, max_running
            running += 1
            max_running = max(max_running, running)
            await asyncio.sleep(0.02)
            running -= 1

        await asyncio.gather(*(queue.add_request(slow, i) for i in range(8)))

        assert max_running == 2

    async def test_ceiling_holds_across_retries(self):
        queue = RequestQueue(max_concurrent=2, retry_attempts=3, retry_delay=0.005)
        running = 0
        max_running = 0
        calls: dict[int, int] = {}

        async def flaky(i):
            nonlocal running, max_running
            running += 1
            max_running = max(max_running, running)
            calls[i] = calls.get(i, 0) + 1
            await asyncio.sleep(0.005)
            running -= 1
            if calls[i] < 3:
                raise ConnectionError("transient")
            return i

        results = await asyncio.gather(*(queue.add_request(flaky, i) for i in range(6)))

        assert results == list(range(6))
        assert max_running <= 2

    async def test_first_attempts_are_fifo(self):
        queue = RequestQueue(max_concurrent=1, retry_attempts=1, retry_delay=0)
        started = []

        async def record(i):
            started.append(i)
            await asyncio.sleep(0.001)

        await asyncio.gather(*(queue.add_request(record, i) for i in range(6)))

        assert started == list(range(6))


class TestRetry:
    """Tests for retry semantics."""

    @pytest.mark.parametrize("attempts", [1, 2, 3, 5])
    async def test_always_failing_runs_exactly_retry_attempts(self, attempts):
        queue = RequestQueue(max_concurrent=2, retry_attempts=attempts, retry_delay=0.001)
        calls = 0

        async def always_throws(_):
            nonlocal calls
            calls += 1
            raise RuntimeError(f"fail {calls}")

        with pytest.raises(ExhaustedRetriesError) as excinfo:
            await queue.add_request(always_throws)

        assert calls == attempts
        error = excinfo.value
        assert error.attempts == attempts
        assert isinstance(error.last_error, RuntimeError)
        assert str(error.last_error) == f"fail {attempts}"
        assert error.__cause__ is error.last_error

    async def test_retries_more_than_once(self):
        queue = RequestQueue(max_concurrent=2, retry_attempts=2, retry_delay=0.01)
        calls = 0

        async def always_throws(_):
            nonlocal calls
            calls += 1
            raise Exception("fail")

        with pytest.raises(ExhaustedRetriesError):
            await queue.add_request(always_throws)

        assert calls > 1

    async def test_fail_once_then_succeed(self):
        queue = RequestQueue(max_concurrent=2, retry_attempts=3, retry_delay=0.01)
        calls = 0

        async def flaky(d):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ConnectionError("transient")
            return d

        assert await queue.add_request(flaky, "ok") == "ok"
        assert calls == 2
        stats = queue.stats()
        assert stats.succeeded == 1
        assert stats.failed == 0
        assert stats.retries == 1

    async def test_retry_waits_for_delay(self):
        queue = RequestQueue(max_concurrent=1, retry_attempts=2, retry_delay=0.05)
        starts = []

        def flaky(_):
            starts.append(time.monotonic())
            if len(starts) == 1:
                raise ValueError("once")
            return "done"

        assert await queue.add_request(flaky) == "done"
        assert starts[1] - starts[0] >= 0.04

    async def test_slot_released_during_backoff(self):
        """Other work runs while a failed item waits out its delay."""
        queue = RequestQueue(max_concurrent=1, retry_attempts=2, retry_delay=0.1)
        completed = []
        a_calls = 0

        async def a(_):
            nonlocal a_calls
            a_calls += 1
            if a_calls == 1:
                raise ConnectionError("transient")
            completed.append("A")

        async def b(_):
            completed.append("B")

        future_a = queue.add_request(a)
        future_b = queue.add_request(b)
        await asyncio.gather(future_a, future_b)

        assert completed == ["B", "A"]

    async def test_retried_item_rejoins_tail(self):
        queue = RequestQueue(max_concurrent=1, retry_attempts=2, retry_delay=0)
        started = []

        async def record(name):
            started.append(name)
            await asyncio.sleep(0)
            if name == "A" and started.count("A") == 1:
                raise ConnectionError("transient")

        await asyncio.gather(*(queue.add_request(record, name) for name in "ABC"))

        assert started == ["A", "B", "C", "A"]

    async def test_attempt_counter_on_item(self):
        queue = RequestQueue(max_concurrent=1, retry_attempts=3, retry_delay=0)
        seen = []

        @queue.on_start
        def on_start(item):
            seen.append((item.attempt, item.state))

        def failing(_):
            raise ValueError("x")

        with pytest.raises(ExhaustedRetriesError):
            await queue.add_request(failing)

        assert seen == [(1, WorkState.RUNNING), (2, WorkState.RUNNING), (3, WorkState.RUNNING)]

    async def test_validation_is_not_an_attempt(self):
        queue = RequestQueue(max_concurrent=1, retry_attempts=3, retry_delay=0)

        future = queue.add_request(None, {"x": 1})

        assert future.done()
        with pytest.raises(ValidationError):
            await future
        stats = queue.stats()
        assert stats.rejected == 1
        assert stats.retries == 0
        assert stats.in_flight == 0

    async def test_base_exceptions_are_not_retried(self):
        queue = RequestQueue(max_concurrent=1, retry_attempts=3, retry_delay=0)
        calls = 0

        async def cancelled(_):
            nonlocal calls
            calls += 1
            raise asyncio.CancelledError()

        future = queue.add_request(cancelled)
        await asyncio.wait([future])

        assert future.cancelled()
        assert calls == 1
        assert queue.in_flight == 0


class TestBackoff:
    """Delays reported to the retry callback."""

    async def _delays(self, queue: RequestQueue) -> list[float]:
        delays = []

        @queue.on_retry
        def on_retry(item, error, delay):
            delays.append(delay)

        def failing(_):
            raise ValueError("x")

        with pytest.raises(ExhaustedRetriesError):
            await queue.add_request(failing)
        return delays

    async def test_constant_by_default(self):
        queue = RequestQueue(max_concurrent=1, retry_attempts=3, retry_delay=0.01)

        assert await self._delays(queue) == [0.01, 0.01]

    async def test_exponential_with_factor(self):
        queue = RequestQueue(max_concurrent=1, retry_attempts=4, retry_delay=0.005, backoff_factor=2)

        assert await self._delays(queue) == pytest.approx([0.005, 0.01, 0.02])

    async def test_capped(self):
        queue = RequestQueue(
            max_concurrent=1,
            retry_attempts=4,
            retry_delay=0.005,
            backoff_factor=3,
            max_retry_delay=0.02,
        )

        assert await self._delays(queue) == pytest.approx([0.005, 0.015, 0.02])

    async def test_capped_growth_survives_many_attempts(self):
        """Geometric growth past float range stays at the cap."""
        queue = RequestQueue(
            max_concurrent=1,
            retry_attempts=350,
            retry_delay=0.0001,
            backoff_factor=10,
            max_retry_delay=0.0,
        )
        calls = 0

        def failing(_):
            nonlocal calls
            calls += 1
            raise ValueError("down")

        future = queue.add_request(failing)
        with pytest.raises(ExhaustedRetriesError) as excinfo:
            await asyncio.wait_for(future, timeout=10)

        assert calls == 350
        assert excinfo.value.attempts == 350
        assert queue.stats().retries == 349


class BrokenBackoff(Backoff):
    def delay_for(self, attempt: int) -> float:
        raise RuntimeError("no delay available")


class TestRetryIntegrity:
    """Failures while arranging a retry still settle the item."""

    async def test_retry_scheduling_error_settles_future(self, caplog):
        caplog.set_level(logging.ERROR, logger="workcue")
        queue = RequestQueue(max_concurrent=1, retry_attempts=3, retry_delay=0)
        queue.backoff = BrokenBackoff(0.0)
        failures = []

        @queue.on_failure
        def on_failure(item, error):
            failures.append(item.state)

        def failing(_):
            raise ValueError("down")

        first = queue.add_request(failing)
        second = queue.add_request(lambda x: x, "next")

        with pytest.raises(RuntimeError, match="no delay available") as excinfo:
            await first
        assert isinstance(excinfo.value.__context__, ValueError)
        assert await second == "next"
        await asyncio.wait_for(queue.join(), timeout=1)

        stats = queue.stats()
        assert stats.failed == 1
        assert stats.succeeded == 1
        assert stats.in_flight == 0
        assert stats.backing_off == 0
        assert stats.retries == 0
        assert failures == [WorkState.FAILED]
        assert "Could not schedule retry" in caplog.text

    async def test_join_after_many_capped_retries(self):
        queue = RequestQueue(
            max_concurrent=2,
            retry_attempts=350,
            retry_delay=0.0001,
            backoff_factor=10,
            max_retry_delay=0.0005,
        )

        def failing(_):
            raise ValueError("down")

        futures = [queue.add_request(failing, i) for i in range(3)]
        await asyncio.wait_for(queue.join(), timeout=30)

        assert all(f.done() for f in futures)
        for future in futures:
            assert isinstance(future.exception(), ExhaustedRetriesError)
            assert future.exception().attempts == 350
        stats = queue.stats()
        assert stats.failed == 3
        assert stats.retries == 3 * 349
        assert stats.in_flight == 0
        assert stats.waiting == 0


class TestIntrospection:
    """Tests for stats and join."""

    async def test_stats_during_backoff(self):
        queue = RequestQueue(max_concurrent=1, retry_attempts=2, retry_delay=0.1)
        calls = 0

        def flaky(_):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ValueError("once")
            return "ok"

        future = queue.add_request(flaky)
        await asyncio.sleep(0.03)

        stats = queue.stats()
        assert stats.backing_off == 1
        assert stats.in_flight == 0
        assert stats.waiting == 0

        assert await future == "ok"
        assert queue.stats().backing_off == 0

    async def test_join_includes_retries(self):
        queue = RequestQueue(max_concurrent=2, retry_attempts=2, retry_delay=0.02)
        outcomes = []

        def flaky(i):
            if i not in outcomes:
                outcomes.append(i)
                raise ValueError(i)
            return i

        futures = [queue.add_request(flaky, i) for i in range(4)]
        await queue.join()

        assert all(f.done() for f in futures)
        assert [f.result() for f in futures] == list(range(4))
        stats = queue.stats()
        assert stats.succeeded == 4
        assert stats.retries == 4

    async def test_join_when_idle(self):
        await RequestQueue().join()
