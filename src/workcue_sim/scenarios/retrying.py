"""Retrying scenario - a flaky endpoint behind a RequestQueue.

Each attempt fails with probability ``--error-rate``. Items only fail for
good once all ``--retries`` attempts have failed.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Callable

from workcue import RequestQueue
from workcue_sim.scenarios import Scenario, ScenarioInfo, attach_events, simulated_call

if TYPE_CHECKING:
    from workcue_sim.display import SimulationState
    from workcue_sim.runner import SimConfig


class RetryingScenario(Scenario):
    """Independent requests with transient failures."""

    @property
    def info(self) -> ScenarioInfo:
        return ScenarioInfo(
            name="retrying",
            description="Concurrency-bounded queue retrying transient failures",
        )

    def setup(self, config: SimConfig, state: SimulationState) -> None:
        from workcue_sim.display import LaneStatus

        self.queue = RequestQueue(
            max_concurrent=config.max_concurrent,
            retry_attempts=config.retry_attempts,
            retry_delay=config.retry_delay,
            backoff_factor=config.backoff_factor,
        )
        state.lanes["requests"] = LaneStatus(
            name="requests",
            kind="concurrent",
            capacity=config.max_concurrent,
            start_time=time.time(),
        )
        attach_events(self.queue, state, "requests")

        async def request_handler(data):
            return await simulated_call(config)

        self._handler = request_handler

    async def submit_workload(
        self,
        config: SimConfig,
        state: SimulationState,
        should_submit: Callable[[], bool],
    ) -> None:
        for i in range(config.count):
            if not should_submit():
                break
            item = f"req_{i:04d}"
            self._track(self.queue.add_request(self._handler, {"item": item, "index": i}))
            state.submitted += 1
            state.add_event("queued", item, "requests")

            if config.submit_rate:
                await asyncio.sleep(1.0 / config.submit_rate)

    def update_state(self, state: SimulationState) -> None:
        stats = self.queue.stats()
        state.queued = stats.waiting
        state.running = stats.in_flight
        state.retrying = stats.backing_off
        state.completed = stats.succeeded
        state.failed = stats.failed

        lane = state.lanes["requests"]
        lane.current = stats.in_flight
        lane.waiting = stats.waiting
        lane.backing_off = stats.backing_off
