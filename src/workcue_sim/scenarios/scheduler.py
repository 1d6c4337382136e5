"""Scheduler scenario - the default workload pattern.

Throughput test for a fixed worker pool. Failures are final; there is no
retry, so ``--error-rate`` translates directly into failed items.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Callable

from workcue import TaskScheduler
from workcue_sim.scenarios import Scenario, ScenarioInfo, attach_events, simulated_call

if TYPE_CHECKING:
    from workcue_sim.display import SimulationState
    from workcue_sim.runner import SimConfig


class SchedulerScenario(Scenario):
    """Independent items on one TaskScheduler."""

    @property
    def info(self) -> ScenarioInfo:
        return ScenarioInfo(
            name="scheduler",
            description="Fixed worker pool, strict FIFO, no retry (default)",
        )

    def setup(self, config: SimConfig, state: SimulationState) -> None:
        from workcue_sim.display import LaneStatus

        self.scheduler = TaskScheduler(max_workers=config.max_workers)
        state.lanes["workers"] = LaneStatus(
            name="workers",
            kind="workers",
            capacity=config.max_workers,
            start_time=time.time(),
        )
        attach_events(self.scheduler, state, "workers")

        async def work_handler(data):
            return await simulated_call(config)

        self._handler = work_handler

    async def submit_workload(
        self,
        config: SimConfig,
        state: SimulationState,
        should_submit: Callable[[], bool],
    ) -> None:
        for i in range(config.count):
            if not should_submit():
                break
            item = f"item_{i:04d}"
            self._track(self.scheduler.add_task(self._handler, {"item": item, "index": i}))
            state.submitted += 1
            state.add_event("queued", item, "workers")

            if config.submit_rate:
                await asyncio.sleep(1.0 / config.submit_rate)

    def update_state(self, state: SimulationState) -> None:
        stats = self.scheduler.stats()
        state.queued = stats.pending
        state.running = stats.busy
        state.retrying = 0
        state.completed = stats.succeeded
        state.failed = stats.failed

        lane = state.lanes["workers"]
        lane.current = stats.busy
        lane.waiting = stats.pending
