"""Simulation runner for workcue-sim.

This module handles the actual simulation logic, decoupled from display.
It updates a SimulationState object that can be rendered by any display.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from workcue_sim.scenarios import get_scenario

if TYPE_CHECKING:
    from workcue_sim.display import SimulationState


@dataclass
class SimConfig:
    """Configuration for a simulation run."""

    count: int = 100
    latency_ms: int = 100
    latency_jitter: float = 0.2  # ±20% variance
    outlier_chance: float = 0.0  # Probability of outlier (0.0-1.0)
    outlier_multiplier: float = 5.0  # Outliers take this much longer
    error_rate: float = 0.0  # Per-attempt failure probability
    duration: float | None = None
    max_workers: int = 4  # TaskScheduler slots
    max_concurrent: int = 5  # RequestQueue in-flight ceiling
    retry_attempts: int = 3
    retry_delay: float = 0.1  # Seconds
    backoff_factor: float | None = None
    submit_rate: float | None = None  # work/second, None = batch
    scenario: str = "scheduler"


class SimulationRunner:
    """Runs simulations and updates state for display.

    This class is decoupled from display - it just updates state.
    The display polls state to render.

    Usage:
        config = SimConfig(count=100, latency_ms=50)
        state = SimulationState()
        runner = SimulationRunner(config, state)

        # In your event loop:
        await runner.run()
    """

    def __init__(self, config: SimConfig, state: SimulationState):
        self.config = config
        self.state = state
        self.scenario = get_scenario(config.scenario)
        self._running = False

    async def run(self) -> None:
        """Run the simulation to completion or until the duration limit."""
        self._running = True
        self.state.start_time = time.time()
        self.state.target_count = self.config.count
        self.state.latency_ms = self.config.latency_ms
        self.state.latency_jitter = self.config.latency_jitter
        self.state.outlier_chance = self.config.outlier_chance
        self.state.error_rate = self.config.error_rate
        self.state.scenario_name = self.scenario.info.name

        self.scenario.setup(self.config, self.state)

        submit_task = asyncio.create_task(self._submit_work())
        try:
            await self._monitor(submit_task)
        finally:
            if not submit_task.done():
                submit_task.cancel()
                try:
                    await submit_task
                except asyncio.CancelledError:
                    pass
            self._update_state()
            self._running = False

        if not submit_task.cancelled():
            # Surface workload errors instead of leaving them on the task
            submit_task.result()

    async def _submit_work(self) -> None:
        await self.scenario.submit_workload(self.config, self.state, self._should_submit)

    def _should_submit(self) -> bool:
        """Checked by scenarios before each submission."""
        if not self._running:
            return False
        if self.config.duration and self._elapsed >= self.config.duration:
            return False
        return True

    async def _monitor(self, submit_task: asyncio.Task) -> None:
        """Poll until all submitted work settles or the duration is exceeded."""
        while self._running:
            self._update_state()

            if submit_task.done() and self.scenario.finished():
                break

            if self.config.duration and self._elapsed >= self.config.duration:
                break

            await asyncio.sleep(0.05)

    def _update_state(self) -> None:
        self.state.elapsed = self._elapsed
        self.scenario.update_state(self.state)

    @property
    def _elapsed(self) -> float:
        return time.time() - self.state.start_time

    def stop(self) -> None:
        """Request simulation stop."""
        self._running = False
