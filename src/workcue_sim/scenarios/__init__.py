"""Built-in scenarios for workcue-sim.

Scenarios define workload patterns - which components run the work, how the
simulated handlers behave, and what gets submitted.
"""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from workcue_sim.display import SimulationState
    from workcue_sim.runner import SimConfig


@dataclass
class ScenarioInfo:
    """Metadata about a scenario."""
    name: str
    description: str


class Scenario(ABC):
    """Base class for simulation scenarios.

    A scenario defines:
    - Components (schedulers, queues) and their capacity
    - Handlers (simulated latency and failures)
    - Initial workload (what to submit)
    """

    def __init__(self) -> None:
        self._futures: list[asyncio.Future] = []

    @property
    @abstractmethod
    def info(self) -> ScenarioInfo:
        """Return scenario metadata."""
        ...

    @abstractmethod
    def setup(self, config: "SimConfig", state: "SimulationState") -> None:
        """Build components and register lanes and callbacks.

        Args:
            config: Simulation configuration (latency, error_rate, etc.)
            state: State object to update for display
        """
        ...

    @abstractmethod
    async def submit_workload(
        self,
        config: "SimConfig",
        state: "SimulationState",
        should_submit: Callable[[], bool],
    ) -> None:
        """Submit the workload, stopping early once ``should_submit()`` is False."""
        ...

    @abstractmethod
    def update_state(self, state: "SimulationState") -> None:
        """Copy component counters into ``state``."""
        ...

    def finished(self) -> bool:
        """True once every submitted item has settled."""
        return all(f.done() for f in self._futures)

    def _track(self, future: asyncio.Future) -> None:
        future.add_done_callback(_consume_outcome)
        self._futures.append(future)


def _consume_outcome(future: asyncio.Future) -> None:
    # Outcomes are reported through callbacks; mark exceptions as retrieved
    if not future.cancelled():
        future.exception()


async def simulated_call(config: "SimConfig", *, error_rate: float | None = None) -> dict[str, Any]:
    """Sleep for a jittered latency, then fail with probability ``error_rate``."""
    if error_rate is None:
        error_rate = config.error_rate

    base_latency = config.latency_ms / 1000.0
    is_outlier = False

    if base_latency > 0:
        if config.outlier_chance > 0 and random.random() < config.outlier_chance:
            actual_latency = base_latency * config.outlier_multiplier
            actual_latency *= random.uniform(0.8, 1.5)
            is_outlier = True
        else:
            jitter = config.latency_jitter
            actual_latency = base_latency * random.uniform(1 - jitter, 1 + jitter)

        await asyncio.sleep(actual_latency)

    if random.random() < error_rate:
        raise RuntimeError("Simulated error")

    return {"outlier": is_outlier}


def attach_events(component: Any, state: "SimulationState", lane_name: str) -> None:
    """Register callbacks that feed lane totals and the event log."""

    @component.on_start
    def on_start(item):
        state.add_event("started", item.id, lane_name, f"attempt {item.attempt}")

    @component.on_complete
    def on_complete(item, result, duration):
        lane = state.lanes.get(lane_name)
        if lane:
            lane.total_completed += 1
        detail = f"{int(duration * 1000)}ms"
        if isinstance(result, dict) and result.get("outlier"):
            detail += " [outlier]"
        state.add_event("completed", item.id, lane_name, detail)

    @component.on_failure
    def on_failure(item, error):
        lane = state.lanes.get(lane_name)
        if lane:
            lane.total_failed += 1
        state.add_event("failed", item.id, lane_name, str(error))

    if hasattr(component, "on_retry"):
        @component.on_retry
        def on_retry(item, error, delay):
            lane = state.lanes.get(lane_name)
            if lane:
                lane.total_retries += 1
            state.add_event("retrying", item.id, lane_name, f"in {int(delay * 1000)}ms")


# Import built-in scenarios
from workcue_sim.scenarios.scheduler import SchedulerScenario  # noqa: E402
from workcue_sim.scenarios.retrying import RetryingScenario  # noqa: E402
from workcue_sim.scenarios.pipeline import PipelineScenario  # noqa: E402

# Registry of built-in scenarios
SCENARIOS: dict[str, type[Scenario]] = {
    "scheduler": SchedulerScenario,
    "retrying": RetryingScenario,
    "pipeline": PipelineScenario,
}


def get_scenario(name: str) -> Scenario:
    """Get a scenario instance by name."""
    if name not in SCENARIOS:
        available = ", ".join(SCENARIOS.keys())
        raise ValueError(f"Unknown scenario: {name}. Available: {available}")
    return SCENARIOS[name]()


def list_scenarios() -> list[ScenarioInfo]:
    """List all available scenarios."""
    return [cls().info for cls in SCENARIOS.values()]
