"""Pipeline scenario - sign on a worker pool, then submit through a queue.

Models transaction submission: a bounded pool of signers produces a
signature for each payload, and a retrying queue broadcasts it. Signing
never fails; broadcasting fails with probability ``--error-rate`` per attempt.
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from typing import TYPE_CHECKING, Any, Callable

from workcue import RequestQueue, TaskScheduler
from workcue_sim.scenarios import Scenario, ScenarioInfo, attach_events, simulated_call

if TYPE_CHECKING:
    from workcue_sim.display import SimulationState
    from workcue_sim.runner import SimConfig


class PipelineScenario(Scenario):
    """Two stages: TaskScheduler (sign) -> RequestQueue (submit)."""

    @property
    def info(self) -> ScenarioInfo:
        return ScenarioInfo(
            name="pipeline",
            description="Sign on a worker pool, then submit with retry",
        )

    def setup(self, config: SimConfig, state: SimulationState) -> None:
        from workcue_sim.display import LaneStatus

        self.signer = TaskScheduler(max_workers=config.max_workers)
        self.submitter = RequestQueue(
            max_concurrent=config.max_concurrent,
            retry_attempts=config.retry_attempts,
            retry_delay=config.retry_delay,
            backoff_factor=config.backoff_factor,
        )

        now = time.time()
        state.lanes["sign"] = LaneStatus(
            name="sign", kind="workers", capacity=config.max_workers, start_time=now,
        )
        state.lanes["submit"] = LaneStatus(
            name="submit", kind="concurrent", capacity=config.max_concurrent, start_time=now,
        )
        attach_events(self.signer, state, "sign")
        attach_events(self.submitter, state, "submit")

        async def sign(payload: dict[str, Any]) -> dict[str, Any]:
            await simulated_call(config, error_rate=0.0)
            digest = hashlib.sha256(payload["item"].encode()).hexdigest()
            return {**payload, "signature": f"0x{digest}"}

        async def submit(signed: dict[str, Any]) -> dict[str, Any]:
            result = await simulated_call(config)
            return {**result, "tx_hash": signed["signature"][:18]}

        self._sign = sign
        self._submit = submit

    async def _process(self, payload: dict[str, Any]) -> dict[str, Any]:
        signed = await self.signer.add_task(self._sign, payload)
        return await self.submitter.add_request(self._submit, signed)

    async def submit_workload(
        self,
        config: SimConfig,
        state: SimulationState,
        should_submit: Callable[[], bool],
    ) -> None:
        for i in range(config.count):
            if not should_submit():
                break
            item = f"tx_{i:04d}"
            self._track(asyncio.create_task(self._process({"item": item, "index": i})))
            state.submitted += 1
            state.add_event("queued", item, "sign")

            if config.submit_rate:
                await asyncio.sleep(1.0 / config.submit_rate)

    def update_state(self, state: SimulationState) -> None:
        sign = self.signer.stats()
        submit = self.submitter.stats()
        state.queued = sign.pending + submit.waiting
        state.running = sign.busy + submit.in_flight
        state.retrying = submit.backing_off
        state.completed = submit.succeeded
        state.failed = sign.failed + submit.failed

        sign_lane = state.lanes["sign"]
        sign_lane.current = sign.busy
        sign_lane.waiting = sign.pending

        submit_lane = state.lanes["submit"]
        submit_lane.current = submit.in_flight
        submit_lane.waiting = submit.waiting
        submit_lane.backing_off = submit.backing_off
