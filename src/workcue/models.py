"""Core data models for workcue."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from workcue.errors import InvalidTransitionError


class WorkState(str, Enum):
    """Possible states for a work item."""

    QUEUED = "queued"
    RUNNING = "running"
    WAITING = "waiting"  # Failed, backing off before the next attempt
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = frozenset({WorkState.SUCCEEDED, WorkState.FAILED})

# Allowed edges of the per-item state machine
_TRANSITIONS: dict[WorkState, frozenset[WorkState]] = {
    WorkState.QUEUED: frozenset({WorkState.RUNNING, WorkState.FAILED}),
    WorkState.RUNNING: frozenset({WorkState.SUCCEEDED, WorkState.FAILED, WorkState.WAITING}),
    WorkState.WAITING: frozenset({WorkState.QUEUED}),
    WorkState.SUCCEEDED: frozenset(),
    WorkState.FAILED: frozenset(),
}


@dataclass(eq=False)
class WorkItem:
    """A unit of submitted work and its bookkeeping."""

    id: str
    handler: Callable[[Any], Any] | None
    data: Any = None
    future: asyncio.Future | None = None
    max_attempts: int = 1
    attempt: int = 0
    state: WorkState = WorkState.QUEUED
    created_at: float = 0.0
    started_at: float | None = None
    completed_at: float | None = None
    result: Any = None
    error: BaseException | None = None

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def attempts_left(self) -> int:
        return max(0, self.max_attempts - self.attempt)

    def transition(self, new_state: WorkState) -> None:
        """Move to ``new_state``, rejecting edges the state machine does not allow."""
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Work {self.id}: cannot move from {self.state.value} to {new_state.value}"
            )
        if new_state is WorkState.RUNNING:
            if self.attempt >= self.max_attempts:
                raise InvalidTransitionError(
                    f"Work {self.id}: attempt {self.attempt + 1} exceeds max {self.max_attempts}"
                )
            self.attempt += 1
        self.state = new_state


class WorkerStatus(str, Enum):
    """Status of a scheduler worker slot."""

    IDLE = "idle"
    BUSY = "busy"


@dataclass
class Worker:
    """A slot in the scheduler's worker arena.

    Assigning work writes an item reference into the slot; slots themselves
    are created once and never replaced.
    """

    id: int
    status: WorkerStatus = WorkerStatus.IDLE
    current: WorkItem | None = None
    tasks_completed: int = 0
    total_processing_time: float = 0.0
    last_activity: float = 0.0

    def assign(self, item: WorkItem, now: float) -> None:
        if self.status is WorkerStatus.BUSY:
            raise InvalidTransitionError(f"Worker {self.id} is already busy")
        self.status = WorkerStatus.BUSY
        self.current = item
        self.last_activity = now

    def release(self, now: float, duration: float) -> None:
        self.status = WorkerStatus.IDLE
        self.current = None
        self.tasks_completed += 1
        self.total_processing_time += duration
        self.last_activity = now


@dataclass(frozen=True)
class WorkerSnapshot:
    """Read-only copy of a worker slot, safe to hand to callers."""

    id: int
    status: WorkerStatus
    work_id: str | None
    tasks_completed: int
    total_processing_time: float
    last_activity: float


@dataclass
class SchedulerStats:
    """Counters reported by ``TaskScheduler.stats()``."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    rejected: int = 0  # Failed validation at admission
    average_processing_time: float = 0.0
    busy: int = 0
    pending: int = 0
    utilization: float = 0.0  # Percent of slots busy


@dataclass
class QueueStats:
    """Counters reported by ``RequestQueue.stats()``."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    rejected: int = 0
    retries: int = 0
    average_processing_time: float = 0.0
    in_flight: int = 0
    waiting: int = 0
    backing_off: int = 0
