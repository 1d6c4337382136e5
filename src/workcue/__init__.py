"""workcue - bounded, retrying execution of asynchronous work."""

from workcue.backoff import Backoff
from workcue.config import QueueConfig, SchedulerConfig
from workcue.errors import (
    ExhaustedRetriesError,
    InvalidTransitionError,
    MisconfigurationError,
    ValidationError,
    WorkcueError,
)
from workcue.models import WorkerStatus, WorkItem, WorkState
from workcue.queue import RequestQueue
from workcue.scheduler import TaskScheduler

__version__ = "0.1.0"
__all__ = [
    "TaskScheduler",
    "RequestQueue",
    "SchedulerConfig",
    "QueueConfig",
    "Backoff",
    "WorkItem",
    "WorkState",
    "WorkerStatus",
    "WorkcueError",
    "ValidationError",
    "ExhaustedRetriesError",
    "MisconfigurationError",
    "InvalidTransitionError",
]
