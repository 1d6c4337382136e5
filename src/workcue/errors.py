"""Exceptions raised by workcue."""

from __future__ import annotations


class WorkcueError(Exception):
    """Base class for workcue errors."""


class ValidationError(WorkcueError, ValueError):
    """A submitted work item is malformed (missing or non-callable handler).

    Delivered through the item's future at admission time. Never retried and
    never counted as an attempt.
    """


class MisconfigurationError(WorkcueError, ValueError):
    """Invalid construction parameters for a scheduler or queue."""


class InvalidTransitionError(WorkcueError, RuntimeError):
    """A work item was moved between states in an illegal order."""


class ExhaustedRetriesError(WorkcueError):
    """A RequestQueue item failed on every allowed attempt.

    The last handler error is available as ``last_error`` and is also
    chained as ``__cause__``.
    """

    def __init__(self, work_id: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"Work {work_id} failed after {attempts} attempt(s): {last_error!r}"
        )
        self.work_id = work_id
        self.attempts = attempts
        self.last_error = last_error
        self.__cause__ = last_error
