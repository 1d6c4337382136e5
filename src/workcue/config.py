"""Construction-time configuration for schedulers and queues."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping

from workcue.errors import MisconfigurationError

# Option names used by callers that configure the core from plain dicts
_CAMEL_ALIASES = {
    "maxWorkers": "max_workers",
    "maxConcurrent": "max_concurrent",
    "retryAttempts": "retry_attempts",
    "retryDelay": "retry_delay",
    "backoffFactor": "backoff_factor",
    "maxRetryDelay": "max_retry_delay",
}

# camelCase delays are milliseconds; snake_case delays are seconds
_MILLISECOND_ALIASES = frozenset({"retryDelay", "maxRetryDelay"})


def _require_positive_int(name: str, value: Any) -> None:
    # bool is an int subclass but never a meaningful capacity
    if isinstance(value, bool) or not isinstance(value, int):
        raise MisconfigurationError(f"{name} must be an integer, got {value!r}")
    if value < 1:
        raise MisconfigurationError(f"{name} must be >= 1, got {value}")


def _require_non_negative(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MisconfigurationError(f"{name} must be a number, got {value!r}")
    if value < 0:
        raise MisconfigurationError(f"{name} must be >= 0, got {value}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _normalize(cls: type, options: Mapping[str, Any]) -> dict[str, Any]:
    known = {f.name for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in options.items():
        name = _CAMEL_ALIASES.get(key, key)
        if name not in known:
            raise MisconfigurationError(f"Unknown option for {cls.__name__}: {key}")
        if key in _MILLISECOND_ALIASES and _is_number(value):
            value = value / 1000
        kwargs[name] = value
    return kwargs


@dataclass(frozen=True)
class SchedulerConfig:
    """Options for ``TaskScheduler``."""

    max_workers: int = 4

    def __post_init__(self) -> None:
        _require_positive_int("max_workers", self.max_workers)

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> SchedulerConfig:
        """Build from a mapping using snake_case or camelCase keys."""
        return cls(**_normalize(cls, options))


@dataclass(frozen=True)
class QueueConfig:
    """Options for ``RequestQueue``.

    ``retry_attempts`` is the total number of executions allowed per item,
    first attempt included. ``retry_delay`` is in seconds. Without a
    ``backoff_factor`` the delay is the same before every retry.
    """

    max_concurrent: int = 5
    retry_attempts: int = 3
    retry_delay: float = 1.0
    backoff_factor: float | None = None
    max_retry_delay: float | None = None

    def __post_init__(self) -> None:
        _require_positive_int("max_concurrent", self.max_concurrent)
        _require_positive_int("retry_attempts", self.retry_attempts)
        _require_non_negative("retry_delay", self.retry_delay)
        if self.backoff_factor is not None:
            _require_non_negative("backoff_factor", self.backoff_factor)
            if self.backoff_factor < 1:
                raise MisconfigurationError(
                    f"backoff_factor must be >= 1, got {self.backoff_factor}"
                )
        if self.max_retry_delay is not None:
            _require_non_negative("max_retry_delay", self.max_retry_delay)

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> QueueConfig:
        """Build from a mapping using snake_case or camelCase keys.

        camelCase ``retryDelay`` and ``maxRetryDelay`` are read as milliseconds.
        """
        return cls(**_normalize(cls, options))
