"""Delay calculation between RequestQueue retries."""

from __future__ import annotations

import math
from dataclasses import dataclass

from workcue.config import QueueConfig


@dataclass(frozen=True)
class Backoff:
    """Retry delay policy.

    Constant by default. With a ``factor`` the delay grows geometrically:
    the wait after failed attempt ``k`` is ``base * factor ** (k - 1)``,
    clipped to ``cap`` when one is set. Growth that leaves float range is
    treated as infinite, so a capped policy stays at ``cap`` for any attempt.

    Example:
        Backoff(0.5).delay_for(3)                 # 0.5
        Backoff(0.5, factor=2.0).delay_for(3)     # 2.0
        Backoff(0.5, 2.0, cap=1.0).delay_for(3)   # 1.0
    """

    base: float
    factor: float | None = None
    cap: float | None = None

    @classmethod
    def from_config(cls, config: QueueConfig) -> Backoff:
        return cls(
            base=config.retry_delay,
            factor=config.backoff_factor,
            cap=config.max_retry_delay,
        )

    @property
    def exponential(self) -> bool:
        return self.factor is not None and self.factor != 1

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after ``attempt`` (1-based) failed."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        delay = self.base
        if self.exponential and self.base:
            try:
                delay = self.base * float(self.factor) ** (attempt - 1)
            except OverflowError:
                # Past float range; only the cap can bound it
                delay = math.inf
        if self.cap is not None:
            delay = min(delay, self.cap)
        return delay
