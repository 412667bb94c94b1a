"""
Retry policy — backoff configuration.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Bounded exponential backoff.

    Applied via combinators.flow().retry(...). Delay before retry
    number n (0-based) is `base_delay * 2**n`, capped at `max_delay`
    when set.

    Example:
        policy = (
            RetryPolicy()
            .with_max_retries(5)
            .with_base_delay(seconds=0.5)
            .with_max_delay(seconds=10)
        )

    Note: Immutable — each method returns new RetryPolicy.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float | None = None
    enabled: bool = True

    @property
    def backoff_max(self) -> float:
        """Longest wait the schedule can reach."""
        if self.max_delay is not None:
            return self.max_delay
        return self.base_delay * (2 ** max(self.max_retries - 1, 0))

    def delay_for(self, attempt: int) -> float:
        delay = self.base_delay * (2**attempt)
        if self.max_delay is not None:
            return min(delay, self.max_delay)
        return delay

    def with_max_retries(self, max_retries: int) -> RetryPolicy:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        return RetryPolicy(
            max_retries=max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            enabled=self.enabled,
        )

    def with_base_delay(self, *, seconds: float) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=seconds,
            max_delay=self.max_delay,
            enabled=self.enabled,
        )

    def with_max_delay(self, *, seconds: float | None) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=seconds,
            enabled=self.enabled,
        )

    def with_enabled(self, enabled: bool = True) -> RetryPolicy:
        """Disabled policy runs the operation exactly once."""
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            enabled=enabled,
        )


__all__ = ("RetryPolicy",)
