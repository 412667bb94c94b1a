"""
Retry executor — bounded retries around async operations.

Backoff and the retry decision run through combinators.flow().retry(...);
this layer adds per-key attempt counters, the last-failure record and logging.

Note: Attempts are tracked per caller-supplied key. Two concurrent calls
with the same key share the counter; nothing is deduplicated.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from combinators import flow, lift as L
from kungfu import Error, LazyCoroResult, Ok

from charmcart._types import Clock, utcnow
from charmcart.errors import ErrorClassifier
from charmcart.retry._policy import RetryPolicy

logger = logging.getLogger(__name__)

type Operation[T] = Callable[[], Awaitable[T]]


@dataclass(frozen=True, slots=True)
class FailureRecord:
    """Last exhausted operation."""

    key: str
    error: BaseException
    timestamp: datetime


# ═══════════════════════════════════════════════════════════════════════════════
# RetryExecutor
# ═══════════════════════════════════════════════════════════════════════════════


class RetryExecutor:
    """
    Runs an operation, retrying transient failures with exponential backoff.

    Example:
        executor = RetryExecutor(RetryPolicy().with_max_retries(2))
        cart = await executor.execute(
            f"get_user_cart_{user_id}",
            lambda: remote.get_user_cart(user_id),
        )
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        classifier: ErrorClassifier | None = None,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self.classifier = classifier or ErrorClassifier()
        self._clock = clock
        self._attempts: dict[str, int] = {}
        self.last_error: FailureRecord | None = None

    def attempts(self, key: str) -> int:
        """Retries performed so far for `key` (reset on success)."""
        return self._attempts.get(key, 0)

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self._attempts.clear()
            self.last_error = None
        else:
            self._attempts.pop(key, None)

    def _resolve(self, max_retries: int | None, base_delay: float | None) -> RetryPolicy:
        policy = self.policy
        if max_retries is not None:
            policy = policy.with_max_retries(max_retries)
        if base_delay is not None:
            policy = policy.with_base_delay(seconds=base_delay)
        if not policy.enabled:
            policy = policy.with_max_retries(0)
        return policy

    def _compile[T](self, key: str, operation: Operation[T], policy: RetryPolicy) -> LazyCoroResult[T, Exception]:
        calls = 0

        async def attempt() -> T:
            nonlocal calls
            calls += 1
            if calls > 1:
                self._attempts[key] = self._attempts.get(key, 0) + 1
            try:
                return await operation()
            except Exception as e:
                if calls <= policy.max_retries and self.classifier.is_retryable(e):
                    logger.warning(
                        "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                        key, calls, policy.max_retries + 1, policy.delay_for(calls - 1), e,
                    )
                raise

        lifted = flow(L.catching_async(attempt, on_error=lambda e: e))
        if policy.max_retries > 0:
            lifted = lifted.retry(
                times=policy.max_retries,
                backoff_initial=policy.base_delay,
                backoff_factor=2.0,
                backoff_max=policy.backoff_max,
                jitter=False,
                retry_on=self.classifier.is_retryable,
            )
        return lifted.compile()

    async def execute[T](
        self,
        key: str,
        operation: Operation[T],
        *,
        max_retries: int | None = None,
        base_delay: float | None = None,
    ) -> T:
        """
        Invoke `operation` until it succeeds or retries run out.

        Non-retryable errors propagate immediately. After the final
        attempt the last error is re-raised unchanged and stored in
        `last_error`.
        """
        policy = self._resolve(max_retries, base_delay)

        match await self._compile(key, operation, policy):
            case Ok(result):
                self._attempts.pop(key, None)
                return result
            case Error(e):
                if self.classifier.is_retryable(e):
                    self.last_error = FailureRecord(key=key, error=e, timestamp=self._clock())
                    logger.error("%s failed after %d attempts: %s", key, policy.max_retries + 1, e)
                raise e

    def lazy[T](self, key: str, operation: Operation[T]) -> LazyCoroResult[T, Exception]:
        """Retried operation as a LazyCoroResult (errors captured, not raised)."""
        return L.catching_async(
            lambda: self.execute(key, operation),
            on_error=lambda e: e,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Decorator
# ═══════════════════════════════════════════════════════════════════════════════


def retrying[**P, T](
    executor: RetryExecutor,
    key: str | Callable[P, str],
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """
    Wrap an async function so every call goes through `executor`.

    Example:
        @retrying(executor, key=lambda order_id: f"get_order_{order_id}")
        async def fetch_order(order_id: str) -> Order: ...
    """

    def decorator(fn: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            op_key = key(*args, **kwargs) if callable(key) else key
            return await executor.execute(op_key, lambda: fn(*args, **kwargs))

        return wrapper

    return decorator


__all__ = (
    "Operation",
    "FailureRecord",
    "RetryExecutor",
    "retrying",
)
